"""Post list, mutations and reactions."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..models import CreatedResponse, CreatePostRequest, EditPostRequest, PostView, ReactionResponse
from ..services import Principal
from ..state import get_state
from .deps import get_principal

router = APIRouter()

MAX_PAGE_SIZE = 100


@router.get("", response_model=List[PostView])
async def list_posts(
    limit: Optional[int] = Query(default=None, ge=1, le=MAX_PAGE_SIZE),
    author_id: Optional[str] = None,
    principal: Principal = Depends(get_principal),
):
    """Newest first, joined with each author's current profile."""
    return await get_state().engine.list_feed(limit=limit, author_id=author_id)


@router.post("", response_model=CreatedResponse, status_code=201)
async def create_post(request: CreatePostRequest, principal: Principal = Depends(get_principal)):
    post_id = await get_state().engine.create_post(principal.id, request.text, request.image)
    return CreatedResponse(id=post_id)


@router.get("/{post_id}", response_model=PostView)
async def get_post(post_id: str, principal: Principal = Depends(get_principal)):
    return await get_state().engine.get_post(post_id)


@router.put("/{post_id}")
async def edit_post(post_id: str, request: EditPostRequest, principal: Principal = Depends(get_principal)):
    await get_state().engine.edit_post(post_id, principal.id, request.text)
    return {"success": True}


@router.delete("/{post_id}")
async def delete_post(post_id: str, principal: Principal = Depends(get_principal)):
    await get_state().engine.delete_post(post_id, principal.id)
    return {"success": True}


@router.post("/{post_id}/like", response_model=ReactionResponse)
async def like_post(post_id: str, principal: Principal = Depends(get_principal)):
    reaction = await get_state().engine.toggle_like(post_id, principal.id)
    return ReactionResponse(post_id=post_id, reaction=reaction.value)


@router.post("/{post_id}/dislike", response_model=ReactionResponse)
async def dislike_post(post_id: str, principal: Principal = Depends(get_principal)):
    reaction = await get_state().engine.toggle_dislike(post_id, principal.id)
    return ReactionResponse(post_id=post_id, reaction=reaction.value)
