"""Comments of one post. A new comment pushes a notification to the post's author."""

import logging
from typing import List

from fastapi import APIRouter, Depends

from ..engine import PLACEHOLDER_NAME
from ..errors import FeedError
from ..models import AddCommentRequest, CommentView, CreatedResponse
from ..services import Principal
from ..state import get_state
from .deps import get_principal

logger = logging.getLogger(__name__)

router = APIRouter()


async def _notify_post_author(post_id: str, commenter: Principal) -> None:
    """Best effort: a failed push never fails the comment."""
    state = get_state()
    try:
        post = await state.engine.get_post(post_id)
        if post.author_id == commenter.id:
            return
        profile = await state.engine.resolve_profile(commenter.id)
        name = (profile.display_name if profile else None) or commenter.display_name or PLACEHOLDER_NAME
        await state.relay.send(
            post.author_id,
            "New comment",
            f"{name} commented on your post",
            {"postId": post_id},
        )
    except FeedError as e:
        logger.warning("[comments] notification for post=%s failed: %s", post_id, e)


@router.get("/{post_id}/comments", response_model=List[CommentView])
async def list_comments(post_id: str, principal: Principal = Depends(get_principal)):
    """Oldest first, joined with each comment author's current profile."""
    return await get_state().engine.list_comments(post_id)


@router.post("/{post_id}/comments", response_model=CreatedResponse, status_code=201)
async def add_comment(post_id: str, request: AddCommentRequest, principal: Principal = Depends(get_principal)):
    comment_id = await get_state().engine.add_comment(post_id, principal.id, request.text)
    await _notify_post_author(post_id, principal)
    return CreatedResponse(id=comment_id)
