"""Registration, profiles and the follow graph."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from ..errors import FeedError
from ..models import (
    AccountResponse,
    FollowResponse,
    FollowStats,
    PasswordResetRequest,
    PostView,
    RegisterRequest,
    UpdateProfileRequest,
    UserProfile,
)
from ..services import Principal
from ..state import get_state
from .deps import get_principal

logger = logging.getLogger(__name__)

router = APIRouter()


async def _profile_or_404(user_id: str) -> UserProfile:
    profile = await get_state().engine.resolve_profile(user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="User does not exist")
    return profile


@router.post("/register", response_model=UserProfile, status_code=201)
async def register(request: RegisterRequest):
    """Create the identity account, its users/{id} profile document, then send the verification email."""
    state = get_state()
    principal = state.identity.create_account(request.email, request.password, request.display_name)
    profile = await state.engine.create_profile(principal.id, principal.email, request.display_name)
    try:
        await state.identity.send_email_verification(principal.email or request.email)
    except FeedError as e:
        logger.warning("[users] verification email for %s not sent: %s", principal.id, e)
    return profile


@router.post("/password-reset")
async def password_reset(request: PasswordResetRequest):
    await get_state().identity.send_password_reset_email(request.email)
    return {"sent": True}


@router.get("/me", response_model=UserProfile)
async def get_me(principal: Principal = Depends(get_principal)):
    return await _profile_or_404(principal.id)


@router.get("/me/account", response_model=AccountResponse)
def get_account(principal: Principal = Depends(get_principal)):
    return AccountResponse(
        user_id=principal.id,
        email=principal.email,
        display_name=principal.display_name,
        email_verified=principal.email_verified,
    )


@router.put("/me", response_model=UserProfile)
async def update_me(request: UpdateProfileRequest, principal: Principal = Depends(get_principal)):
    # Only fields present in the body are written
    optional = {name: getattr(request, name) for name in ("bio", "avatar") if name in request.model_fields_set}
    return await get_state().engine.update_profile(principal.id, request.display_name, **optional)


@router.get("/{user_id}", response_model=UserProfile)
async def get_user(user_id: str, principal: Principal = Depends(get_principal)):
    return await _profile_or_404(user_id)


@router.get("/{user_id}/posts", response_model=List[PostView])
async def get_user_posts(user_id: str, principal: Principal = Depends(get_principal)):
    """Most recent posts by one author (profile view)."""
    state = get_state()
    return await state.engine.list_feed(limit=state.config.profile_posts_limit, author_id=user_id)


@router.get("/{user_id}/stats", response_model=FollowStats)
async def get_follow_stats(user_id: str, principal: Principal = Depends(get_principal)):
    return await get_state().engine.follow_stats(user_id)


@router.get("/{user_id}/follow", response_model=FollowResponse)
async def get_follow(user_id: str, principal: Principal = Depends(get_principal)):
    following = await get_state().engine.is_following(principal.id, user_id)
    return FollowResponse(follower_id=principal.id, following_id=user_id, following=following)


@router.post("/{user_id}/follow", response_model=FollowResponse)
async def toggle_follow(user_id: str, principal: Principal = Depends(get_principal)):
    following = await get_state().engine.toggle_follow(principal.id, user_id)
    return FollowResponse(follower_id=principal.id, following_id=user_id, following=following)
