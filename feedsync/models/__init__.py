"""Pydantic view models and request/response models."""

from .comments import AddCommentRequest, CommentView
from .notifications import NavigationIntent, PushMessage, RegisterTokenRequest
from .posts import CreatedResponse, CreatePostRequest, EditPostRequest, PostView, ReactionResponse
from .users import (
    AccountResponse,
    FollowResponse,
    FollowStats,
    PasswordResetRequest,
    RegisterRequest,
    UpdateProfileRequest,
    UserProfile,
)

__all__ = [
    "AccountResponse",
    "AddCommentRequest",
    "CommentView",
    "CreatedResponse",
    "CreatePostRequest",
    "EditPostRequest",
    "FollowResponse",
    "FollowStats",
    "NavigationIntent",
    "PasswordResetRequest",
    "PostView",
    "PushMessage",
    "ReactionResponse",
    "RegisterRequest",
    "RegisterTokenRequest",
    "UpdateProfileRequest",
    "UserProfile",
]
