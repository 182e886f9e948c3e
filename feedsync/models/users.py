"""User profile view model and request/response models for users and follows."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class UserProfile(BaseModel):
    """Current profile of a user, read from users/{user_id}."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    display_name: str = ""
    email: Optional[str] = None
    bio: str = ""
    avatar: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FollowStats(BaseModel):
    """Follower/following counts, computed from follow edges on every call."""

    user_id: str
    followers: int
    following: int


class FollowResponse(BaseModel):
    follower_id: str
    following_id: str
    following: bool


class RegisterRequest(BaseModel):
    email: str
    password: str
    display_name: str = ""


class UpdateProfileRequest(BaseModel):
    """Omitted bio/avatar keep their stored values; an explicit null avatar clears it."""

    display_name: str
    bio: Optional[str] = None
    avatar: Optional[str] = None  # base64 data URL or image URL


class PasswordResetRequest(BaseModel):
    email: str


class AccountResponse(BaseModel):
    """The caller's identity as verified from the bearer token."""

    user_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    email_verified: bool = False
