"""Post view model (post joined with its author's profile) and post request models."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class PostView(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    author_id: str
    author_name: str
    author_avatar: Optional[str] = None
    text: str = ""
    image: Optional[str] = None
    likes: List[str] = Field(default_factory=list)
    likes_count: int = 0
    dislikes: List[str] = Field(default_factory=list)
    dislikes_count: int = 0
    comments_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CreatePostRequest(BaseModel):
    text: str
    image: Optional[str] = None  # base64 data URL or image URL


class EditPostRequest(BaseModel):
    text: str


class CreatedResponse(BaseModel):
    id: str


class ReactionResponse(BaseModel):
    post_id: str
    reaction: str
