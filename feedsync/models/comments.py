"""Comment view model and request model."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class CommentView(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    post_id: str
    author_id: str
    author_name: str
    author_avatar: Optional[str] = None
    text: str = ""
    created_at: Optional[datetime] = None


class AddCommentRequest(BaseModel):
    text: str
