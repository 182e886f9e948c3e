"""Push notification payloads and the navigation intents derived from them."""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class PushMessage(BaseModel):
    """Inbound or outbound push message. data.postId, when present, is a navigation target."""

    title: Optional[str] = None
    body: Optional[str] = None
    data: Dict[str, str] = Field(default_factory=dict)


class NavigationIntent(BaseModel):
    model_config = ConfigDict(frozen=True)

    screen: str
    post_id: Optional[str] = None


class RegisterTokenRequest(BaseModel):
    token: str
