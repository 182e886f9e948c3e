"""
WebSocket streams for the live feed and a post's comments.

Connect with ?token=<identity token>. Server sends:
  {"type": "snapshot", "items": [...]}  on every change
  {"type": "error", "message": "..."}   when a snapshot cannot be joined
The subscription is cancelled when the client disconnects.
"""

import asyncio
import json
import logging
from typing import Callable, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..errors import Unauthenticated
from ..services import Subscription
from ..state import get_state
from .posts import MAX_PAGE_SIZE

logger = logging.getLogger(__name__)

router = APIRouter()

POLICY_VIOLATION = 1008


async def _authenticate(websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("token")
    try:
        principal = get_state().identity.verify_token(token or "")
    except Unauthenticated:
        await websocket.close(code=POLICY_VIOLATION, reason="Invalid authentication")
        return None
    return principal.id


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    """Answer pings until the client disconnects; frames that are not JSON are ignored."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
        try:
            payload = json.loads(message.get("text") or "")
        except ValueError:
            continue
        if isinstance(payload, dict) and payload.get("type") == "ping":
            await websocket.send_json({"type": "pong"})


async def _pump(websocket: WebSocket, subscribe: Callable[..., Subscription], name: str) -> None:
    """Forward subscription snapshots to the socket until the client goes away."""
    queue: asyncio.Queue = asyncio.Queue()
    subscription = subscribe(queue.put_nowait, queue.put_nowait)
    disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        with subscription:
            while True:
                getter = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait({getter, disconnected}, return_when=asyncio.FIRST_COMPLETED)
                if getter not in done:
                    getter.cancel()
                    return
                item = getter.result()
                if isinstance(item, BaseException):
                    logger.warning("[streams] %s stream error: %s", name, item)
                    await websocket.send_json({"type": "error", "message": str(item)})
                    continue
                await websocket.send_json(
                    {"type": "snapshot", "items": [view.model_dump(mode="json") for view in item]}
                )
    except WebSocketDisconnect:
        return
    finally:
        disconnected.cancel()


@router.websocket("/ws/feed")
async def feed_stream(websocket: WebSocket, limit: Optional[int] = None, author_id: Optional[str] = None):
    await websocket.accept()
    if await _authenticate(websocket) is None:
        return
    if limit is not None and not 1 <= limit <= MAX_PAGE_SIZE:
        await websocket.close(code=POLICY_VIOLATION, reason=f"limit must be between 1 and {MAX_PAGE_SIZE}")
        return
    engine = get_state().engine

    def _subscribe(handler, on_error) -> Subscription:
        return engine.subscribe_feed(handler, limit=limit, author_id=author_id, on_error=on_error)

    await _pump(websocket, _subscribe, "feed")


@router.websocket("/ws/posts/{post_id}/comments")
async def comments_stream(websocket: WebSocket, post_id: str):
    await websocket.accept()
    if await _authenticate(websocket) is None:
        return
    engine = get_state().engine

    def _subscribe(handler, on_error) -> Subscription:
        return engine.subscribe_comments(post_id, handler, on_error=on_error)

    await _pump(websocket, _subscribe, "comments")
