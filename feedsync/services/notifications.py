"""
Notification Relay abstraction.

Push tokens live on the user document (users/{id}.fcmToken). Outbound messages
are looked up by recipient; inbound messages are handed to the registered
foreground/background handlers and turned into navigation intents.
Implementations: in-memory (local/tests), Firebase Cloud Messaging (production).
"""

import abc
import asyncio
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Tuple, Union

from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from ..errors import TransportError
from ..models import NavigationIntent, PushMessage
from .document_store import DELETE_FIELD, SERVER_TIMESTAMP, DocumentStore
from .firebase_app import ensure_firebase_app

logger = logging.getLogger(__name__)

TOKEN_FIELD = "fcmToken"
COMMENTS_SCREEN = "comments"

MessageHandler = Callable[[PushMessage], None]


def navigation_intent(message: PushMessage) -> Optional[NavigationIntent]:
    """A payload carrying postId opens that post's comments; anything else navigates nowhere."""
    post_id = (message.data or {}).get("postId")
    if not post_id:
        return None
    return NavigationIntent(screen=COMMENTS_SCREEN, post_id=post_id)


class NotificationRelay(Protocol):
    """Protocol for push notifications. Implement for in-memory or FCM."""

    async def register_token(self, principal_id: str, token: str) -> None:
        ...

    async def remove_token(self, principal_id: str) -> None:
        ...

    def on_foreground_message(self, handler: MessageHandler) -> Callable[[], None]:
        ...

    def on_background_message(self, handler: MessageHandler) -> Callable[[], None]:
        ...

    def get_initial_notification(self) -> Optional[PushMessage]:
        ...

    async def send(
        self,
        recipient_id: str,
        title: str,
        body: str,
        data: Optional[Dict[str, str]] = None,
    ) -> bool:
        """Send to the recipient's stored token. False when the recipient has none."""
        ...

    def dispatch(self, message: PushMessage, foreground: bool = True) -> Optional[NavigationIntent]:
        ...


class _RelayBase(abc.ABC):
    """Token storage, handler registries and inbound dispatch shared by the relays."""

    def __init__(self, store: DocumentStore):
        self._store = store
        self._foreground: List[MessageHandler] = []
        self._background: List[MessageHandler] = []
        self._initial: Optional[PushMessage] = None

    @staticmethod
    def _user_path(user_id: str) -> str:
        return f"users/{user_id}"

    async def register_token(self, principal_id: str, token: str) -> None:
        await self._store.update_document(
            self._user_path(principal_id),
            {TOKEN_FIELD: token, "updatedAt": SERVER_TIMESTAMP},
        )

    async def remove_token(self, principal_id: str) -> None:
        await self._store.update_document(
            self._user_path(principal_id),
            {TOKEN_FIELD: DELETE_FIELD, "updatedAt": SERVER_TIMESTAMP},
        )

    @staticmethod
    def _register(handlers: List[MessageHandler], handler: MessageHandler) -> Callable[[], None]:
        handlers.append(handler)

        def _dispose() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return _dispose

    def on_foreground_message(self, handler: MessageHandler) -> Callable[[], None]:
        return self._register(self._foreground, handler)

    def on_background_message(self, handler: MessageHandler) -> Callable[[], None]:
        return self._register(self._background, handler)

    def set_initial_notification(self, message: Optional[PushMessage]) -> None:
        """Record the message the app was opened from."""
        self._initial = message

    def get_initial_notification(self) -> Optional[PushMessage]:
        """Return the launch message once; later calls return None."""
        message, self._initial = self._initial, None
        return message

    def dispatch(self, message: PushMessage, foreground: bool = True) -> Optional[NavigationIntent]:
        for handler in list(self._foreground if foreground else self._background):
            handler(message)
        return navigation_intent(message)

    async def send(
        self,
        recipient_id: str,
        title: str,
        body: str,
        data: Optional[Dict[str, str]] = None,
    ) -> bool:
        snap = await self._store.get_document(self._user_path(recipient_id))
        token = snap.get(TOKEN_FIELD) if snap is not None else None
        if not token:
            logger.info("[NotificationRelay] recipient %s has no push token", recipient_id)
            return False
        message = PushMessage(title=title, body=body, data=dict(data or {}))
        return await self._deliver(recipient_id, token, message)

    @abc.abstractmethod
    async def _deliver(self, recipient_id: str, token: str, message: PushMessage) -> bool:
        """Hand one message to the transport. Returns False when the token is stale."""


class InMemoryNotificationRelay(_RelayBase):
    """Records outbound messages instead of delivering them."""

    def __init__(self, store: DocumentStore):
        super().__init__(store)
        self.sent: List[Tuple[str, PushMessage]] = []

    async def _deliver(self, recipient_id: str, token: str, message: PushMessage) -> bool:
        self.sent.append((token, message))
        return True


class FirebaseNotificationRelay(_RelayBase):
    """Delivers through Firebase Cloud Messaging (firebase-admin messaging)."""

    def __init__(
        self,
        store: DocumentStore,
        project_id: Optional[str] = None,
        credentials_path: Optional[Union[Path, str]] = None,
    ):
        super().__init__(store)
        ensure_firebase_app(project_id, credentials_path)

    async def _deliver(self, recipient_id: str, token: str, message: PushMessage) -> bool:
        fcm_message = messaging.Message(
            token=token,
            notification=messaging.Notification(title=message.title, body=message.body),
            data=message.data,
        )
        try:
            message_id = await asyncio.to_thread(messaging.send, fcm_message)
        except messaging.UnregisteredError:
            logger.info("[FirebaseNotificationRelay] stale token for %s, removing", recipient_id)
            await self.remove_token(recipient_id)
            return False
        except firebase_exceptions.FirebaseError as e:
            logger.error("[FirebaseNotificationRelay] send to %s failed: %s", recipient_id, e)
            raise TransportError(str(e)) from e
        logger.debug("[FirebaseNotificationRelay] sent %s to %s", message_id, recipient_id)
        return True
