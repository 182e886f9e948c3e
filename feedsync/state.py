"""Application state: document store, identity, notifications, engine and session."""

from pathlib import Path
from typing import Optional

from .config import FeedConfig, get_config
from .engine import FeedEngine
from .services import (
    DocumentStore,
    FirebaseIdentityProvider,
    FirebaseNotificationRelay,
    FirestoreDocumentStore,
    IdentityProvider,
    InMemoryDocumentStore,
    InMemoryNotificationRelay,
    NotificationRelay,
    SessionHolder,
    StaticIdentityProvider,
)


class AppState:
    """Global application state."""

    def __init__(
        self,
        config: FeedConfig,
        store: Optional[DocumentStore] = None,
        identity: Optional[IdentityProvider] = None,
        relay: Optional[NotificationRelay] = None,
    ):
        self.config = config
        use_firebase = store is None and self._firebase_ready(config)

        # Document store: Firestore when creds set, else in-memory
        self.store = store or self._create_store(config, use_firebase)
        print(f"[startup] Document store: {type(self.store).__name__}")

        self.identity = identity or self._create_identity(config, use_firebase)
        print(f"[startup] Identity provider: {type(self.identity).__name__}")

        self.relay = relay or self._create_relay(config, use_firebase)
        print(f"[startup] Notification relay: {type(self.relay).__name__}")

        self.engine = FeedEngine(self.store, page_size=config.feed_page_size)
        self.session = SessionHolder(self.identity)

    @staticmethod
    def _firebase_ready(config: FeedConfig) -> bool:
        if config.data_source != "firebase":
            return False
        cred_path = config.firebase_credentials_path
        if not cred_path:
            print("[startup] DATA_SOURCE=firebase but FIREBASE_CREDENTIALS_PATH is not set, using in-memory store")
            return False
        cred_path = Path(cred_path)
        if not cred_path.exists() or not cred_path.is_file():
            print(f"[startup] Firestore skipped: credentials path not found or not a file: {cred_path}")
            return False
        return True

    def _create_store(self, config: FeedConfig, use_firebase: bool) -> DocumentStore:
        """Create document store (Firestore when creds set, else in-memory)."""
        if use_firebase:
            return FirestoreDocumentStore(
                project_id=config.firebase_project_id,
                credentials_path=config.firebase_credentials_path,
                max_attempts=config.transaction_max_attempts,
            )
        return InMemoryDocumentStore(max_attempts=config.transaction_max_attempts)

    def _create_identity(self, config: FeedConfig, use_firebase: bool) -> IdentityProvider:
        if use_firebase:
            return FirebaseIdentityProvider(
                project_id=config.firebase_project_id,
                credentials_path=config.firebase_credentials_path,
            )
        return StaticIdentityProvider()

    def _create_relay(self, config: FeedConfig, use_firebase: bool) -> NotificationRelay:
        if use_firebase:
            return FirebaseNotificationRelay(
                self.store,
                project_id=config.firebase_project_id,
                credentials_path=config.firebase_credentials_path,
            )
        return InMemoryNotificationRelay(self.store)

    def close(self) -> None:
        self.session.close()


_state: Optional[AppState] = None


def get_state() -> AppState:
    global _state
    if _state is None:
        config = get_config()
        _state = AppState(config)
    return _state


def set_state(state: Optional[AppState]) -> None:
    """Replace the global state (tests and embedding applications)."""
    global _state
    _state = state
