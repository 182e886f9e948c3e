"""Backing adapters: document stores, identity, notifications, session."""

from .document_store import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    Query,
    Subscription,
    Transaction,
    array_remove,
    array_union,
    increment,
)
from .firestore_store import FirestoreDocumentStore
from .identity import (
    FirebaseIdentityProvider,
    IdentityProvider,
    Principal,
    StaticIdentityProvider,
    validate_registration,
)
from .memory_store import InMemoryDocumentStore
from .notifications import (
    FirebaseNotificationRelay,
    InMemoryNotificationRelay,
    NotificationRelay,
    navigation_intent,
)
from .session import SessionHolder

__all__ = [
    "DELETE_FIELD",
    "SERVER_TIMESTAMP",
    "DocumentSnapshot",
    "DocumentStore",
    "Query",
    "Subscription",
    "Transaction",
    "array_remove",
    "array_union",
    "increment",
    "FirestoreDocumentStore",
    "InMemoryDocumentStore",
    "FirebaseIdentityProvider",
    "IdentityProvider",
    "Principal",
    "StaticIdentityProvider",
    "validate_registration",
    "FirebaseNotificationRelay",
    "InMemoryNotificationRelay",
    "NotificationRelay",
    "navigation_intent",
    "SessionHolder",
]
