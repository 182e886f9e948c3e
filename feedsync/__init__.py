"""
feedsync - social feed sync engine.

Usage: uvicorn feedsync.app:app --reload --port 8000
"""

from .config import FeedConfig, get_config, reload_config
from .engine import FeedEngine, Reaction, ReactionKind
from .errors import (
    FeedError,
    NotAuthorized,
    NotFound,
    SelfFollowRejected,
    TransactionConflict,
    TransportError,
    Unauthenticated,
    ValidationError,
)

__all__ = [
    "FeedConfig",
    "get_config",
    "reload_config",
    "FeedEngine",
    "Reaction",
    "ReactionKind",
    "FeedError",
    "NotAuthorized",
    "NotFound",
    "SelfFollowRejected",
    "TransactionConflict",
    "TransportError",
    "Unauthenticated",
    "ValidationError",
]
