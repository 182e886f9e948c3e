"""Social graph & feed engine."""

from .feed_engine import (
    UNCHANGED,
    FeedEngine,
    comments_collection,
    follow_edge_id,
    follow_edge_path,
    post_path,
    user_path,
)
from .projection import PLACEHOLDER_NAME
from .reactions import Reaction, ReactionKind

__all__ = [
    "FeedEngine",
    "PLACEHOLDER_NAME",
    "UNCHANGED",
    "Reaction",
    "ReactionKind",
    "comments_collection",
    "follow_edge_id",
    "follow_edge_path",
    "post_path",
    "user_path",
]
