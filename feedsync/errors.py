"""
Error taxonomy for the feed engine and its store adapters.

Validation and authorization errors are raised before any write.
TransportError wraps a failed store call; the SDK exception is chained as __cause__.
"""


class FeedError(Exception):
    """Base class for all feedsync errors."""


class ValidationError(FeedError):
    """Required text is empty (after trimming)."""


class NotAuthorized(FeedError):
    """Mutation attempted by a principal that does not own the document."""


class NotFound(FeedError):
    """Referenced document does not exist."""

    def __init__(self, path: str):
        super().__init__(f"Document not found: {path}")
        self.path = path


class SelfFollowRejected(FeedError):
    """A user tried to follow themselves."""


class TransportError(FeedError):
    """Underlying store call failed (network, permission, quota)."""


class TransactionConflict(TransportError):
    """A transaction could not commit within its retry budget."""

    def __init__(self, attempts: int):
        super().__init__(f"Transaction failed to commit after {attempts} attempts")
        self.attempts = attempts


class Unauthenticated(FeedError):
    """No principal, or the presented identity token is invalid or expired."""
