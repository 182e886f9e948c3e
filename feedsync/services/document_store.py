"""
Document Store abstraction.

Keyed documents addressed by slash paths (users/{id}, posts/{id}/comments/{id}),
field-level atomic sentinels, transactions, and live subscriptions.
Implementations: in-memory (local/tests), Firestore (production). Swap via config.
"""

from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple, TypeVar

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Field sentinels
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Increment:
    amount: int


@dataclass(frozen=True)
class ArrayUnion:
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class ArrayRemove:
    values: Tuple[Any, ...]


class _Sentinel:
    def __init__(self, name: str):
        self._name = name

    def __repr__(self) -> str:
        return self._name


DELETE_FIELD = _Sentinel("DELETE_FIELD")
SERVER_TIMESTAMP = _Sentinel("SERVER_TIMESTAMP")


def increment(amount: int = 1) -> Increment:
    return Increment(amount)


def array_union(*values: Any) -> ArrayUnion:
    return ArrayUnion(tuple(values))


def array_remove(*values: Any) -> ArrayRemove:
    return ArrayRemove(tuple(values))


# ---------------------------------------------------------------------------
# Snapshots and queries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DocumentSnapshot:
    """One document as read from the store. data is a private copy."""

    path: str
    data: Dict[str, Any]

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


@dataclass(frozen=True)
class Query:
    """Collection query: equality filters, one ordering field, optional limit."""

    collection: str
    filters: Tuple[Tuple[str, Any], ...] = ()
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None

    def where(self, field_name: str, value: Any) -> "Query":
        return replace(self, filters=self.filters + ((field_name, value),))

    def order(self, field_name: str, descending: bool = False) -> "Query":
        return replace(self, order_by=field_name, descending=descending)

    def limit_to(self, limit: int) -> "Query":
        return replace(self, limit=limit)


SnapshotHandler = Callable[[List[DocumentSnapshot]], None]
DocumentHandler = Callable[[Optional[DocumentSnapshot]], None]
ErrorHandler = Callable[[BaseException], None]


class Subscription:
    """
    Cancellable handle for a live subscription.
    cancel() is idempotent; the handle is also a context manager.
    """

    def __init__(self, on_cancel: Optional[Callable[[], None]] = None):
        self._cancel_callbacks: List[Callable[[], None]] = []
        if on_cancel is not None:
            self._cancel_callbacks.append(on_cancel)
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def add_cancel_callback(self, callback: Callable[[], None]) -> None:
        if not self._active:
            callback()
            return
        self._cancel_callbacks.append(callback)

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        callbacks, self._cancel_callbacks = self._cancel_callbacks, []
        for callback in reversed(callbacks):
            callback()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.cancel()


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


class Transaction(Protocol):
    """
    Reads are recorded, writes are buffered. All reads must happen before any write.
    The store commits the writes only if nothing read has changed since.
    """

    async def get(self, path: str) -> Optional[DocumentSnapshot]:
        ...

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        ...

    def create(self, path: str, data: Dict[str, Any]) -> None:
        ...

    def update(self, path: str, fields: Dict[str, Any]) -> None:
        ...

    def delete(self, path: str) -> None:
        ...


class DocumentStore(Protocol):
    """Protocol for document persistence. Implement for in-memory or Firestore."""

    async def get_document(self, path: str) -> Optional[DocumentSnapshot]:
        """Return the document, or None if it does not exist."""
        ...

    async def set_document(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        ...

    async def update_document(self, path: str, fields: Dict[str, Any]) -> None:
        """Partial update. Raises NotFound if the document does not exist."""
        ...

    async def add_document(self, collection: str, data: Dict[str, Any]) -> str:
        """Create a document with a generated id. Returns the new id."""
        ...

    async def delete_document(self, path: str) -> None:
        ...

    async def query(self, query: Query) -> List[DocumentSnapshot]:
        ...

    async def count(self, query: Query) -> int:
        ...

    def new_document_id(self, collection: str) -> str:
        ...

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        """Run fn in a transaction, retrying on conflicting concurrent writes."""
        ...

    def subscribe(
        self,
        query: Query,
        on_snapshot: SnapshotHandler,
        on_error: Optional[ErrorHandler] = None,
    ) -> Subscription:
        """Deliver the query result now and after every change that affects it."""
        ...

    def subscribe_document(
        self,
        path: str,
        on_snapshot: DocumentHandler,
        on_error: Optional[ErrorHandler] = None,
    ) -> Subscription:
        ...


def split_path(path: str) -> Tuple[str, str]:
    """Split a document path into (collection path, document id)."""
    collection, _, doc_id = path.rpartition("/")
    return collection, doc_id
