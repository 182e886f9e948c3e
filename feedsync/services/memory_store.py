"""
In-memory document store.

Used for local development and tests. Mirrors the Firestore semantics the engine
relies on: atomic field sentinels, optimistic transactions with retry, and live
subscriptions that deliver a fresh snapshot on the subscriber's event loop after
every change that affects the result.
"""

import asyncio
import copy
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from ..errors import NotFound, TransactionConflict, TransportError
from .document_store import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
    DocumentHandler,
    DocumentSnapshot,
    ErrorHandler,
    Increment,
    Query,
    SnapshotHandler,
    Subscription,
    split_path,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5


@dataclass
class _Record:
    data: Dict[str, Any]
    version: int
    seq: int


class _Listener:
    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        on_snapshot: Callable[[Any], None],
        on_error: Optional[ErrorHandler],
        query: Optional[Query] = None,
        path: Optional[str] = None,
    ):
        self.loop = loop
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.query = query
        self.path = path
        self.signature: Any = None
        self.active = True


def _apply_fields(existing: Dict[str, Any], fields: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    """Apply a field map (values or sentinels) on top of existing data."""
    out = copy.deepcopy(existing)
    for key, value in fields.items():
        if value is DELETE_FIELD:
            out.pop(key, None)
        elif value is SERVER_TIMESTAMP:
            out[key] = now
        elif isinstance(value, Increment):
            current = out.get(key)
            out[key] = (current if isinstance(current, (int, float)) else 0) + value.amount
        elif isinstance(value, ArrayUnion):
            current = list(out.get(key) or [])
            for v in value.values:
                if v not in current:
                    current.append(v)
            out[key] = current
        elif isinstance(value, ArrayRemove):
            current = out.get(key) or []
            out[key] = [v for v in current if v not in value.values]
        else:
            out[key] = copy.deepcopy(value)
    return out


class _MemoryTransaction:
    """Buffered transaction; read versions are checked at commit."""

    def __init__(self, store: "InMemoryDocumentStore"):
        self._store = store
        self.reads: Dict[str, int] = {}
        self.writes: List[Tuple[str, str, Dict[str, Any], bool]] = []

    async def get(self, path: str) -> Optional[DocumentSnapshot]:
        if self.writes:
            raise ValueError("Transaction reads must happen before writes")
        await asyncio.sleep(0)
        record = self._store._docs.get(path)
        self.reads[path] = record.version if record else 0
        return self._store._snapshot(path, record)

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        self.writes.append(("set", path, data, merge))

    def create(self, path: str, data: Dict[str, Any]) -> None:
        self.writes.append(("create", path, data, False))

    def update(self, path: str, fields: Dict[str, Any]) -> None:
        self.writes.append(("update", path, fields, False))

    def delete(self, path: str) -> None:
        self.writes.append(("delete", path, {}, False))


class InMemoryDocumentStore:
    """
    Document store backed by a dict of path -> record.
    Every write bumps a global version counter; transactions compare the versions
    they read against the current ones before committing.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self._docs: Dict[str, _Record] = {}
        self._listeners: List[_Listener] = []
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._max_attempts = max_attempts
        self._version = 0
        self._seq = 0

    # -- helpers ------------------------------------------------------------

    def _snapshot(self, path: str, record: Optional[_Record]) -> Optional[DocumentSnapshot]:
        if record is None:
            return None
        return DocumentSnapshot(path=path, data=copy.deepcopy(record.data))

    def _commit(self, writes: List[Tuple[str, str, Dict[str, Any], bool]]) -> None:
        """Validate every write against a staged view, then apply them all at once."""
        now = self._clock()
        staged: Dict[str, Optional[Dict[str, Any]]] = {}

        def current(path: str) -> Optional[Dict[str, Any]]:
            if path in staged:
                return staged[path]
            record = self._docs.get(path)
            return record.data if record else None

        for op, path, data, merge in writes:
            existing = current(path)
            if op == "set":
                base = existing if (merge and existing is not None) else {}
                staged[path] = _apply_fields(base, data, now)
            elif op == "create":
                if existing is not None:
                    raise TransportError(f"Document already exists: {path}")
                staged[path] = _apply_fields({}, data, now)
            elif op == "update":
                if existing is None:
                    raise NotFound(path)
                staged[path] = _apply_fields(existing, data, now)
            elif op == "delete":
                staged[path] = None
            else:
                raise ValueError(f"Unknown write op: {op}")

        for path, data in staged.items():
            if data is None:
                self._docs.pop(path, None)
                continue
            self._version += 1
            record = self._docs.get(path)
            if record is None:
                self._seq += 1
                self._docs[path] = _Record(data=data, version=self._version, seq=self._seq)
            else:
                record.data = data
                record.version = self._version
        if staged:
            self._notify()

    def _run_query(self, query: Query) -> List[Tuple[str, _Record]]:
        matches = []
        for path, record in self._docs.items():
            collection, _ = split_path(path)
            if collection != query.collection:
                continue
            if all(record.data.get(f) == v for f, v in query.filters):
                matches.append((path, record))
        if query.order_by:
            key_field = query.order_by

            def sort_key(item: Tuple[str, _Record]):
                value = item[1].data.get(key_field)
                if value is None:
                    return (0, item[1].seq)
                return (1, value, item[1].seq)

            matches.sort(key=sort_key, reverse=query.descending)
        else:
            matches.sort(key=lambda item: item[1].seq)
        if query.limit is not None:
            matches = matches[: query.limit]
        return matches

    # -- reads & writes -----------------------------------------------------

    async def get_document(self, path: str) -> Optional[DocumentSnapshot]:
        await asyncio.sleep(0)
        return self._snapshot(path, self._docs.get(path))

    async def set_document(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        await asyncio.sleep(0)
        self._commit([("set", path, data, merge)])

    async def update_document(self, path: str, fields: Dict[str, Any]) -> None:
        await asyncio.sleep(0)
        self._commit([("update", path, fields, False)])

    async def add_document(self, collection: str, data: Dict[str, Any]) -> str:
        await asyncio.sleep(0)
        doc_id = self.new_document_id(collection)
        self._commit([("create", f"{collection}/{doc_id}", data, False)])
        return doc_id

    async def delete_document(self, path: str) -> None:
        await asyncio.sleep(0)
        self._commit([("delete", path, {}, False)])

    async def query(self, query: Query) -> List[DocumentSnapshot]:
        await asyncio.sleep(0)
        return [self._snapshot(path, record) for path, record in self._run_query(query)]

    async def count(self, query: Query) -> int:
        await asyncio.sleep(0)
        return len(self._run_query(query))

    def new_document_id(self, collection: str) -> str:
        return uuid.uuid4().hex[:20]

    async def run_transaction(self, fn: Callable[[_MemoryTransaction], Awaitable[T]]) -> T:
        for attempt in range(1, self._max_attempts + 1):
            txn = _MemoryTransaction(self)
            result = await fn(txn)
            stale = [
                path
                for path, version in txn.reads.items()
                if (self._docs[path].version if path in self._docs else 0) != version
            ]
            if not stale:
                self._commit(txn.writes)
                return result
            logger.debug(
                "[InMemoryDocumentStore] transaction attempt %d conflicted on %s", attempt, stale
            )
        raise TransactionConflict(self._max_attempts)

    # -- subscriptions ------------------------------------------------------

    def subscribe(
        self,
        query: Query,
        on_snapshot: SnapshotHandler,
        on_error: Optional[ErrorHandler] = None,
    ) -> Subscription:
        listener = _Listener(asyncio.get_running_loop(), on_snapshot, on_error, query=query)
        return self._register(listener)

    def subscribe_document(
        self,
        path: str,
        on_snapshot: DocumentHandler,
        on_error: Optional[ErrorHandler] = None,
    ) -> Subscription:
        listener = _Listener(asyncio.get_running_loop(), on_snapshot, on_error, path=path)
        return self._register(listener)

    def _register(self, listener: _Listener) -> Subscription:
        self._listeners.append(listener)
        self._check(listener)

        def _cancel() -> None:
            listener.active = False
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(_cancel)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            self._check(listener)

    def _check(self, listener: _Listener) -> None:
        if listener.query is not None:
            rows = self._run_query(listener.query)
            signature = tuple((path, record.version) for path, record in rows)
            payload: Any = [self._snapshot(path, record) for path, record in rows]
        else:
            record = self._docs.get(listener.path)
            signature = record.version if record else 0
            payload = self._snapshot(listener.path, record)
        if signature == listener.signature:
            return
        listener.signature = signature
        listener.loop.call_soon(self._deliver, listener, payload)

    def _deliver(self, listener: _Listener, payload: Any) -> None:
        if not listener.active:
            return
        try:
            listener.on_snapshot(payload)
        except Exception as e:
            if listener.on_error is None:
                logger.exception("[InMemoryDocumentStore] snapshot handler failed")
            else:
                listener.on_error(e)
