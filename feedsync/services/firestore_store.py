"""
Firestore document store.

Used when DATA_SOURCE=firebase. Reads, writes, queries and transactions go through
google.cloud.firestore.AsyncClient; live subscriptions use the firebase-admin sync
client's watch listeners, whose callbacks run on an SDK thread and are handed back
to the subscriber's event loop.
"""

import asyncio
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, Union

from firebase_admin import firestore as admin_firestore
from google.api_core import exceptions as google_exceptions
from google.cloud import firestore as gcf
from google.cloud.firestore import AsyncClient, async_transactional
from google.cloud.firestore_v1.base_query import FieldFilter
from google.oauth2 import service_account

from ..errors import NotFound, TransactionConflict, TransportError
from .firebase_app import ensure_firebase_app, project_id_from_credentials_file
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
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _to_firestore(value: Any) -> Any:
    if value is DELETE_FIELD:
        return gcf.DELETE_FIELD
    if value is SERVER_TIMESTAMP:
        return gcf.SERVER_TIMESTAMP
    if isinstance(value, Increment):
        return gcf.Increment(value.amount)
    if isinstance(value, ArrayUnion):
        return gcf.ArrayUnion(list(value.values))
    if isinstance(value, ArrayRemove):
        return gcf.ArrayRemove(list(value.values))
    return value


def _convert(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: _to_firestore(v) for k, v in data.items()}


def _from_firestore(doc) -> Optional[DocumentSnapshot]:
    if doc is None or not doc.exists:
        return None
    return DocumentSnapshot(path=doc.reference.path, data=doc.to_dict() or {})


@contextmanager
def _transport_errors(op: str, path: str):
    try:
        yield
    except google_exceptions.NotFound as e:
        raise NotFound(path) from e
    except (google_exceptions.GoogleAPICallError, google_exceptions.RetryError) as e:
        logger.error("[FirestoreDocumentStore] %s %s failed: %s", op, path, e)
        raise TransportError(f"{op} {path} failed: {e}") from e


class _FirestoreTransaction:
    def __init__(self, db: AsyncClient, transaction):
        self._db = db
        self._txn = transaction

    async def get(self, path: str) -> Optional[DocumentSnapshot]:
        doc = await self._db.document(path).get(transaction=self._txn)
        return _from_firestore(doc)

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        self._txn.set(self._db.document(path), _convert(data), merge=merge)

    def create(self, path: str, data: Dict[str, Any]) -> None:
        self._txn.create(self._db.document(path), _convert(data))

    def update(self, path: str, fields: Dict[str, Any]) -> None:
        self._txn.update(self._db.document(path), _convert(fields))

    def delete(self, path: str) -> None:
        self._txn.delete(self._db.document(path))


class FirestoreDocumentStore:
    """Document store backed by Cloud Firestore (same firebase app as identity and messaging)."""

    def __init__(
        self,
        project_id: Optional[str] = None,
        credentials_path: Optional[Union[Path, str]] = None,
        max_attempts: int = 5,
    ):
        ensure_firebase_app(project_id, credentials_path)
        self._db = admin_firestore.client()
        self._max_attempts = max_attempts
        if credentials_path:
            resolved = str(Path(credentials_path).resolve())
            creds = service_account.Credentials.from_service_account_file(resolved)
            proj = project_id or project_id_from_credentials_file(resolved)
            self._async_db = AsyncClient(project=proj, credentials=creds)
        else:
            self._async_db = AsyncClient(project=project_id)
        logger.info(
            "[FirestoreDocumentStore] Async client initialized (project=%s)", project_id or "inferred"
        )

    def _build_query(self, client, query: Query):
        q = client.collection(query.collection)
        for field_name, value in query.filters:
            q = q.where(filter=FieldFilter(field_name, "==", value))
        if query.order_by:
            direction = gcf.Query.DESCENDING if query.descending else gcf.Query.ASCENDING
            q = q.order_by(query.order_by, direction=direction)
        if query.limit is not None:
            q = q.limit(query.limit)
        return q

    async def get_document(self, path: str) -> Optional[DocumentSnapshot]:
        with _transport_errors("get", path):
            doc = await self._async_db.document(path).get()
        return _from_firestore(doc)

    async def set_document(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        with _transport_errors("set", path):
            await self._async_db.document(path).set(_convert(data), merge=merge)

    async def update_document(self, path: str, fields: Dict[str, Any]) -> None:
        with _transport_errors("update", path):
            await self._async_db.document(path).update(_convert(fields))

    async def add_document(self, collection: str, data: Dict[str, Any]) -> str:
        with _transport_errors("add", collection):
            _, ref = await self._async_db.collection(collection).add(_convert(data))
        return ref.id

    async def delete_document(self, path: str) -> None:
        with _transport_errors("delete", path):
            await self._async_db.document(path).delete()

    async def query(self, query: Query) -> List[DocumentSnapshot]:
        out = []
        with _transport_errors("query", query.collection):
            async for doc in self._build_query(self._async_db, query).stream():
                out.append(_from_firestore(doc))
        return out

    async def count(self, query: Query) -> int:
        with _transport_errors("count", query.collection):
            results = await self._build_query(self._async_db, query).count(alias="total").get()
        return int(results[0][0].value) if results and results[0] else 0

    def new_document_id(self, collection: str) -> str:
        return self._async_db.collection(collection).document().id

    async def run_transaction(self, fn: Callable[[_FirestoreTransaction], Awaitable[T]]) -> T:
        transaction = self._async_db.transaction(max_attempts=self._max_attempts)

        @async_transactional
        async def _run(txn):
            return await fn(_FirestoreTransaction(self._async_db, txn))

        try:
            with _transport_errors("transaction", "-"):
                return await _run(transaction)
        except ValueError as e:
            # The SDK signals an exhausted retry budget with ValueError.
            if "attempts" not in str(e):
                raise
            raise TransactionConflict(self._max_attempts) from e

    def subscribe(
        self,
        query: Query,
        on_snapshot: SnapshotHandler,
        on_error: Optional[ErrorHandler] = None,
    ) -> Subscription:
        loop = asyncio.get_running_loop()
        subscription = Subscription()

        def _callback(docs, changes, read_time):
            try:
                payload = [_from_firestore(doc) for doc in docs]
            except Exception as e:
                loop.call_soon_threadsafe(self._fail, subscription, on_error, e)
                return
            loop.call_soon_threadsafe(self._deliver, subscription, on_snapshot, on_error, payload)

        watch = self._build_query(self._db, query).on_snapshot(_callback)
        subscription.add_cancel_callback(watch.unsubscribe)
        return subscription

    def subscribe_document(
        self,
        path: str,
        on_snapshot: DocumentHandler,
        on_error: Optional[ErrorHandler] = None,
    ) -> Subscription:
        loop = asyncio.get_running_loop()
        subscription = Subscription()

        def _callback(docs, changes, read_time):
            payload = _from_firestore(docs[0]) if docs else None
            loop.call_soon_threadsafe(self._deliver, subscription, on_snapshot, on_error, payload)

        watch = self._db.document(path).on_snapshot(_callback)
        subscription.add_cancel_callback(watch.unsubscribe)
        return subscription

    @staticmethod
    def _deliver(subscription: Subscription, handler, on_error: Optional[ErrorHandler], payload: Any) -> None:
        if not subscription.active:
            return
        try:
            handler(payload)
        except Exception as e:
            FirestoreDocumentStore._fail(subscription, on_error, e)

    @staticmethod
    def _fail(subscription: Subscription, on_error: Optional[ErrorHandler], error: BaseException) -> None:
        if not subscription.active:
            return
        if on_error is None:
            logger.error("[FirestoreDocumentStore] snapshot handler failed: %s", error)
        else:
            on_error(error)
