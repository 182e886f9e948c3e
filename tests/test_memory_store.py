"""
In-Memory Document Store Tests

Field sentinels, queries, optimistic transactions and live subscriptions.

Run:
----
    pytest tests/test_memory_store.py -v
"""

import asyncio

import pytest

from conftest import settle
from feedsync.errors import NotFound, TransactionConflict, TransportError
from feedsync.services.document_store import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    Query,
    array_remove,
    array_union,
    increment,
)
from feedsync.services.memory_store import InMemoryDocumentStore


class TestReadsAndWrites:
    def test_get_missing_returns_none(self, store):
        assert asyncio.run(store.get_document("users/nobody")) is None

    def test_set_then_get(self, store):
        async def run():
            await store.set_document("users/u1", {"displayName": "Ann"})
            return await store.get_document("users/u1")

        snap = asyncio.run(run())
        assert snap.id == "u1"
        assert snap.get("displayName") == "Ann"

    def test_snapshot_is_a_copy(self, store):
        async def run():
            await store.set_document("posts/p1", {"likes": ["a"]})
            snap = await store.get_document("posts/p1")
            snap.data["likes"].append("b")
            return await store.get_document("posts/p1")

        assert asyncio.run(run()).get("likes") == ["a"]

    def test_merge_set_keeps_other_fields(self, store):
        async def run():
            await store.set_document("users/u1", {"displayName": "Ann", "bio": "hi"})
            await store.set_document("users/u1", {"displayName": "Anna"}, merge=True)
            return await store.get_document("users/u1")

        snap = asyncio.run(run())
        assert snap.data == {"displayName": "Anna", "bio": "hi"}

    def test_update_missing_raises_not_found(self, store):
        with pytest.raises(NotFound) as exc:
            asyncio.run(store.update_document("posts/missing", {"text": "x"}))
        assert exc.value.path == "posts/missing"

    def test_add_document_generates_id(self, store):
        async def run():
            doc_id = await store.add_document("posts", {"text": "x"})
            return doc_id, await store.get_document(f"posts/{doc_id}")

        doc_id, snap = asyncio.run(run())
        assert doc_id
        assert snap.get("text") == "x"

    def test_delete(self, store):
        async def run():
            await store.set_document("posts/p1", {"text": "x"})
            await store.delete_document("posts/p1")
            return await store.get_document("posts/p1")

        assert asyncio.run(run()) is None


class TestSentinels:
    def test_increment_and_arrays(self, store):
        async def run():
            await store.set_document("posts/p1", {"likes": ["a"], "likesCount": 1})
            await store.update_document(
                "posts/p1", {"likes": array_union("a", "b"), "likesCount": increment(1)}
            )
            await store.update_document("posts/p1", {"likes": array_remove("a")})
            return await store.get_document("posts/p1")

        snap = asyncio.run(run())
        assert snap.get("likes") == ["b"]
        assert snap.get("likesCount") == 2

    def test_increment_missing_field_starts_at_zero(self, store):
        async def run():
            await store.set_document("posts/p1", {})
            await store.update_document("posts/p1", {"commentsCount": increment(1)})
            return await store.get_document("posts/p1")

        assert asyncio.run(run()).get("commentsCount") == 1

    def test_delete_field_and_server_timestamp(self, store):
        async def run():
            await store.set_document("users/u1", {"fcmToken": "t"})
            await store.update_document("users/u1", {"fcmToken": DELETE_FIELD, "updatedAt": SERVER_TIMESTAMP})
            return await store.get_document("users/u1")

        snap = asyncio.run(run())
        assert "fcmToken" not in snap.data
        assert snap.get("updatedAt").year == 2024


class TestQueries:
    def _seed(self, store):
        async def run():
            for i, author in enumerate(["a", "b", "a", "a"]):
                await store.set_document(f"posts/p{i}", {"userId": author, "createdAt": SERVER_TIMESTAMP})
            await store.set_document("posts/p9/comments/c1", {"userId": "a"})

        asyncio.run(run())

    def test_filter_order_limit(self, store):
        self._seed(store)
        query = Query("posts").where("userId", "a").order("createdAt", descending=True).limit_to(2)
        docs = asyncio.run(store.query(query))
        assert [d.id for d in docs] == ["p3", "p2"]

    def test_subcollection_documents_are_not_in_parent_collection(self, store):
        self._seed(store)
        docs = asyncio.run(store.query(Query("posts")))
        assert "c1" not in [d.id for d in docs]
        assert asyncio.run(store.count(Query("posts/p9/comments"))) == 1

    def test_count(self, store):
        self._seed(store)
        assert asyncio.run(store.count(Query("posts").where("userId", "a"))) == 3
        assert asyncio.run(store.count(Query("posts").where("userId", "zzz"))) == 0


class TestTransactions:
    def test_interleaved_read_modify_write_is_retried(self, store):
        async def bump(txn):
            snap = await txn.get("counters/c")
            value = snap.get("n")
            # Yield between read and write so both transactions read the same version.
            await asyncio.sleep(0)
            txn.update("counters/c", {"n": value + 1})

        async def run():
            await store.set_document("counters/c", {"n": 0})
            await asyncio.gather(store.run_transaction(bump), store.run_transaction(bump))
            return await store.get_document("counters/c")

        assert asyncio.run(run()).get("n") == 2

    def test_conflict_after_max_attempts(self):
        store = InMemoryDocumentStore(max_attempts=3)
        attempts = []

        async def always_conflicts(txn):
            attempts.append(1)
            await txn.get("counters/c")
            await store.update_document("counters/c", {"n": increment(1)})
            txn.update("counters/c", {"n": 0})

        async def run():
            await store.set_document("counters/c", {"n": 0})
            await store.run_transaction(always_conflicts)

        with pytest.raises(TransactionConflict) as exc:
            asyncio.run(run())
        assert isinstance(exc.value, TransportError)
        assert exc.value.attempts == 3
        assert len(attempts) == 3

    def test_reads_after_writes_are_rejected(self, store):
        async def bad(txn):
            txn.set("a/1", {"x": 1})
            await txn.get("a/1")

        with pytest.raises(ValueError):
            asyncio.run(store.run_transaction(bad))

    def test_create_existing_fails_without_partial_writes(self, store):
        async def create_both(txn):
            await txn.get("a/new")
            txn.create("a/new", {"x": 1})
            txn.create("a/existing", {"x": 2})

        async def run():
            await store.set_document("a/existing", {"x": 0})
            with pytest.raises(TransportError):
                await store.run_transaction(create_both)
            return await store.get_document("a/new")

        assert asyncio.run(run()) is None

    def test_error_in_function_writes_nothing(self, store):
        async def failing(txn):
            txn.set("a/1", {"x": 1})
            raise RuntimeError("boom")

        async def run():
            with pytest.raises(RuntimeError):
                await store.run_transaction(failing)
            return await store.get_document("a/1")

        assert asyncio.run(run()) is None


class TestSubscriptions:
    def test_initial_and_change_delivery(self, store):
        received = []

        async def run():
            sub = store.subscribe(Query("posts").order("createdAt"), received.append)
            await settle()
            await store.set_document("posts/p1", {"createdAt": SERVER_TIMESTAMP})
            await settle()
            sub.cancel()

        asyncio.run(run())
        assert [[d.id for d in docs] for docs in received] == [[], ["p1"]]

    def test_unrelated_change_is_not_delivered(self, store):
        received = []

        async def run():
            with store.subscribe(Query("posts").where("userId", "a"), received.append):
                await settle()
                await store.set_document("posts/p1", {"userId": "b"})
                await settle()

        asyncio.run(run())
        assert received == [[]]

    def test_document_subscription(self, store):
        received = []

        async def run():
            with store.subscribe_document("users/u1", received.append):
                await settle()
                await store.set_document("users/u1", {"displayName": "Ann"})
                await settle()
                await store.delete_document("users/u1")
                await settle()

        asyncio.run(run())
        assert received[0] is None
        assert received[1].get("displayName") == "Ann"
        assert received[2] is None

    def test_cancelled_subscription_receives_nothing(self, store):
        received = []

        async def run():
            sub = store.subscribe(Query("posts"), received.append)
            await settle()
            sub.cancel()
            sub.cancel()
            await store.set_document("posts/p1", {})
            await settle()

        asyncio.run(run())
        assert received == [[]]

    def test_handler_error_goes_to_on_error(self, store):
        errors = []

        def handler(docs):
            raise RuntimeError("handler failed")

        async def run():
            with store.subscribe(Query("posts"), handler, errors.append):
                await settle()

        asyncio.run(run())
        assert len(errors) == 1
        assert str(errors[0]) == "handler failed"
