"""Tests for the MongoDB-backed memory store."""

from typing import Any, Dict, List

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from apy_monitor.errors import PersistenceError
from apy_monitor.models import MemoryEntry
from apy_monitor.services.memory import MongoMemoryStore, cosine_similarity
from conftest import NOW


class _Cursor:
    def __init__(self, docs: List[Dict[str, Any]]):
        self.docs = docs

    def sort(self, key, direction):
        self.docs = sorted(self.docs, key=lambda d: d[key], reverse=direction < 0)
        return self

    def __aiter__(self):
        self._it = iter(self.docs)
        return self

    async def __anext__(self):
        try:
            return next(self._it)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    """Just enough of a motor collection for MongoMemoryStore."""

    def __init__(self):
        self.docs: Dict[str, Dict[str, Any]] = {}
        self.fail = False

    async def update_one(self, filter, update, upsert=False):
        if self.fail:
            raise ServerSelectionTimeoutError("no servers")
        key = filter["_id"]
        if key not in self.docs and upsert:
            self.docs[key] = dict(update["$setOnInsert"])

    def _match(self, doc, query):
        for k, v in query.items():
            if isinstance(v, dict) and "$ne" in v:
                if doc.get(k) == v["$ne"]:
                    return False
            elif doc.get(k) != v:
                return False
        return True

    def find(self, query):
        return _Cursor([d for d in self.docs.values() if self._match(d, query)])

    async def count_documents(self, query):
        return len([d for d in self.docs.values() if self._match(d, query)])


def _entry(id, room="agent", embedding=None, text="x"):
    return MemoryEntry(
        id=id,
        agent_id="agent",
        room_id=room,
        content={"text": text},
        embedding=embedding,
        created_at=NOW,
    )


def test_cosine_similarity():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([0, 0], [1, 0]) == 0.0
    assert cosine_similarity([1, 0, 0], [1, 0]) == 0.0


class TestMongoMemoryStore:
    @pytest.mark.asyncio
    async def test_create_is_insert_only(self):
        col = FakeCollection()
        store = MongoMemoryStore(col, "agent")

        await store.create_entry(_entry("k", text="first"))
        await store.create_entry(_entry("k", text="second"))

        entries = await store.list_entries("agent")
        assert len(entries) == 1
        assert entries[0].content["text"] == "first"
        assert await store.count_entries("agent") == 1

    @pytest.mark.asyncio
    async def test_list_is_scoped_to_room(self):
        store = MongoMemoryStore(FakeCollection(), "agent")
        await store.create_entry(_entry("a"))
        await store.create_entry(_entry("b", room="room-1"))
        assert [e.id for e in await store.list_entries("room-1")] == ["b"]

    @pytest.mark.asyncio
    async def test_search_ranks_by_similarity(self):
        store = MongoMemoryStore(FakeCollection(), "agent")
        await store.create_entry(_entry("exact", embedding=[1.0, 0.0]))
        await store.create_entry(_entry("close", embedding=[0.9, 0.1]))
        await store.create_entry(_entry("far", embedding=[0.0, 1.0]))
        await store.create_entry(_entry("plain"))

        found = await store.search_entries([1.0, 0.0], match_threshold=0.8, match_count=10)
        assert [e.id for e in found] == ["exact", "close"]

        top = await store.search_entries([1.0, 0.0], match_threshold=0.0, match_count=1)
        assert [e.id for e in top] == ["exact"]

    @pytest.mark.asyncio
    async def test_write_failure_is_persistence_error(self):
        col = FakeCollection()
        col.fail = True
        with pytest.raises(PersistenceError):
            await MongoMemoryStore(col, "agent").create_entry(_entry("k"))
