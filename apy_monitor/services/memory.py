from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import PyMongoError

from apy_monitor.errors import PersistenceError
from apy_monitor.models import MemoryEntry

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.shape != vb.shape:
        return 0.0
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def _to_doc(entry: MemoryEntry) -> Dict[str, Any]:
    doc = entry.model_dump(mode="json", exclude={"id", "created_at"})
    doc["_id"] = entry.id
    doc["created_at"] = entry.created_at
    return doc


def _from_doc(doc: Dict[str, Any]) -> MemoryEntry:
    data = dict(doc)
    data["id"] = str(data.pop("_id"))
    return MemoryEntry(**data)


class MongoMemoryStore:
    """Agent memory backed by the isolated `apy_monitor_memories` collection."""

    def __init__(self, collection: AsyncIOMotorCollection, agent_id: str):
        self.col = collection
        self.agent_id = agent_id

    async def create_entry(self, entry: MemoryEntry) -> None:
        # Insert-only: an existing key is left untouched
        try:
            await self.col.update_one({"_id": entry.id}, {"$setOnInsert": _to_doc(entry)}, upsert=True)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to persist memory {entry.id}: {e}") from e

    async def list_entries(self, room_id: str) -> List[MemoryEntry]:
        cursor = self.col.find({"agent_id": self.agent_id, "room_id": room_id}).sort("created_at", -1)
        return [_from_doc(d) async for d in cursor]

    async def count_entries(self, room_id: str) -> int:
        return await self.col.count_documents({"agent_id": self.agent_id, "room_id": room_id})

    async def search_entries(
        self,
        embedding: Sequence[float],
        match_threshold: float,
        match_count: int,
        room_id: Optional[str] = None,
    ) -> List[MemoryEntry]:
        query: Dict[str, Any] = {"agent_id": self.agent_id, "embedding": {"$ne": None}}
        if room_id:
            query["room_id"] = room_id
        scored: List[Tuple[float, MemoryEntry]] = []
        async for doc in self.col.find(query):
            score = cosine_similarity(embedding, doc["embedding"])
            if score >= match_threshold:
                scored.append((score, _from_doc(doc)))
        scored.sort(key=lambda s: s[0], reverse=True)
        return [entry for _, entry in scored[:match_count]]
