from __future__ import annotations

import logging
from typing import Optional, Set

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import CollectionInvalid

from apy_monitor.config import get_settings

logger = logging.getLogger(__name__)

MEMORIES = "apy_monitor_memories"

ALLOWED_COLLECTIONS: Set[str] = {MEMORIES}

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


async def connect() -> None:
    global _client, _db
    if _client is not None and _db is not None:
        return

    settings = get_settings()
    _client = AsyncIOMotorClient(
        settings.MONGODB_URI,
        serverSelectionTimeoutMS=5000,
        connectTimeoutMS=5000,
        retryWrites=True,
        appname="apy-monitor",
    )
    _db = _client[settings.MONGO_DB_NAME]

    existing = set(await _db.list_collection_names())
    for name in ALLOWED_COLLECTIONS:
        if name not in existing:
            try:
                await _db.create_collection(name)
            except CollectionInvalid:
                # Created by a racing process
                pass
    await _db[MEMORIES].create_index([("agent_id", ASCENDING), ("room_id", ASCENDING), ("created_at", ASCENDING)])

    logger.info("Memory store connected to %s/%s", settings.MONGO_DB_NAME, MEMORIES)


async def close() -> None:
    global _client, _db
    if _client:
        _client.close()
    _client = None
    _db = None


def get_collection(name: str) -> AsyncIOMotorCollection:
    """Return a handle to one of the service's own collections.

    Raises PermissionError for any other collection name.
    """
    if name not in ALLOWED_COLLECTIONS:
        raise PermissionError(
            f"Access to collection '{name}' is not allowed. Use one of: {sorted(ALLOWED_COLLECTIONS)}"
        )
    if _db is None:
        raise RuntimeError("Database not initialized. Call connect() on startup.")
    return _db[name]


def memories_collection() -> AsyncIOMotorCollection:
    return get_collection(MEMORIES)
