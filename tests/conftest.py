"""Shared fixtures and in-memory collaborators for APY monitor tests."""

from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence

import pytest

from apy_monitor.errors import RemoteFetchError
from apy_monitor.models import MemoryEntry, YieldRecord

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_record(
    id: str,
    asset: str = "USDC",
    chain: str = "ethereum",
    apy: float = 5.0,
    tvl: Optional[float] = 12_500_000.0,
    pool_id: str = "aave-v3",
    created_at: datetime = NOW - timedelta(hours=1),
) -> YieldRecord:
    return YieldRecord(
        id=id,
        asset=asset,
        chain=chain,
        apy=apy,
        tvl=tvl,
        pool_id=pool_id,
        created_at=created_at,
        timestamp=created_at.timestamp(),
    )


class FakeMemoryStore:
    def __init__(self) -> None:
        self.entries: Dict[str, MemoryEntry] = {}
        self.writes = 0

    async def create_entry(self, entry: MemoryEntry) -> None:
        self.writes += 1
        self.entries.setdefault(entry.id, entry)

    async def list_entries(self, room_id: str) -> List[MemoryEntry]:
        return [e for e in self.entries.values() if e.room_id == room_id]

    async def search_entries(
        self,
        embedding: Sequence[float],
        match_threshold: float,
        match_count: int,
        room_id: Optional[str] = None,
    ) -> List[MemoryEntry]:
        found = [
            e
            for e in self.entries.values()
            if e.embedding is not None and (room_id is None or e.room_id == room_id)
        ]
        return found[:match_count]

    async def count_entries(self, room_id: str) -> int:
        return len(await self.list_entries(room_id))


class FakeSource:
    def __init__(self, records: Iterable[YieldRecord] = (), error: Optional[str] = None) -> None:
        self.records = list(records)
        self.error = error
        self.since_calls: List[tuple] = []

    async def fetch_top_records(self, limit: int) -> List[YieldRecord]:
        if self.error:
            raise RemoteFetchError(self.error)
        return sorted(self.records, key=lambda r: r.apy, reverse=True)[:limit]

    async def fetch_records_since(self, since: datetime, exclude_ids: Iterable[str] = ()) -> List[YieldRecord]:
        exclude = set(exclude_ids)
        self.since_calls.append((since, exclude))
        if self.error:
            raise RemoteFetchError(self.error)
        return [r for r in self.records if r.created_at >= since and r.id not in exclude]


class FakeEmbedder:
    def __init__(self, fail_on: Optional[str] = None) -> None:
        self.fail_on = fail_on
        self.texts: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.texts.append(text)
        if self.fail_on and self.fail_on in text:
            raise RemoteFetchError("embedding service unavailable")
        return [1.0, 0.0, 0.0]


class FakeChannel:
    def __init__(self) -> None:
        self.sent: List[str] = []

    async def send_message(self, text: str) -> None:
        self.sent.append(text)


@pytest.fixture
def usdc_records() -> List[YieldRecord]:
    return [
        make_record("1", asset="USDC", chain="ethereum", apy=5.0),
        make_record("2", asset="USDC", chain="optimism", apy=7.2, pool_id="velodrome"),
    ]


@pytest.fixture
def store() -> FakeMemoryStore:
    return FakeMemoryStore()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()
