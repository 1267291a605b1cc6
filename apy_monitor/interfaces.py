from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Protocol, Sequence

from apy_monitor.models import MemoryEntry, YieldRecord


class RemoteDataSource(Protocol):
    async def fetch_top_records(self, limit: int) -> List[YieldRecord]: ...

    async def fetch_records_since(self, since: datetime, exclude_ids: Iterable[str] = ()) -> List[YieldRecord]: ...


class MemoryStore(Protocol):
    async def create_entry(self, entry: MemoryEntry) -> None: ...

    async def list_entries(self, room_id: str) -> List[MemoryEntry]: ...

    async def search_entries(
        self,
        embedding: Sequence[float],
        match_threshold: float,
        match_count: int,
        room_id: Optional[str] = None,
    ) -> List[MemoryEntry]: ...


class EmbeddingService(Protocol):
    async def embed(self, text: str) -> List[float]: ...


class PostingChannel(Protocol):
    async def send_message(self, text: str) -> None: ...
