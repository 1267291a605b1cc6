from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List

from apy_monitor.errors import RemoteFetchError
from apy_monitor.interfaces import EmbeddingService, MemoryStore, RemoteDataSource
from apy_monitor.models import MemoryEntry, SyncReport, YieldRecord
from apy_monitor.utils.formatting import format_tvl

logger = logging.getLogger(__name__)

MEMORY_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_DNS, "apy-monitor")


def memory_key(record_id: str) -> str:
    """Memory id for a record. The same record id always yields the same key."""
    return str(uuid.uuid5(MEMORY_NAMESPACE, f"apy-history-{record_id}"))


def build_memory_text(record: YieldRecord) -> str:
    d = record.created_at
    return f"""IMPORTANT DEFI APY INFORMATION:
Asset: {record.asset} ({record.chain})
Protocol Name: {record.pool_id}
Current APY Rate: {record.apy}%
Total Value Locked (TVL): {format_tvl(record.tvl)}
Date: {d.month}/{d.day}/{d.year}

Key Information:
- This is yield farming data for {record.asset} token
- The protocol {record.pool_id} is running on {record.chain} blockchain
- Current annual percentage yield is {record.apy}%
- Total value locked indicates protocol security and popularity

Use Cases:
- Answer questions about {record.asset} APY rates
- Compare yields between different protocols
- Provide historical APY data for {record.chain}
- Reference when discussing DeFi opportunities

Keywords: DeFi, yield farming, APY, {record.asset}, {record.chain}, {record.pool_id}, TVL, annual percentage yield, liquidity"""


class DataSynchronizer:
    """Copies yield records from the trailing window into agent memory, once per record id."""

    def __init__(
        self,
        source: RemoteDataSource,
        store: MemoryStore,
        embedder: EmbeddingService,
        agent_id: str,
        window: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] | None = None,
    ):
        self.source = source
        self.store = store
        self.embedder = embedder
        self.agent_id = agent_id
        self.window = window
        self._now = clock or (lambda: datetime.now(timezone.utc))

    async def known_ids(self) -> Dict[str, datetime]:
        """Ingested record ids mapped to when each record was observed."""
        entries = await self.store.list_entries(self.agent_id)
        ids: Dict[str, datetime] = {}
        for entry in entries:
            data = (entry.content.get("metadata") or {}).get("apyData") or {}
            record_id = data.get("id")
            if record_id:
                seen = entry.created_at
                if seen.tzinfo is None:
                    seen = seen.replace(tzinfo=timezone.utc)
                ids[str(record_id)] = seen
        return ids

    async def sync(self) -> SyncReport:
        since = self._now() - self.window
        existing = await self.known_ids()
        # Older ids cannot pass the created_at filter, so only in-window ids are excluded remotely
        in_window = [i for i, seen in existing.items() if seen >= since]
        logger.info(f"Found {len(existing)} ingested yield records, {len(in_window)} inside the window")

        try:
            remote = await self.source.fetch_records_since(since, in_window)
        except RemoteFetchError as e:
            logger.error(f"Fetching new APY records failed: {e}")
            return SyncReport(ok=False, error=str(e))

        fresh: List[YieldRecord] = [r for r in remote if r.created_at >= since]
        if existing:
            fresh = [r for r in fresh if r.id not in existing]

        report = SyncReport(fetched=len(remote))
        if not fresh:
            logger.info("No new APY records found")
            return report

        logger.info(f"Found {len(fresh)} new records to add: {[r.id for r in fresh]}")
        for record in fresh:
            # One bad record is skipped; the rest of the batch still lands
            try:
                await self._ingest(record)
                report.ingested += 1
            except Exception as e:
                report.failed += 1
                logger.warning(f"Skipping record {record.id}: {e}")

        logger.info(f"Memory update completed: {report.ingested} added, {report.failed} failed")
        return report

    async def _ingest(self, record: YieldRecord) -> None:
        text = build_memory_text(record)
        embedding = await self.embedder.embed(text)
        entry = MemoryEntry(
            id=memory_key(record.id),
            agent_id=self.agent_id,
            room_id=self.agent_id,
            content={
                "text": text,
                "source": "apy_history",
                "type": "historical_apy",
                "metadata": {
                    "apyData": record.model_dump(mode="json"),
                    "tags": ["defi", "apy", record.asset, record.chain, record.pool_id],
                    "importance": "high",
                    "category": "yield_data",
                },
            },
            embedding=embedding,
            created_at=record.created_at,
        )
        await self.store.create_entry(entry)
