from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Set

from apy_monitor.interfaces import RemoteDataSource
from apy_monitor.models import PublishResult, SyncReport
from apy_monitor.services.cache import Cache
from apy_monitor.services.publisher import Publisher
from apy_monitor.services.sync import DataSynchronizer

logger = logging.getLogger(__name__)


@dataclass
class _Timers:
    stopping: asyncio.Event = field(default_factory=asyncio.Event)
    tasks: List[asyncio.Task] = field(default_factory=list)


class ApyMonitorService:
    """Runs the publish and memory-sync timers for the lifetime of the app.

    Both timers fire first one full interval after `initialize()`. A tick that
    raises is logged and the timer keeps going; a tick that is still running when
    its timer fires again causes that firing to be skipped.
    """

    def __init__(
        self,
        source: RemoteDataSource,
        synchronizer: DataSynchronizer,
        publisher: Publisher,
        publish_interval: float,
        sync_interval: float,
        top_limit: int = 3,
        cache: Optional[Cache] = None,
    ):
        self.source = source
        self.synchronizer = synchronizer
        self.publisher = publisher
        self.publish_interval = publish_interval
        self.sync_interval = sync_interval
        self.top_limit = top_limit
        self.cache = cache
        self.last_sync_at: int | None = None
        self.last_publish_at: int | None = None
        self._timers: _Timers | None = None
        self._inflight: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._timers is not None

    async def initialize(self) -> None:
        if self._timers is not None:
            return
        timers = _Timers()
        timers.tasks = [
            asyncio.create_task(self._run_timer("publish", self.publish_interval, self.check_and_publish, timers.stopping)),
            asyncio.create_task(self._run_timer("memory sync", self.sync_interval, self.sync_memory, timers.stopping)),
        ]
        self._timers = timers

    async def stop(self) -> None:
        timers, self._timers = self._timers, None
        if timers is None:
            return
        timers.stopping.set()
        await asyncio.gather(*timers.tasks)
        logger.info("APY monitor timers stopped")

    async def check_and_publish(self) -> PublishResult:
        logger.info("Checking APY updates for posting...")
        records = await self.source.fetch_top_records(self.top_limit)
        self.last_publish_at = int(time.time())
        if not records:
            logger.info("No APY records to post")
            return PublishResult(posted=False, records=0)
        if self.cache is not None:
            await self.cache.save_latest_top(records)
        posted = await self.publisher.publish(records)
        return PublishResult(posted=posted, records=len(records))

    async def sync_memory(self) -> SyncReport:
        logger.info("Checking new APY records for memory...")
        report = await self.synchronizer.sync()
        self.last_sync_at = int(time.time())
        return report

    async def _run_timer(
        self,
        name: str,
        interval: float,
        action: Callable[[], Awaitable[object]],
        stopping: asyncio.Event,
    ) -> None:
        logger.info(f"{name} timer started (interval={interval}s)")
        current: asyncio.Task | None = None
        while True:
            try:
                await asyncio.wait_for(stopping.wait(), timeout=interval)
                return
            except asyncio.TimeoutError:
                pass
            if current is not None and not current.done():
                logger.warning(f"Previous {name} tick still running, skipping this one")
                continue
            current = asyncio.create_task(self._tick(name, action))
            self._inflight.add(current)
            current.add_done_callback(self._inflight.discard)

    async def _tick(self, name: str, action: Callable[[], Awaitable[object]]) -> None:
        # Log-and-continue: a failed tick never stops its timer
        try:
            await action()
        except Exception as e:
            logger.exception(f"{name} tick failed: {e}")
