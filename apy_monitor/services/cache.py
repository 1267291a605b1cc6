from __future__ import annotations

import json
import logging
from typing import List

from redis.asyncio import Redis

from apy_monitor.models import YieldRecord

logger = logging.getLogger(__name__)

LATEST_TOP_KEY = "apy:latest_top"


class Cache:
    def __init__(self, redis: Redis, ttl_seconds: int = 24 * 3600):
        self.r = redis
        self.ttl = ttl_seconds

    async def save_latest_top(self, records: List[YieldRecord]) -> None:
        payload = json.dumps([r.model_dump(mode="json") for r in records])
        await self.r.set(LATEST_TOP_KEY, payload, ex=self.ttl)

    async def get_latest_top(self) -> List[YieldRecord]:
        data = await self.r.get(LATEST_TOP_KEY)
        if not data:
            return []
        return [YieldRecord(**x) for x in json.loads(data)]
