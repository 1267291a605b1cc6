from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence

from apy_monitor.errors import NoChannelAvailable
from apy_monitor.interfaces import PostingChannel
from apy_monitor.models import YieldRecord
from apy_monitor.utils.formatting import format_tvl

logger = logging.getLogger(__name__)

POSTING_CAPABILITY = "twitter"


class ChannelRegistry:
    """Posting channels keyed by capability tag."""

    def __init__(self) -> None:
        self._channels: Dict[str, PostingChannel] = {}

    def register(self, capability: str, channel: PostingChannel) -> None:
        self._channels[capability] = channel
        logger.info(f"Registered posting channel '{capability}'")

    def get(self, capability: str) -> PostingChannel:
        try:
            return self._channels[capability]
        except KeyError:
            raise NoChannelAvailable(f"No posting channel registered for '{capability}'") from None


def format_update(records: Sequence[YieldRecord]) -> str:
    sections = [
        f"🏆 #{rank}\n"
        f"Asset: {r.asset}\n"
        f"Chain: {r.chain}\n"
        f"Protocol: {r.pool_id}\n"
        f"APY: {r.apy:.2f}%\n"
        f"TVL: {format_tvl(r.tvl)}"
        for rank, r in enumerate(records, start=1)
    ]
    return "\n\n".join(sections)


class Publisher:
    def __init__(self, registry: ChannelRegistry, capability: str = POSTING_CAPABILITY):
        self.capability = capability
        self.channel: Optional[PostingChannel]
        try:
            self.channel = registry.get(capability)
        except NoChannelAvailable as e:
            self.channel = None
            logger.info(f"{e}, updates will not be posted")

    async def publish(self, records: Sequence[YieldRecord]) -> bool:
        """Post a ranked summary. Returns True only when the channel accepted it."""
        if not records:
            return False
        if self.channel is None:
            return False

        text = format_update(records)
        logger.info(f"Posting APY update:\n{text}")
        try:
            await self.channel.send_message(text)
        except Exception:
            logger.exception("Error posting APY update")
            return False
        logger.info("APY update sent")
        return True
