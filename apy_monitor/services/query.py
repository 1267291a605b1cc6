from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from apy_monitor.interfaces import EmbeddingService, MemoryStore
from apy_monitor.models import MemoryEntry, QueryAnswer, QueryIntent, YieldRecord
from apy_monitor.utils.formatting import format_tvl

logger = logging.getLogger(__name__)

QUESTION_KEYWORDS = ("apy", "yield", "rate", "protocol", "tvl")

ASSETS = ("usdc", "usdt", "dai", "eth", "lusd")

# canonical chain name -> aliases matched against the question
CHAIN_ALIASES: Dict[str, Sequence[str]] = {
    "ethereum": ("ethereum", "eth"),
    "optimism": ("optimism", "op"),
    "arbitrum": ("arbitrum", "arb"),
    "polygon": ("polygon", "matic"),
    "bsc": ("bsc", "binance"),
    "gnosis": ("gnosis", "xdai"),
    "avalanche": ("avalanche", "avax"),
}

NO_DATA_MESSAGE = (
    "I don't have any current APY data for this specific network/asset in my memory. "
    "Please try asking about other networks or check general APY rates."
)

NO_MEMORY_MESSAGE = (
    "I don't have relevant data in my memory for this specific query. "
    "Please try asking about general APY rates or specific protocols I track."
)

VALIDATE_THRESHOLD = 0.7
VALIDATE_COUNT = 3
SEARCH_THRESHOLD = 0.8
SEARCH_COUNT = 10


def is_apy_question(text: str) -> bool:
    lowered = text.lower()
    return any(k in lowered for k in QUESTION_KEYWORDS)


def get_query_type(question: str) -> QueryIntent:
    """Classify an already lower-cased question. First matching rule wins."""
    if "best" in question or "highest" in question:
        return QueryIntent.BEST_APY
    if "compare" in question:
        return QueryIntent.COMPARISON
    if "safe" in question or "tvl" in question:
        return QueryIntent.SECURITY
    return QueryIntent.GENERAL


def _by_apy(records: Sequence[YieldRecord]) -> List[YieldRecord]:
    return sorted(records, key=lambda r: r.apy, reverse=True)


def filter_data_by_query(question: str, records: Sequence[YieldRecord]) -> List[YieldRecord]:
    """Narrow `records` to what the question asks about, highest APY first.

    An asset mention wins over a chain mention, but only if some record matches
    the asset. A chain mention with no matching record returns an empty list.
    """
    for asset in ASSETS:
        if asset in question:
            matched = [r for r in records if asset in r.asset.lower()]
            if matched:
                return _by_apy(matched)

    for chain, aliases in CHAIN_ALIASES.items():
        if any(alias in question for alias in aliases):
            return _by_apy([r for r in records if r.chain.lower() == chain])

    return _by_apy(records)


def format_response(intent: QueryIntent, records: Sequence[YieldRecord]) -> str:
    if not records:
        return NO_DATA_MESSAGE

    if intent is QueryIntent.BEST_APY:
        best = records[0]
        return (
            f"Based on my current data, on {best.chain} the highest APY is {best.apy:.2f}% "
            f"for {best.asset} via {best.pool_id} (TVL: {format_tvl(best.tvl)})"
        )

    if intent is QueryIntent.COMPARISON:
        lines = [f"{r.asset} on {r.chain}: {r.apy:.2f}% ({r.pool_id})" for r in records]
        return "Here are the current top yields from my data:\n\n" + "\n".join(lines)

    if intent is QueryIntent.SECURITY:
        safest = sorted(records, key=lambda r: r.tvl or 0.0, reverse=True)[0]
        return (
            f"Based on TVL data, {safest.pool_id} has the highest security with "
            f"{format_tvl(safest.tvl)} TVL and offers {safest.apy:.2f}% APY"
        )

    blocks = [
        f"{r.asset} ({r.chain}):\n"
        f"• APY: {r.apy:.2f}%\n"
        f"• Protocol: {r.pool_id}\n"
        f"• TVL: {format_tvl(r.tvl)}"
        for r in records
    ]
    return "Here are the current yields from my data:\n\n" + "\n\n".join(blocks)


class QueryHandler:
    """Answers free-text yield questions from the yield records held in agent memory."""

    def __init__(self, store: MemoryStore, embedder: EmbeddingService, agent_id: str):
        self.store = store
        self.embedder = embedder
        self.agent_id = agent_id

    async def validate(self, text: str) -> bool:
        if not is_apy_question(text):
            return False
        embedding = await self.embedder.embed(text.lower())
        memories = await self.store.search_entries(embedding, VALIDATE_THRESHOLD, VALIDATE_COUNT)
        return len(memories) > 0

    async def handle(self, text: str, room_id: Optional[str] = None) -> Optional[QueryAnswer]:
        """Return the answer, or None if anything along the way failed."""
        room = room_id or self.agent_id
        try:
            question = text.lower()
            embedding = await self.embedder.embed(question)
            memories = await self.store.search_entries(embedding, SEARCH_THRESHOLD, SEARCH_COUNT)
            records = [r for r in (m.yield_record() for m in memories) if r is not None]

            if not records:
                answer = QueryAnswer(text=NO_MEMORY_MESSAGE, query_type="no_data")
            else:
                filtered = filter_data_by_query(question, records)
                intent = get_query_type(question)
                answer = QueryAnswer(text=format_response(intent, filtered), query_type=intent.value, records=filtered)

            await self.store.create_entry(self._response_entry(answer, room))
            return answer
        except Exception as e:
            logger.exception(f"Error handling APY query: {e}")
            return None

    def _response_entry(self, answer: QueryAnswer, room_id: str) -> MemoryEntry:
        metadata: Dict[str, object] = {"queryType": answer.query_type}
        if answer.records:
            metadata["queryData"] = [r.model_dump(mode="json") for r in answer.records]
        return MemoryEntry(
            id=str(uuid.uuid4()),
            agent_id=self.agent_id,
            room_id=room_id,
            content={
                "text": answer.text,
                "source": "apy_query",
                "type": "response",
                "metadata": metadata,
            },
            created_at=datetime.now(timezone.utc),
        )
