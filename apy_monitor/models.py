from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class YieldRecord(BaseModel):
    """One observed yield-bearing position, as stored in the hosted `apy_history` table."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str = Field(..., description="Stable unique identifier from the source table")
    asset: str
    chain: str
    apy: float = Field(..., description="Annual percentage yield in %")
    tvl: Optional[float] = Field(default=None, description="Total value locked in USD, None when unknown")
    pool_id: str = Field(..., description="Protocol / pool label")
    created_at: datetime
    timestamp: Optional[float] = None

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class QueryIntent(str, Enum):
    BEST_APY = "best_apy"
    COMPARISON = "comparison"
    SECURITY = "security"
    GENERAL = "general"


class MemoryEntry(BaseModel):
    id: str
    agent_id: str
    room_id: str
    content: Dict[str, Any] = Field(default_factory=dict)
    embedding: Optional[List[float]] = None
    created_at: datetime

    def yield_record(self) -> Optional[YieldRecord]:
        metadata = self.content.get("metadata") or {}
        data = metadata.get("apyData")
        if not data:
            return None
        return YieldRecord(**data)


class SyncReport(BaseModel):
    ok: bool = True
    fetched: int = 0
    ingested: int = 0
    failed: int = 0
    error: Optional[str] = None


class QueryRequest(BaseModel):
    text: str = Field(..., min_length=1)
    room_id: Optional[str] = None


class QueryAnswer(BaseModel):
    text: str
    query_type: str
    records: List[YieldRecord] = Field(default_factory=list)


class QueryResponse(BaseModel):
    handled: bool
    text: Optional[str] = None
    query_type: Optional[str] = None
    records: List[YieldRecord] = Field(default_factory=list)


class PublishResult(BaseModel):
    posted: bool
    records: int


class ServiceStatus(BaseModel):
    running: bool
    publish_interval_minutes: float
    sync_interval_minutes: float
    last_sync_at: Optional[int]
    last_publish_at: Optional[int]
    memories: int
