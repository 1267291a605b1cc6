from __future__ import annotations

import logging
from datetime import timedelta
from typing import List

import httpx
from fastapi import FastAPI, HTTPException, Query

from apy_monitor import db
from apy_monitor.background import ApyMonitorService
from apy_monitor.clients.embeddings import EmbeddingClient
from apy_monitor.clients.redis import close_redis, get_redis
from apy_monitor.clients.supabase import SupabaseSource
from apy_monitor.clients.twitter import TwitterChannel
from apy_monitor.config import get_settings
from apy_monitor.errors import RemoteFetchError
from apy_monitor.http import HttpClient
from apy_monitor.models import (
    PublishResult,
    QueryRequest,
    QueryResponse,
    ServiceStatus,
    SyncReport,
    YieldRecord,
)
from apy_monitor.services.cache import Cache
from apy_monitor.services.memory import MongoMemoryStore
from apy_monitor.services.publisher import ChannelRegistry, Publisher
from apy_monitor.services.query import QueryHandler
from apy_monitor.services.sync import DataSynchronizer
from apy_monitor.utils.logging import setup_logging
from apy_monitor.utils.loki import loki_log

app = FastAPI(title="APY Monitor", version="1.0.0")

logger = logging.getLogger(__name__)


@app.middleware("http")
async def _loki_logger(request, call_next):
    response = await call_next(request)
    http = getattr(app.state, "loki_http", None)
    if http is not None:
        await loki_log(
            http,
            "INFO",
            "request",
            extra={
                "path": str(request.url.path),
                "method": request.method,
                "status": response.status_code,
                "client_ip": request.client.host if request.client else None,
            },
        )
    return response


@app.on_event("startup")
async def startup_event() -> None:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    # Missing database credentials abort startup
    settings.require_database()

    await db.connect()
    app.state.http = HttpClient()
    app.state.loki_http = httpx.AsyncClient(timeout=5.0) if settings.LOKI_URL else None

    if settings.ENABLE_REDIS:
        app.state.cache = Cache(await get_redis())
    else:
        app.state.cache = None

    source = SupabaseSource(
        app.state.http,
        settings.SUPABASE_URL,
        settings.SUPABASE_KEY,
        table=settings.SUPABASE_HISTORY_TABLE,
        latest_rpc=settings.SUPABASE_LATEST_RPC,
    )
    embedder = EmbeddingClient(
        app.state.http,
        settings.EMBEDDING_API_URL,
        settings.EMBEDDING_MODEL,
        api_key=settings.EMBEDDING_API_KEY,
    )
    store = MongoMemoryStore(db.memories_collection(), settings.AGENT_ID)

    registry = ChannelRegistry()
    if settings.twitter_configured():
        registry.register(TwitterChannel.capability, TwitterChannel.from_settings(settings))

    app.state.source = source
    app.state.store = store
    app.state.query_handler = QueryHandler(store, embedder, settings.AGENT_ID)
    app.state.monitor = ApyMonitorService(
        source=source,
        synchronizer=DataSynchronizer(
            source,
            store,
            embedder,
            settings.AGENT_ID,
            window=timedelta(hours=settings.APY_SYNC_WINDOW_HOURS),
        ),
        publisher=Publisher(registry),
        publish_interval=settings.publish_interval_seconds(),
        sync_interval=settings.sync_interval_seconds(),
        top_limit=settings.APY_TOP_LIMIT,
        cache=app.state.cache,
    )
    await app.state.monitor.initialize()
    logger.info(
        "APY monitor ready (post every %s min, sync every %s min)",
        settings.APY_TWEET_INTERVAL,
        settings.APY_MEMORY_UPDATE_INTERVAL,
    )


@app.on_event("shutdown")
async def shutdown_event() -> None:
    if getattr(app.state, "monitor", None):
        await app.state.monitor.stop()
    await close_redis()
    if getattr(app.state, "http", None):
        await app.state.http.aclose()
    if getattr(app.state, "loki_http", None):
        await app.state.loki_http.aclose()
    await db.close()


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/api/apy/query", response_model=QueryResponse)
async def post_query(req: QueryRequest):
    handler: QueryHandler = app.state.query_handler
    try:
        relevant = await handler.validate(req.text)
    except RemoteFetchError as e:
        logger.warning(f"Query validation failed: {e}")
        relevant = False
    if not relevant:
        return QueryResponse(handled=False)

    answer = await handler.handle(req.text, req.room_id)
    if answer is None:
        raise HTTPException(status_code=500, detail="Failed to handle APY query")
    return QueryResponse(handled=True, text=answer.text, query_type=answer.query_type, records=answer.records)


@app.get("/api/apy/top", response_model=List[YieldRecord])
async def get_top(limit: int = Query(3, ge=1, le=50)):
    cache = getattr(app.state, "cache", None)
    records: List[YieldRecord] = []
    if cache:
        records = await cache.get_latest_top()
    if len(records) < limit:
        try:
            records = await app.state.source.fetch_top_records(limit)
        except RemoteFetchError as e:
            raise HTTPException(status_code=502, detail=str(e))
        if cache:
            await cache.save_latest_top(records)
    return records[:limit]


@app.post("/api/apy/sync", response_model=SyncReport)
async def post_sync():
    return await app.state.monitor.sync_memory()


@app.post("/api/apy/publish", response_model=PublishResult)
async def post_publish():
    monitor: ApyMonitorService = app.state.monitor
    try:
        return await monitor.check_and_publish()
    except RemoteFetchError as e:
        raise HTTPException(status_code=502, detail=str(e))


@app.get("/api/apy/status", response_model=ServiceStatus)
async def get_status():
    settings = get_settings()
    monitor: ApyMonitorService = app.state.monitor
    return ServiceStatus(
        running=monitor.running,
        publish_interval_minutes=monitor.publish_interval / 60.0,
        sync_interval_minutes=monitor.sync_interval / 60.0,
        last_sync_at=monitor.last_sync_at,
        last_publish_at=monitor.last_publish_at,
        memories=await app.state.store.count_entries(settings.AGENT_ID),
    )
