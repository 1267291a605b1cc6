from __future__ import annotations
import json
import logging
import time
from typing import Dict, Any, Optional

import httpx

from apy_monitor.config import get_settings

logger = logging.getLogger(__name__)


async def loki_log(
    http: httpx.AsyncClient,
    level: str,
    message: str,
    labels: Optional[Dict[str, str]] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Push one log line to Loki (`${LOKI_URL}/loki/api/v1/push`). No-op when LOKI_URL is unset.
    Best-effort: failures are logged at debug level and never raised.
    """
    settings = get_settings()
    if not settings.LOKI_URL:
        return
    ts_ns = str(int(time.time() * 1_000_000_000))
    stream = labels or {"service": "apy-monitor", "env": settings.ENV, "level": level}
    payload = {
        "streams": [
            {
                "stream": stream,
                "values": [[ts_ns, json.dumps({"message": message, **(extra or {})})]],
            }
        ]
    }
    url = f"{settings.LOKI_URL.rstrip('/')}/loki/api/v1/push"
    try:
        resp = await http.post(url, json=payload, headers={"Content-Type": "application/json"})
        if resp.status_code >= 400:
            logger.debug(f"Loki push rejected: {resp.status_code}")
    except httpx.HTTPError as e:
        logger.debug(f"Loki push failed: {e}")
