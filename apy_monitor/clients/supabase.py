from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List

import httpx
from pydantic import ValidationError

from apy_monitor.errors import RemoteFetchError
from apy_monitor.http import HttpClient
from apy_monitor.models import YieldRecord

logger = logging.getLogger(__name__)


def _in_list(values: Iterable[str]) -> str:
    quoted = ",".join('"{}"'.format(v.replace('"', '\\"')) for v in values)
    return f"({quoted})"


class SupabaseSource:
    """Reads yield records from the hosted Postgres database through its REST (PostgREST) API.

    Docs: https://postgrest.org/en/stable/references/api/tables_views.html
    """

    def __init__(
        self,
        http: HttpClient,
        url: str,
        key: str,
        table: str = "apy_history",
        latest_rpc: str = "get_latest_apy",
    ):
        self.http = http
        self.base = f"{url.rstrip('/')}/rest/v1"
        self.table = table
        self.latest_rpc = latest_rpc
        self._headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Accept": "application/json",
        }

    async def fetch_top_records(self, limit: int) -> List[YieldRecord]:
        url = f"{self.base}/rpc/{self.latest_rpc}"
        params = {"order": "apy.desc", "limit": limit}
        try:
            resp = await self.http.post(url, json={}, params=params, headers=self._headers)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise RemoteFetchError(f"{self.latest_rpc} failed: {e}") from e
        return self._parse(resp)

    async def fetch_records_since(self, since: datetime, exclude_ids: Iterable[str] = ()) -> List[YieldRecord]:
        url = f"{self.base}/{self.table}"
        params: Dict[str, Any] = {"select": "*", "created_at": f"gte.{since.isoformat()}"}
        ids = sorted({i for i in exclude_ids if i})
        if ids:
            params["id"] = f"not.in.{_in_list(ids)}"
        try:
            resp = await self.http.get(url, params=params, headers=self._headers)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise RemoteFetchError(f"{self.table} query failed: {e}") from e
        return self._parse(resp)

    def _parse(self, resp: httpx.Response) -> List[YieldRecord]:
        try:
            rows = resp.json()
        except ValueError as e:
            raise RemoteFetchError(f"Invalid JSON from {resp.request.url}") from e
        if not isinstance(rows, list):
            raise RemoteFetchError(f"Unexpected payload from {resp.request.url}: {type(rows).__name__}")
        out: List[YieldRecord] = []
        for row in rows:
            try:
                out.append(YieldRecord(**row))
            except (TypeError, ValidationError) as e:
                logger.debug(f"Skipping malformed record: {e}")
        return out
