from __future__ import annotations

import logging
from typing import Dict, List

import httpx

from apy_monitor.errors import RemoteFetchError
from apy_monitor.http import HttpClient

logger = logging.getLogger(__name__)


class EmbeddingClient:
    """OpenAI-compatible `/embeddings` endpoint."""

    def __init__(self, http: HttpClient, base_url: str, model: str, api_key: str | None = None):
        self.http = http
        self.url = f"{base_url.rstrip('/')}/embeddings"
        self.model = model
        self._headers: Dict[str, str] = {"Content-Type": "application/json"}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"

    async def embed(self, text: str) -> List[float]:
        try:
            resp = await self.http.post(self.url, json={"model": self.model, "input": text}, headers=self._headers)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise RemoteFetchError(f"Embedding request failed: {e}") from e
        try:
            payload = resp.json()
        except ValueError as e:
            raise RemoteFetchError(f"Invalid JSON from {resp.request.url}") from e
        if not isinstance(payload, dict):
            raise RemoteFetchError(f"Unexpected payload from {resp.request.url}: {type(payload).__name__}")
        data = payload.get("data") or []
        if not isinstance(data, list) or not data or not isinstance(data[0], dict) or "embedding" not in data[0]:
            raise RemoteFetchError("Embedding response carried no vector")
        return [float(x) for x in data[0]["embedding"]]
