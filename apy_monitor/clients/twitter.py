"""
Twitter/X posting channel.

Uses tweepy's asyncio client so posting does not block the event loop.
"""

from __future__ import annotations

import logging

from tweepy.asynchronous import AsyncClient

from apy_monitor.config import Settings

logger = logging.getLogger(__name__)


class TwitterChannel:
    capability = "twitter"

    def __init__(self, client: AsyncClient):
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "TwitterChannel":
        if not settings.twitter_configured():
            raise RuntimeError("Twitter API credentials not configured in .env")
        client = AsyncClient(
            consumer_key=settings.TWITTER_API_KEY,
            consumer_secret=settings.TWITTER_API_SECRET,
            access_token=settings.TWITTER_ACCESS_TOKEN,
            access_token_secret=settings.TWITTER_ACCESS_TOKEN_SECRET,
        )
        return cls(client)

    async def send_message(self, text: str) -> None:
        result = await self._client.create_tweet(text=text)
        tweet_id = result.data["id"]
        logger.info(f"Tweet posted: {tweet_id}")
