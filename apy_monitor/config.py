from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from apy_monitor.errors import ConfigurationError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Runtime
    ENV: str = Field(default="development")
    LOG_LEVEL: str = Field(default="INFO")
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)
    AGENT_ID: str = Field(default="apy-monitor")

    # Hosted database (required)
    SUPABASE_URL: str | None = None
    SUPABASE_KEY: str | None = None
    SUPABASE_HISTORY_TABLE: str = Field(default="apy_history")
    SUPABASE_LATEST_RPC: str = Field(default="get_latest_apy")

    # Timers, in minutes
    APY_TWEET_INTERVAL: int = Field(default=1440, gt=0)
    APY_MEMORY_UPDATE_INTERVAL: int = Field(default=20, gt=0)
    APY_SYNC_WINDOW_HOURS: int = Field(default=24, gt=0)
    APY_TOP_LIMIT: int = Field(default=3, gt=0)

    # Memory store
    MONGODB_URI: str = Field(default="mongodb://localhost:27017")
    MONGO_DB_NAME: str = Field(default="apy_monitor")

    # Snapshot cache
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    ENABLE_REDIS: bool = Field(default=False)

    # Observability
    LOKI_URL: str | None = None

    # Embeddings (OpenAI-compatible)
    EMBEDDING_API_URL: str = Field(default="https://api.openai.com/v1")
    EMBEDDING_API_KEY: str | None = None
    EMBEDDING_MODEL: str = Field(default="text-embedding-3-small")

    # Twitter posting channel
    TWITTER_API_KEY: str | None = None
    TWITTER_API_SECRET: str | None = None
    TWITTER_ACCESS_TOKEN: str | None = None
    TWITTER_ACCESS_TOKEN_SECRET: str | None = None

    def require_database(self) -> None:
        missing: List[str] = []
        if not self.SUPABASE_URL:
            missing.append("SUPABASE_URL")
        if not self.SUPABASE_KEY:
            missing.append("SUPABASE_KEY")
        if missing:
            raise ConfigurationError(
                f"{' and '.join(missing)} must be set in environment (.env)"
            )

    def twitter_configured(self) -> bool:
        return all(
            [
                self.TWITTER_API_KEY,
                self.TWITTER_API_SECRET,
                self.TWITTER_ACCESS_TOKEN,
                self.TWITTER_ACCESS_TOKEN_SECRET,
            ]
        )

    def publish_interval_seconds(self) -> float:
        return self.APY_TWEET_INTERVAL * 60.0

    def sync_interval_seconds(self) -> float:
        return self.APY_MEMORY_UPDATE_INTERVAL * 60.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
