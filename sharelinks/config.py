"""Configuration management for the share-link service.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Import**::
    from sharelinks.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    db_url = settings.DATABASE_URL

**Step 3 — Override in the environment**::
    export SHORT_ID_LENGTH=10
    export BASE_URL=https://nexora.app

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- SHORT_ID_LENGTH is bounded to 6..10 characters.
- BASE_URL is optional; when unset the public short URL is built from the
  incoming request's base URL.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "sharelinks"
    APP_ENV: str = "development"
    BASE_URL: str | None = None
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://sharelinks:sharelinks@db:5432/sharelinks"

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    REDIS_REPLICA_URL: str = "redis://redis-replica:6379/0"

    # Short identifier config
    SHORT_ID_LENGTH: int = Field(8, ge=6, le=10)
    SHORT_ID_MAX_ATTEMPTS: int = Field(5, ge=1)
    DEFAULT_EXPIRES_IN_DAYS: float = 30

    # Lookup cache and stampede protection
    LINK_CACHE_TTL_SECONDS: int = 3600
    CACHE_LOCK_TTL_SECONDS: int = 3
    CACHE_LOCK_RETRY_COUNT: int = 3
    CACHE_LOCK_RETRY_DELAY_SECONDS: float = 0.05

    # Redirect hot path timeouts
    LOOKUP_TIMEOUT_SECONDS: float = 2.0
    ANALYTICS_WRITE_TIMEOUT_SECONDS: float = 2.0

    # Click events
    CLICK_STREAM_KEY: str = "share_click_events"
    KAFKA_BOOTSTRAP_SERVERS: str = "kafka:9092"
    KAFKA_CLICK_TOPIC: str = "share_clicks"
    KAFKA_TRACK_TOPIC: str = "share_tracks"

    # Bearer tokens issued by the portal auth service
    JWT_SECRET: str = "devsecret"
    JWT_ALGORITHM: str = "HS256"

    # Admin share stats
    ADMIN_TOP_MAX_LIMIT: int = 50
    ADMIN_RECENT_MAX_LIMIT: int = 100

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
