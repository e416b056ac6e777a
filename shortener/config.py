"""Configuration management for the URL shortener service.

This module provides centralized configuration using Pydantic BaseSettings
with environment variable support. The settings object is built once by the
application factory and handed to every component that needs it.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  create_app │
    │  (startup)  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ get_        │
    │ settings()  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Inject into │
    │ store/cache │
    │ /services   │
    └─────────────┘

How to Use
===========
**Step 1 — Build once at startup**::
    from shortener.config import get_settings
    settings = get_settings()

**Step 2 — Pass it down**::
    counter = ClickCounter(cache, store, tasks, settings, logger)

Key Behaviours
===============
- Environment variables override defaults automatically.
- ``get_settings()`` is cached so repeated calls return the same object.
- Tests construct ``Settings(...)`` directly with overrides.

Classes:
    Settings:  Pydantic model for all configuration values.
"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "url-shortener"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8080"
    LOG_LEVEL: str = "INFO"
    CORS_ALLOW_ORIGINS: list[str] = ["*"]

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://urlshortener:urlshortener@db:5432/urlshortener"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    # Short code config
    SHORT_URL_PATH_PREFIX: str = "urls"
    SHORT_CODE_LENGTH: int = 6
    SHORT_CODE_MAX_ATTEMPTS: int = 10
    CUSTOM_CODE_MIN_LENGTH: int = 6
    CUSTOM_CODE_MAX_LENGTH: int = 20

    # Cache TTLs
    URL_CACHE_TTL_SECONDS: int = 24 * 3600
    SENTINEL_TTL_SECONDS: int = 300

    # Click batching
    CLICK_FLUSH_BATCH_SIZE: int = 10
    CLICK_COUNTER_TTL_SECONDS: int = 30 * 24 * 3600
    BACKGROUND_TASK_TIMEOUT_SECONDS: float = 5.0

    # Link lifecycle
    ANONYMOUS_EXPIRY_HOURS: int = 168
    ANONYMOUS_MAX_EXPIRY_HOURS: int = 10 * 365 * 24
    DEFAULT_PER_PAGE: int = 10
    MAX_PER_PAGE: int = 100

    # Background cache warmer
    CACHE_WARMER_ENABLED: bool = True
    CACHE_WARMER_INTERVAL_SECONDS: int = 3600
    CACHE_WARMER_TOP_N: int = 1000

    # Per-IP rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_REQUESTS_PER_MINUTE: int = 100
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_MAX_VIOLATIONS: int = 3
    RATE_LIMIT_VIOLATION_WINDOW_SECONDS: int = 600
    RATE_LIMIT_BLOCK_SECONDS: int = 30 * 60
    RATE_LIMIT_EXEMPT_PATHS: list[str] = ["/health", "/metrics"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
