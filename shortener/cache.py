"""Redis-backed fast cache for short-code mappings and click counters.

The cache is shared, mutable and volatile: any component may read or write
any key, and any key may vanish at any time. Components depend on the
``LinkCache`` protocol, not on a concrete Redis client, so a test double or a
different backend can be injected.

Key Layout
==========
::
    url:<short_code>     → long URL, or a CacheSentinel marker (short TTL)
    clicks:<short_code>  → running click counter (INCR, 30 day TTL)
    rate_limit:*:<ip>    → per-IP request counters and blocks (see rate_limiter)

How to Use
===========
**Step 1 — Wrap a client**::
    cache = RedisLinkCache(redis.from_url(settings.REDIS_URL, decode_responses=True), logger)

**Step 2 — Use the capability**::
    await cache.set(url_key("abc123"), "https://example.com", ttl=3600)
    total = await cache.incr(clicks_key("abc123"))

Key Behaviours
===============
- Every ``redis.RedisError`` (connection refused, timeout, ...) surfaces as
  ``CacheUnavailableError``; callers decide whether that is fatal.
- ``set_many`` uses a non-transactional pipeline; ``get_many`` uses MGET.

Functions:
    url_key():  Key holding the long URL for a code.
    clicks_key():  Key holding the click counter for a code.
    build_redis_client():  Create the redis.asyncio client from settings.
"""

import logging
from collections.abc import Iterable, Sequence
from typing import Protocol

import redis.asyncio as redis

from shortener.config import Settings
from shortener.exceptions import CacheUnavailableError

__all__ = [
    "LinkCache",
    "RedisLinkCache",
    "build_redis_client",
    "url_key",
    "clicks_key",
    "URL_KEY_PREFIX",
    "CLICKS_KEY_PREFIX",
]

URL_KEY_PREFIX = "url"
CLICKS_KEY_PREFIX = "clicks"


def url_key(short_code: str) -> str:
    return f"{URL_KEY_PREFIX}:{short_code}"


def clicks_key(short_code: str) -> str:
    return f"{CLICKS_KEY_PREFIX}:{short_code}"


def build_redis_client(settings: Settings) -> redis.Redis:
    return redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
    )


class LinkCache(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def get_many(self, keys: Sequence[str]) -> list[str | None]: ...

    async def set(self, key: str, value: str, ttl: int) -> None: ...

    async def set_many(self, items: Iterable[tuple[str, str, int]]) -> None: ...

    async def incr(self, key: str) -> int: ...

    async def expire(self, key: str, ttl: int) -> None: ...

    async def delete(self, *keys: str) -> int: ...

    async def exists(self, key: str) -> bool: ...

    async def ttl(self, key: str) -> int: ...

    async def ping(self) -> None: ...


class RedisLinkCache:
    """``LinkCache`` implementation on top of ``redis.asyncio``."""

    def __init__(self, client: redis.Redis, logger: logging.Logger):
        self._client = client
        self._logger = logger

    def _unavailable(self, operation: str, exc: Exception) -> CacheUnavailableError:
        return CacheUnavailableError(f"Redis {operation} failed: {exc}")

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except redis.RedisError as exc:
            raise self._unavailable("GET", exc) from exc

    async def get_many(self, keys: Sequence[str]) -> list[str | None]:
        if not keys:
            return []
        try:
            return await self._client.mget(list(keys))
        except redis.RedisError as exc:
            raise self._unavailable("MGET", exc) from exc

    async def set(self, key: str, value: str, ttl: int) -> None:
        try:
            await self._client.set(key, value, ex=ttl)
        except redis.RedisError as exc:
            raise self._unavailable("SET", exc) from exc

    async def set_many(self, items: Iterable[tuple[str, str, int]]) -> None:
        pipe = self._client.pipeline(transaction=False)
        queued = 0
        for key, value, ttl in items:
            pipe.set(key, value, ex=ttl)
            queued += 1
        if not queued:
            return
        try:
            await pipe.execute()
        except redis.RedisError as exc:
            raise self._unavailable("pipeline SET", exc) from exc

    async def incr(self, key: str) -> int:
        try:
            return int(await self._client.incr(key))
        except redis.RedisError as exc:
            raise self._unavailable("INCR", exc) from exc

    async def expire(self, key: str, ttl: int) -> None:
        try:
            await self._client.expire(key, ttl)
        except redis.RedisError as exc:
            raise self._unavailable("EXPIRE", exc) from exc

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(await self._client.delete(*keys))
        except redis.RedisError as exc:
            raise self._unavailable("DEL", exc) from exc

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self._client.exists(key))
        except redis.RedisError as exc:
            raise self._unavailable("EXISTS", exc) from exc

    async def ttl(self, key: str) -> int:
        """Seconds left on ``key``; negative when it is missing or has no expiry."""
        try:
            return int(await self._client.ttl(key))
        except redis.RedisError as exc:
            raise self._unavailable("TTL", exc) from exc

    async def ping(self) -> None:
        try:
            await self._client.ping()
        except redis.RedisError as exc:
            raise self._unavailable("PING", exc) from exc

    async def close(self) -> None:
        await self._client.aclose()
