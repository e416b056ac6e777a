"""URL Shortener Service Layer - Core Business Logic

This module resolves short codes through the Redis/PostgreSQL hierarchy,
creates and deletes links, and reports click totals that merge the durable
counter with clicks still buffered in Redis.

Architecture Overview
=====================
::
    ┌──────────────────────────────────────────────────────────────┐
    │                    URLShorteningService                      │
    │  ┌────────────────┐  ┌─────────────────┐  ┌───────────────┐  │
    │  │ Resolve        │  │ ShortCode       │  │ ClickCounter  │  │
    │  │ Create/Delete  │  │ Generator       │  │ INCR + batch  │  │
    │  │ List/Stats     │  │ cache → db      │  │ flush         │  │
    │  └────────────────┘  └─────────────────┘  └───────────────┘  │
    └──────────────────────────────────────────────────────────────┘
                │                    │                    │
                ▼                    ▼                    ▼
    ┌─────────────────┐  ┌─────────────────┐  ┌─────────────────┐
    │   PostgreSQL    │  │     Redis       │  │ BackgroundTasks │
    │ (source of      │  │ (url:, clicks:) │  │ (flush, expired │
    │  truth)         │  │                 │  │  link delete)   │
    └─────────────────┘  └─────────────────┘  └─────────────────┘

URL Lookup & Redirect Flow
--------------------------
::
    ┌─────────────┐
    │ GET /urls/  │
    │ :code       │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ GET url:code│
    └──────┬──────┘
   ┌───────┼──────────────┐
   │ URL   │ SENTINEL     │ MISS
   ▼       ▼              ▼
┌───────┐ ┌──────────┐ ┌──────────────┐
│ count │ │ 404, no  │ │ SELECT by    │
│ click │ │ DB query │ │ short_code   │
└───┬───┘ └──────────┘ └──────┬───────┘
    │              ┌──────────┼───────────────┐
    │              │ none     │ expired       │ live
    │              ▼          ▼               ▼
    │         ┌────────┐ ┌──────────────┐ ┌──────────────┐
    │         │ cache  │ │ bg delete +  │ │ write-through│
    │         │ NOT_   │ │ cache        │ │ url:code,    │
    │         │ FOUND  │ │ EXPIRED, 404 │ │ count click  │
    │         └────────┘ └──────────────┘ └──────┬───────┘
    ▼                                           ▼
    └──────────────────┬────────────────────────┘
                       ▼
                ┌─────────────┐
                │ 307 Redirect│
                └─────────────┘

Failure policy
==============
- Redis errors are logged and the call falls through to PostgreSQL. An outage
  costs click accuracy, never availability.
- PostgreSQL errors on a request path surface as ``StoreUnavailableError``.
- Background flush/delete errors are logged by ``BackgroundTasks`` only.
- Every resolution failure is reported as ``LinkNotFoundError`` whether the
  code never existed, expired or was deleted.
"""

import datetime
import logging
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

import validators
from prometheus_client import Counter, Histogram

from shortener.cache import LinkCache, clicks_key, url_key
from shortener.clicks import ClickCounter
from shortener.codegen import ShortCodeGenerator
from shortener.config import Settings
from shortener.enums import CacheSentinel, CacheStatus, RequestStatus
from shortener.exceptions import (
    CacheUnavailableError,
    CodeTakenError,
    InvalidInputError,
    LinkNotFoundError,
    ShortenerError,
)
from shortener.models import ShortLink, utcnow
from shortener.store import LinkStore
from shortener.tasks import BackgroundTasks

if TYPE_CHECKING:
    from shortener.dependencies import RequestContext

__all__ = ["URLShorteningService", "Resolution", "LinkStats", "LinkPage"]

# Largest OFFSET the database accepts (signed 64-bit).
MAX_LIST_OFFSET = 2**63 - 1


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

URL_CREATION_REQUESTS_TOTAL = Counter(
    "url_shortener_creation_requests_total",
    "Total URL creation requests",
    ["status"],
)
URL_LOOKUP_REQUESTS_TOTAL = Counter(
    "url_shortener_lookup_requests_total",
    "Total URL lookup requests",
    ["status", "cache"],
)
URL_LOOKUP_DURATION = Histogram(
    "url_shortener_lookup_duration_seconds",
    "Time taken to resolve short codes",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)
CACHE_WRITE_FAILURES_TOTAL = Counter(
    "url_shortener_cache_write_failures_total",
    "Cache writes that failed after the database write succeeded",
)
EXPIRED_LINKS_DELETED_TOTAL = Counter(
    "url_shortener_expired_links_deleted_total",
    "Expired links hard-deleted on lookup",
)


# ============================================================================
# DATA STRUCTURES
# ============================================================================


@dataclass
class Resolution:
    long_url: str
    click_recorded: bool
    cache_status: CacheStatus


@dataclass
class LinkStats:
    short_code: str
    total_clicks: int
    last_accessed_at: datetime.datetime


@dataclass
class LinkPage:
    links: list[ShortLink]
    total: int
    page: int
    per_page: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.per_page - 1) // self.per_page


# ============================================================================
# CORE SERVICE CLASS
# ============================================================================


class URLShorteningService:
    """Core service class for short link resolution, creation and click accounting.

    Example:
        >>> service = manager.url_service()
        >>> link = await service.create_anonymous_link("https://example.com")
        >>> resolution = await service.resolve(link.short_code)
        >>> resolution.long_url
        'https://example.com'
    """

    def __init__(
        self,
        store: LinkStore,
        cache: LinkCache,
        clicks: ClickCounter,
        codes: ShortCodeGenerator,
        tasks: BackgroundTasks,
        settings: Settings,
        logger: logging.Logger | logging.LoggerAdapter,
    ):
        self._store = store
        self._cache = cache
        self._clicks = clicks
        self._codes = codes
        self._tasks = tasks
        self._settings = settings
        self._logger = logger

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "URLShorteningService":
        """Build a service bound to the request's logger."""
        return ctx.services.url_service(ctx.logger)

    # ========================================================================
    # RESOLUTION
    # ========================================================================

    async def resolve(self, short_code: str) -> Resolution:
        """Return the long URL for ``short_code`` and count one click.

        Raises:
            InvalidInputError: If the code is empty after stripping any path prefix.
            LinkNotFoundError: If the code is unknown, expired or deleted.
            StoreUnavailableError: If the cache missed and the database is down.
        """
        start_time = time.perf_counter()
        code = self.strip_path_prefix(short_code)
        if not code:
            raise InvalidInputError("Short code is required")

        try:
            resolution = await self._resolve(code)
        except LinkNotFoundError:
            URL_LOOKUP_DURATION.observe(time.perf_counter() - start_time)
            raise
        except ShortenerError:
            URL_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR, cache=CacheStatus.MISS).inc()
            raise

        URL_LOOKUP_DURATION.observe(time.perf_counter() - start_time)
        URL_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache=resolution.cache_status).inc()
        return resolution

    async def _resolve(self, code: str) -> Resolution:
        cache_status = CacheStatus.MISS
        try:
            cached = await self._cache.get(url_key(code))
        except CacheUnavailableError as exc:
            self._logger.warning(f"Cache lookup for {code} failed, falling back to database: {exc}")
            cached = None
            cache_status = CacheStatus.UNAVAILABLE

        if cached is not None:
            if CacheSentinel.is_sentinel(cached):
                self._logger.debug(f"Negative cache hit for {code} ({cached})")
                raise self._not_found(CacheStatus.NEGATIVE)
            self._logger.debug(f"Cache hit for {code}")
            total = await self._clicks.record(code)
            return Resolution(long_url=cached, click_recorded=total is not None, cache_status=CacheStatus.HIT)

        link = await self._store.find_by_short_code(code)
        now = utcnow()

        if link is None:
            self._logger.debug(f"Short code {code} not found in database")
            await self._cache_quietly(code, CacheSentinel.NOT_FOUND, self._settings.SENTINEL_TTL_SECONDS)
            raise self._not_found(cache_status)

        if link.is_expired(now):
            self._logger.info(f"Short code {code} expired at {link.expires_at}, scheduling delete")
            self._tasks.submit(self._delete_expired(link.id, code), name=f"delete-expired:{code}")
            await self._cache_quietly(code, CacheSentinel.EXPIRED, self._settings.SENTINEL_TTL_SECONDS)
            raise self._not_found(cache_status)

        await self._cache_quietly(
            code, link.long_url, link.cache_ttl_seconds(now, self._settings.URL_CACHE_TTL_SECONDS)
        )
        total = await self._clicks.record(code)
        return Resolution(long_url=link.long_url, click_recorded=total is not None, cache_status=cache_status)

    def _not_found(self, cache_status: CacheStatus) -> LinkNotFoundError:
        URL_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.NOT_FOUND, cache=cache_status).inc()
        return LinkNotFoundError()

    async def _delete_expired(self, link_id: uuid.UUID, code: str) -> None:
        rows = await self._store.hard_delete(link_id)
        EXPIRED_LINKS_DELETED_TOTAL.inc()
        self._logger.info(f"Deleted expired link {code} (rows: {rows})")
        try:
            await self._cache.delete(clicks_key(code))
        except CacheUnavailableError as exc:
            self._logger.warning(f"Failed to evict click counter for expired link {code}: {exc}")

    async def _cache_quietly(self, code: str, value: str, ttl: int) -> None:
        try:
            await self._cache.set(url_key(code), value, ttl)
        except CacheUnavailableError as exc:
            self._logger.warning(f"Failed to cache {code}: {exc}")

    def strip_path_prefix(self, short_code: str | None) -> str:
        if not short_code:
            return ""
        return short_code.strip().strip("/").rsplit("/", 1)[-1]

    # ========================================================================
    # CREATION
    # ========================================================================

    async def create_link(self, owner_id: uuid.UUID, long_url: str, custom_code: str | None = None) -> ShortLink:
        """Create a permanent link owned by ``owner_id``."""
        return await self._create(long_url, custom_code, owner_id=owner_id, expires_at=None)

    async def create_anonymous_link(
        self, long_url: str, custom_code: str | None = None, expiry_hours: int | None = None
    ) -> ShortLink:
        """Create an ownerless link expiring after ``expiry_hours`` (168 when not positive)."""
        if not expiry_hours or expiry_hours <= 0:
            expiry_hours = self._settings.ANONYMOUS_EXPIRY_HOURS
        if expiry_hours > self._settings.ANONYMOUS_MAX_EXPIRY_HOURS:
            URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.VALIDATION_ERROR).inc()
            raise InvalidInputError(
                f"expiry_hours must not exceed {self._settings.ANONYMOUS_MAX_EXPIRY_HOURS}"
            )
        expires_at = utcnow() + datetime.timedelta(hours=expiry_hours)
        return await self._create(long_url, custom_code, owner_id=None, expires_at=expires_at)

    async def _create(
        self,
        long_url: str,
        custom_code: str | None,
        owner_id: uuid.UUID | None,
        expires_at: datetime.datetime | None,
    ) -> ShortLink:
        try:
            long_url = self._validate_long_url(long_url)
            if custom_code:
                short_code = self._codes.normalize_custom_code(custom_code)
                if await self._codes.is_taken(short_code):
                    raise CodeTakenError(f"Short code '{short_code}' is already taken")
            else:
                short_code = await self._codes.generate_unique()

            link = ShortLink(
                id=uuid.uuid4(),
                owner_id=owner_id,
                long_url=long_url,
                short_code=short_code,
                clicks=0,
                is_anonymous=owner_id is None,
                expires_at=expires_at,
            )
            link = await self._store.create(link)
        except (InvalidInputError, CodeTakenError) as exc:
            URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.VALIDATION_ERROR).inc()
            self._logger.warning(f"URL creation rejected: {exc}")
            raise
        except ShortenerError as exc:
            URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            self._logger.error(f"URL creation failed: {exc}")
            raise

        await self._write_through(link)
        URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        self._logger.info(f"Created short link {link.short_code} (anonymous={link.is_anonymous})")
        return link

    async def _write_through(self, link: ShortLink) -> None:
        ttl = link.cache_ttl_seconds(utcnow(), self._settings.URL_CACHE_TTL_SECONDS)
        try:
            # A counter left behind by an earlier link with the same code must not carry over.
            await self._cache.delete(clicks_key(link.short_code))
            await self._cache.set(url_key(link.short_code), link.long_url, ttl)
        except CacheUnavailableError as exc:
            CACHE_WRITE_FAILURES_TOTAL.inc()
            self._logger.warning(f"Link {link.short_code} stored but not cached: {exc}")

    def _validate_long_url(self, long_url: str | None) -> str:
        long_url = (long_url or "").strip()
        if not long_url:
            raise InvalidInputError("long URL is required")
        if not validators.url(long_url):
            raise InvalidInputError("Invalid URL provided")
        return long_url

    # ========================================================================
    # DELETION
    # ========================================================================

    async def delete_link(self, owner_id: uuid.UUID, link_id: uuid.UUID) -> None:
        link = await self._store.find_owned(owner_id, link_id)
        if link is None:
            raise LinkNotFoundError()

        await self._store.hard_delete(link.id)
        try:
            await self._cache.delete(url_key(link.short_code), clicks_key(link.short_code))
        except CacheUnavailableError as exc:
            self._logger.warning(f"Deleted {link.short_code} but cache eviction failed: {exc}")
        self._logger.info(f"Deleted short link {link.short_code}")

    # ========================================================================
    # READS WITH MERGED CLICK TOTALS
    # ========================================================================

    async def list_links_for_user(self, user_id: uuid.UUID, page: int | None = 1, per_page: int | None = None) -> LinkPage:
        page = max(page or 1, 1)
        if not per_page:
            per_page = self._settings.DEFAULT_PER_PAGE
        per_page = min(max(per_page, 1), self._settings.MAX_PER_PAGE)
        offset = (page - 1) * per_page
        if offset > MAX_LIST_OFFSET:
            raise InvalidInputError("page is out of range")

        links, total = await self._store.list_by_owner(user_id, offset=offset, limit=per_page)
        pending = await self._clicks.pending_many([link.short_code for link in links])
        for link in links:
            link.clicks += pending.get(link.short_code, 0)
        return LinkPage(links=links, total=total, page=page, per_page=per_page)

    async def get_link(self, owner_id: uuid.UUID, link_id: uuid.UUID) -> ShortLink:
        link = await self._store.find_owned(owner_id, link_id)
        if link is None:
            raise LinkNotFoundError()
        link.clicks += await self._clicks.pending(link.short_code)
        return link

    async def get_stats(self, short_code: str) -> LinkStats:
        code = self.strip_path_prefix(short_code)
        if not code:
            raise InvalidInputError("Short code is required")

        link = await self._store.find_by_short_code(code)
        if link is None or link.is_expired(utcnow()):
            raise LinkNotFoundError()

        pending = await self._clicks.pending(code)
        return LinkStats(short_code=code, total_clicks=link.clicks + pending, last_accessed_at=link.updated_at)

    def short_url(self, link: ShortLink) -> str:
        base = self._settings.BASE_URL.rstrip("/")
        return f"{base}/{self._settings.SHORT_URL_PATH_PREFIX}/{link.short_code}"
