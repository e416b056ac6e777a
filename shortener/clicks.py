"""Click accounting: atomic Redis counters flushed to the database in batches.

Click Tracking Flow
===================
::
    ┌─────────────┐
    │  Resolve    │
    │  (hit/miss) │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ INCR        │
    │ clicks:code │
    │ + EXPIRE    │
    └──────┬──────┘
    total % B == 0?
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌──────────────┐
│ Done    │  │ Background:  │
│         │  │ clicks =     │
│         │  │ clicks + B   │
└─────────┘  └──────────────┘

The counter is a running total that is never reset by a flush. Every multiple
of B it has crossed has already been handed to the database, so the part still
waiting for persistence is ``total % B`` and the observable total of a link is
``stored clicks + total % B``.

Redis INCR is the only concurrency control: each boundary value is returned to
exactly one caller, so each batch of B is flushed once. A failed flush is
dropped, leaving the stored value short by B (never over-counted).
"""

import logging
from collections.abc import Sequence

from prometheus_client import Counter

from shortener.cache import LinkCache, clicks_key
from shortener.config import Settings
from shortener.exceptions import CacheUnavailableError
from shortener.store import LinkStore
from shortener.tasks import BackgroundTasks

__all__ = ["ClickCounter"]

CLICKS_RECORDED_TOTAL = Counter(
    "url_shortener_clicks_recorded_total",
    "Clicks counted in Redis",
)
CLICKS_DROPPED_TOTAL = Counter(
    "url_shortener_clicks_dropped_total",
    "Clicks not counted because Redis was unavailable",
)
CLICK_FLUSHES_TOTAL = Counter(
    "url_shortener_click_flushes_total",
    "Batched click flushes to the database",
    ["status"],
)


class ClickCounter:
    def __init__(
        self,
        cache: LinkCache,
        store: LinkStore,
        tasks: BackgroundTasks,
        settings: Settings,
        logger: logging.Logger,
    ):
        self._cache = cache
        self._store = store
        self._tasks = tasks
        self._batch_size = settings.CLICK_FLUSH_BATCH_SIZE
        self._counter_ttl = settings.CLICK_COUNTER_TTL_SECONDS
        self._logger = logger

    async def record(self, short_code: str) -> int | None:
        """Count one click. Returns the running total, or None if Redis is down."""
        key = clicks_key(short_code)
        try:
            total = await self._cache.incr(key)
        except CacheUnavailableError as exc:
            CLICKS_DROPPED_TOTAL.inc()
            self._logger.warning(f"Click for {short_code} not counted: {exc}")
            return None

        CLICKS_RECORDED_TOTAL.inc()
        try:
            await self._cache.expire(key, self._counter_ttl)
        except CacheUnavailableError as exc:
            self._logger.warning(f"Failed to refresh click counter TTL for {short_code}: {exc}")

        if total % self._batch_size == 0:
            self._tasks.submit(self._flush(short_code, total), name=f"flush-clicks:{short_code}:{total}")
        return total

    async def _flush(self, short_code: str, boundary: int) -> None:
        try:
            rows = await self._store.increment_clicks(short_code, self._batch_size)
        except Exception:
            CLICK_FLUSHES_TOTAL.labels(status="error").inc()
            raise
        CLICK_FLUSHES_TOTAL.labels(status="success").inc()
        self._logger.info(f"Flushed {self._batch_size} clicks for {short_code} at {boundary} (rows: {rows})")

    def unflushed(self, total: int | None) -> int:
        if not total or total < 0:
            return 0
        return total % self._batch_size

    async def pending(self, short_code: str) -> int:
        """Clicks counted in Redis but not yet added to the stored value."""
        try:
            value = await self._cache.get(clicks_key(short_code))
        except CacheUnavailableError as exc:
            self._logger.warning(f"Click counter for {short_code} unavailable: {exc}")
            return 0
        return self.unflushed(_to_int(value))

    async def pending_many(self, short_codes: Sequence[str]) -> dict[str, int]:
        if not short_codes:
            return {}
        try:
            values = await self._cache.get_many([clicks_key(code) for code in short_codes])
        except CacheUnavailableError as exc:
            self._logger.warning(f"Click counters unavailable, reporting stored clicks only: {exc}")
            return {code: 0 for code in short_codes}
        return {code: self.unflushed(_to_int(value)) for code, value in zip(short_codes, values)}


def _to_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None
