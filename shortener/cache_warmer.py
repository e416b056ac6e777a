"""Cache warming service for keeping the hottest links in Redis.

On startup and then on a fixed interval, the most clicked live links are
loaded into ``url:<code>`` with the same TTL rule as the request path:
time remaining until ``expires_at``, or the default URL TTL for permanent
links. Failures are logged and never stop the loop or block requests.
"""

import asyncio
import logging

from prometheus_client import Counter

from shortener.cache import LinkCache, url_key
from shortener.config import Settings
from shortener.models import utcnow
from shortener.store import LinkStore

__all__ = ["CacheWarmer"]

CACHE_WARM_RUNS_TOTAL = Counter(
    "url_shortener_cache_warm_runs_total",
    "Cache warming cycles",
    ["status"],
)


class CacheWarmer:
    """Service for maintaining cache temperature and hit rates."""

    def __init__(self, store: LinkStore, cache: LinkCache, settings: Settings, logger: logging.Logger):
        self.store = store
        self.cache = cache
        self.logger = logger
        self.top_n = settings.CACHE_WARMER_TOP_N
        self.interval_seconds = settings.CACHE_WARMER_INTERVAL_SECONDS
        self.default_ttl_seconds = settings.URL_CACHE_TTL_SECONDS
        self._task: asyncio.Task | None = None

    async def warm_top_links(self, limit: int | None = None) -> int:
        """Load the ``limit`` most clicked live links into the cache.

        Returns the number of links written.
        """
        limit = limit or self.top_n
        now = utcnow()
        links = await self.store.top_by_clicks(limit, now)
        await self.cache.set_many(
            (url_key(link.short_code), link.long_url, link.cache_ttl_seconds(now, self.default_ttl_seconds))
            for link in links
        )
        self.logger.info(f"Cache warmed with {len(links)} top URLs")
        return len(links)

    async def run_once(self) -> int:
        try:
            warmed = await self.warm_top_links()
        except Exception as e:
            CACHE_WARM_RUNS_TOTAL.labels(status="error").inc()
            self.logger.error(f"Cache warming error: {e}")
            return 0
        CACHE_WARM_RUNS_TOTAL.labels(status="success").inc()
        return warmed

    async def run_continuous_warming(self) -> None:
        """Warm immediately, then every ``interval_seconds`` until cancelled."""
        self.logger.info(f"Starting continuous warming every {self.interval_seconds}s")
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_continuous_warming(), name="cache-warmer")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
