"""Per-client-IP rate limiting on top of the shared Redis cache.

Rate Limit Flow
===============
::
    request ─► blocked key exists? ── yes ──► 429 (Retry-After = block TTL)
                    │ no
                    ▼
               INCR requests key (EXPIRE window on first hit)
                    │
          count > limit? ── no ──► handler, X-RateLimit-* headers added
                    │ yes
                    ▼
               INCR violations key (EXPIRE violation window)
               violations >= max? ──► SET blocked key (block duration)
                    │
                    ▼
                   429

Key Layout
==========
::
    rate_limit:requests:<ip>    → requests in the current fixed window
    rate_limit:violations:<ip>  → windows in which the limit was exceeded
    rate_limit:blocked:<ip>     → present while the IP is blocked

Key Behaviours
===============
- Fails open: if Redis is unavailable the request is let through without
  rate limit headers.
- ``RATE_LIMIT_EXEMPT_PATHS`` (health and metrics by default) are never
  counted.
"""

import logging
import time
from dataclasses import dataclass

from fastapi import Request
from fastapi.responses import JSONResponse
from prometheus_client import Counter
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from shortener.cache import LinkCache
from shortener.config import Settings
from shortener.exceptions import CacheUnavailableError

__all__ = ["RateLimiter", "RateLimitDecision", "RateLimitMiddleware"]

RATE_LIMIT_REJECTIONS_TOTAL = Counter(
    "url_shortener_rate_limit_rejections_total",
    "Requests rejected by the per-IP rate limiter",
    ["reason"],
)


def requests_key(client_ip: str) -> str:
    return f"rate_limit:requests:{client_ip}"


def violations_key(client_ip: str) -> str:
    return f"rate_limit:violations:{client_ip}"


def blocked_key(client_ip: str) -> str:
    return f"rate_limit:blocked:{client_ip}"


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after: int | None = None
    message: str = ""

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimiter:
    """Fixed-window request counter per client IP with escalation to a block."""

    def __init__(self, cache: LinkCache, settings: Settings, logger: logging.Logger):
        self._cache = cache
        self._logger = logger
        self.limit = settings.RATE_LIMIT_REQUESTS_PER_MINUTE
        self.window_seconds = settings.RATE_LIMIT_WINDOW_SECONDS
        self.max_violations = settings.RATE_LIMIT_MAX_VIOLATIONS
        self.violation_window_seconds = settings.RATE_LIMIT_VIOLATION_WINDOW_SECONDS
        self.block_seconds = settings.RATE_LIMIT_BLOCK_SECONDS

    async def check(self, client_ip: str) -> RateLimitDecision | None:
        """Count one request from ``client_ip``.

        Returns None when Redis is unavailable, meaning the request is let
        through unmetered.
        """
        try:
            return await self._check(client_ip)
        except CacheUnavailableError as exc:
            self._logger.warning(f"Rate limiter skipped for {client_ip}: {exc}")
            return None

    async def _check(self, client_ip: str) -> RateLimitDecision:
        reset_at = int(time.time()) + self.window_seconds

        block = blocked_key(client_ip)
        if await self._cache.exists(block):
            retry_after = max(await self._cache.ttl(block), 1)
            RATE_LIMIT_REJECTIONS_TOTAL.labels(reason="blocked").inc()
            return RateLimitDecision(
                allowed=False,
                limit=self.limit,
                remaining=0,
                reset_at=reset_at,
                retry_after=retry_after,
                message=f"IP blocked due to excessive requests. Try again in {retry_after} seconds",
            )

        key = requests_key(client_ip)
        count = await self._cache.incr(key)
        if count == 1:
            await self._cache.expire(key, self.window_seconds)

        if count <= self.limit:
            return RateLimitDecision(
                allowed=True,
                limit=self.limit,
                remaining=self.limit - count,
                reset_at=reset_at,
            )

        violations = await self._cache.incr(violations_key(client_ip))
        await self._cache.expire(violations_key(client_ip), self.violation_window_seconds)
        if violations >= self.max_violations:
            await self._cache.set(block, "1", self.block_seconds)
            self._logger.warning(f"IP {client_ip} blocked after {violations} rate limit violations")

        RATE_LIMIT_REJECTIONS_TOTAL.labels(reason="limit").inc()
        return RateLimitDecision(
            allowed=False,
            limit=self.limit,
            remaining=0,
            reset_at=reset_at,
            retry_after=self.window_seconds,
            message=f"Rate limit exceeded: maximum {self.limit} requests per minute",
        )


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        manager = request.app.state.services
        settings = manager.settings
        if (
            not settings.RATE_LIMIT_ENABLED
            or request.url.path in settings.RATE_LIMIT_EXEMPT_PATHS
            or not manager.initialized
        ):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        decision = await manager.rate_limiter.check(client_ip)
        if decision is None:
            return await call_next(request)

        if not decision.allowed:
            return JSONResponse(
                status_code=429,
                content={"detail": decision.message},
                headers=decision.headers(),
            )

        response = await call_next(request)
        response.headers.update(decision.headers())
        return response
