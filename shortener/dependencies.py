"""Service wiring and FastAPI dependency injection.

One ``ServiceManager`` is built per application from an explicit ``Settings``
object and stored on ``app.state.services``. It owns the shared resources
(engine, Redis client, background task runner, cache warmer); route handlers
receive them through a lightweight per-request ``RequestContext``.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

import redis.asyncio as redis
from fastapi import Depends, Header, HTTPException, Request

from shortener.cache import RedisLinkCache, build_redis_client
from shortener.cache_warmer import CacheWarmer
from shortener.clicks import ClickCounter
from shortener.codegen import ShortCodeGenerator
from shortener.config import Settings
from shortener.database import build_engine, build_sessionmaker, close_db, init_db
from shortener.rate_limiter import RateLimiter
from shortener.store import LinkStore
from shortener.tasks import BackgroundTasks
from shortener.url_service import URLShorteningService

__all__ = [
    "ServiceManager",
    "RequestContext",
    "setup_logger",
    "RequestIdFilter",
    "get_service_manager",
    "get_request_context",
    "get_url_service",
    "get_current_user_id",
]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"


class RequestIdFilter(logging.Filter):
    """Fill in ``request_id`` for records logged outside a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = "-"
        return True


def setup_logger(settings: Settings) -> logging.Logger:
    """Configure the ``shortener`` logger once; later calls reuse it."""
    logger = logging.getLogger("shortener")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(RequestIdFilter())
        logger.addHandler(handler)
    logger.setLevel(settings.LOG_LEVEL.upper())
    return logger


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Shared resources for one application instance.

    Anything that does not need to be created per request lives here. A Redis
    client may be passed in (tests use an in-memory one); otherwise it is
    created from ``settings.REDIS_URL``.
    """

    def __init__(self, settings: Settings, redis_client: Optional[redis.Redis] = None):
        self.settings = settings
        self.logger = setup_logger(settings)
        self._redis_client = redis_client
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Create the engine, tables, cache adapter and core components."""
        if self._initialized:
            return

        self.engine = build_engine(self.settings)
        await init_db(self.engine)
        self.store = LinkStore(build_sessionmaker(self.engine), self.logger.getChild("store"))

        client = self._redis_client or build_redis_client(self.settings)
        self.cache = RedisLinkCache(client, self.logger.getChild("cache"))

        self.tasks = BackgroundTasks(self.settings.BACKGROUND_TASK_TIMEOUT_SECONDS, self.logger.getChild("tasks"))
        self.clicks = ClickCounter(self.cache, self.store, self.tasks, self.settings, self.logger.getChild("clicks"))
        self.codes = ShortCodeGenerator(self.cache, self.store, self.settings, self.logger.getChild("codes"))
        self.warmer = CacheWarmer(self.store, self.cache, self.settings, self.logger.getChild("cache_warmer"))
        self.rate_limiter = RateLimiter(self.cache, self.settings, self.logger.getChild("rate_limiter"))
        self._initialized = True
        self.logger.info(f"{self.settings.APP_NAME} services initialized ({self.settings.APP_ENV})")

    def url_service(self, logger: logging.Logger | logging.LoggerAdapter | None = None) -> URLShorteningService:
        if not self._initialized:
            raise RuntimeError("Service manager not initialized. Call initialize() first.")
        return URLShorteningService(
            store=self.store,
            cache=self.cache,
            clicks=self.clicks,
            codes=self.codes,
            tasks=self.tasks,
            settings=self.settings,
            logger=logger or self.logger.getChild("urls"),
        )

    async def cleanup(self) -> None:
        """Stop the warmer, let in-flight background work finish, close connections."""
        if not self._initialized:
            return
        await self.warmer.stop()
        await self.tasks.drain()
        await self.cache.close()
        await close_db(self.engine)
        self._initialized = False


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request view of the shared services with request tracking.

    Attributes:
        services: Application-wide service manager
        request_id: Unique identifier for this request
        user_agent: Client user agent string
        client_ip: Client IP address
        start_time: Request start timestamp
    """

    services: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=time.time)

    @property
    def settings(self) -> Settings:
        return self.services.settings

    @property
    def logger(self) -> logging.LoggerAdapter:
        return logging.LoggerAdapter(
            self.services.logger.getChild("request"),
            {
                "request_id": self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
            },
        )

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager(request: Request) -> ServiceManager:
    manager: ServiceManager = request.app.state.services
    if not manager.initialized:
        await manager.initialize()
    return manager


async def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    return RequestContext(
        services=manager,
        request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
        user_agent=request.headers.get("user-agent"),
        client_ip=request.client.host if request.client else None,
    )


def get_url_service(ctx: RequestContext = Depends(get_request_context)) -> URLShorteningService:
    return URLShorteningService.from_context(ctx)


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> uuid.UUID:
    """Caller identity as forwarded by the authenticating gateway."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        return uuid.UUID(x_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Invalid user id") from exc
