"""FastAPI application entry point for the URL shortener service.

Application Lifecycle Diagram
=============================
::
    ┌──────────────┐
    │  uvicorn     │
    │  startup     │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ create_app() │
    │ settings →   │
    │ ServiceMgr   │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan():  │
    │ init db,     │
    │ redis, start │
    │ cache warmer │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ Serve HTTP   │
    │ requests     │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan():  │
    │ stop warmer, │
    │ drain tasks, │
    │ close conns  │
    └──────────────┘

How to Use
===========
**Run with uvicorn**::
    uvicorn shortener.main:app --host 0.0.0.0 --port 8080

**Build an app for tests**::
    app = create_app(Settings(DATABASE_URL="sqlite+aiosqlite:///..."), manager)

Key Behaviours
===============
- All components hang off ``app.state.services``; nothing is a module-level singleton.
- ``ShortenerError`` subclasses are rendered as ``{"detail": ...}`` with their status.
- Prometheus metrics are exposed on ``/metrics``.
- Requests are rate limited per client IP; see ``shortener.rate_limiter``.
"""

__all__ = ["app", "create_app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from shortener.config import Settings, get_settings
from shortener.dependencies import ServiceManager
from shortener.exceptions import ShortenerError
from shortener.rate_limiter import RateLimitMiddleware
from shortener.routes import router


async def shortener_error_handler(request: Request, exc: ShortenerError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app(settings: Settings | None = None, manager: ServiceManager | None = None) -> FastAPI:
    settings = settings or get_settings()
    manager = manager or ServiceManager(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # Startup
        await manager.initialize()
        if settings.CACHE_WARMER_ENABLED:
            manager.warmer.start()
        yield
        # Shutdown
        await manager.cleanup()

    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        description="URL shortener with Redis-buffered click counting",
        lifespan=lifespan,
    )
    app.state.services = manager

    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ShortenerError, shortener_error_handler)

    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=False,
        should_respect_env_var=False,
    ).instrument(app).expose(app)

    app.include_router(router)
    return app


app = create_app()
