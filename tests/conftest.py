"""Shared pytest fixtures: SQLite-backed store, in-memory Redis, wired services and an HTTP client."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis, FakeServer
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update

from shortener.config import Settings
from shortener.database import build_sessionmaker
from shortener.dependencies import ServiceManager
from shortener.main import create_app
from shortener.models import ShortLink
from shortener.url_service import URLShorteningService


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        APP_ENV="test",
        BASE_URL="http://short.test",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'shortener.db'}",
        REDIS_URL="redis://localhost:6379/15",
        LOG_LEVEL="DEBUG",
        CACHE_WARMER_ENABLED=False,
    )


@pytest_asyncio.fixture
async def redis_client() -> AsyncGenerator[FakeAsyncRedis, None]:
    # A fresh server per test; the manager closes the client on cleanup.
    yield FakeAsyncRedis(server=FakeServer(), decode_responses=True)


@pytest_asyncio.fixture
async def manager(settings: Settings, redis_client: FakeAsyncRedis) -> AsyncGenerator[ServiceManager, None]:
    services = ServiceManager(settings, redis_client=redis_client)
    await services.initialize()
    yield services
    await services.cleanup()


@pytest.fixture
def service(manager: ServiceManager) -> URLShorteningService:
    return manager.url_service()


@pytest_asyncio.fixture
async def client(settings: Settings, manager: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(settings, manager)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def set_link_fields(manager: ServiceManager):
    """Write columns directly, bypassing the service (e.g. to backdate expiry)."""
    sessions = build_sessionmaker(manager.engine)

    async def _set(short_code: str, **values) -> None:
        async with sessions() as session:
            await session.execute(update(ShortLink).where(ShortLink.short_code == short_code).values(**values))
            await session.commit()

    return _set
