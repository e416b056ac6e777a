"""Cache warmer: top links by clicks are preloaded with the request-path TTL rule."""

import datetime
import uuid
from unittest.mock import AsyncMock, patch

import pytest

from shortener.cache import url_key
from shortener.exceptions import StoreUnavailableError
from shortener.models import utcnow


@pytest.mark.asyncio
async def test_warms_top_links_by_clicks(service, manager, redis_client, set_link_fields) -> None:
    codes = []
    for i in range(10):
        link = await service.create_anonymous_link(f"https://example.com/page/{i}")
        await set_link_fields(link.short_code, clicks=i * 5)
        codes.append(link.short_code)
    await redis_client.flushall()

    warmed = await manager.warmer.warm_top_links(limit=3)

    assert warmed == 3
    for code in codes[-3:]:
        assert await redis_client.get(url_key(code)) is not None
        ttl = await redis_client.ttl(url_key(code))
        assert 0 < ttl <= 168 * 3600
    for code in codes[:-3]:
        assert await redis_client.get(url_key(code)) is None


@pytest.mark.asyncio
async def test_permanent_links_get_default_ttl(service, manager, redis_client) -> None:
    link = await service.create_link(uuid.uuid4(), "https://example.com/permanent")
    await redis_client.flushall()

    assert await manager.warmer.warm_top_links() == 1

    assert await redis_client.get(url_key(link.short_code)) == "https://example.com/permanent"
    assert 86400 - 5 <= await redis_client.ttl(url_key(link.short_code)) <= 86400


@pytest.mark.asyncio
async def test_expired_links_are_not_warmed(service, manager, redis_client, set_link_fields) -> None:
    live = await service.create_anonymous_link("https://example.com/live")
    stale = await service.create_anonymous_link("https://example.com/stale")
    await set_link_fields(
        stale.short_code, clicks=1000, expires_at=utcnow() - datetime.timedelta(hours=1)
    )
    await redis_client.flushall()

    assert await manager.warmer.warm_top_links() == 1

    assert await redis_client.get(url_key(live.short_code)) == "https://example.com/live"
    assert await redis_client.get(url_key(stale.short_code)) is None


@pytest.mark.asyncio
async def test_run_once_logs_and_continues(manager, caplog) -> None:
    failing = AsyncMock(side_effect=StoreUnavailableError("database is down"))

    with patch.object(manager.store, "top_by_clicks", failing):
        assert await manager.warmer.run_once() == 0

    assert any("Cache warming error" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_start_and_stop(manager) -> None:
    task = manager.warmer.start()
    assert manager.warmer.start() is task

    await manager.warmer.stop()
    assert task.done()
