"""Click counter behaviour, including Redis and database outages."""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
import redis.asyncio as redis

from shortener.cache import RedisLinkCache, clicks_key
from shortener.clicks import ClickCounter
from shortener.exceptions import StoreUnavailableError
from shortener.tasks import BackgroundTasks

logger = logging.getLogger("shortener.tests")


@pytest.fixture
def mock_store() -> MagicMock:
    store = MagicMock()
    store.increment_clicks = AsyncMock(return_value=1)
    return store


@pytest.fixture
def tasks() -> BackgroundTasks:
    return BackgroundTasks(timeout_seconds=1.0, logger=logger)


@pytest.fixture
def counter(manager, mock_store, tasks, settings) -> ClickCounter:
    return ClickCounter(manager.cache, mock_store, tasks, settings, logger)


@pytest.mark.asyncio
async def test_record_flushes_exactly_one_batch_per_boundary(counter, mock_store, tasks) -> None:
    for _ in range(25):
        await counter.record("abc123")
    await tasks.drain()

    assert mock_store.increment_clicks.await_count == 2
    for call in mock_store.increment_clicks.await_args_list:
        assert call.args == ("abc123", 10)


@pytest.mark.asyncio
async def test_record_sets_counter_ttl(counter, redis_client) -> None:
    assert await counter.record("abc123") == 1
    assert 2591000 < await redis_client.ttl(clicks_key("abc123")) <= 30 * 24 * 3600


@pytest.mark.asyncio
async def test_pending_is_remainder_of_running_total(counter, redis_client) -> None:
    await redis_client.set(clicks_key("abc123"), "37")
    await redis_client.set(clicks_key("def456"), "40")

    assert await counter.pending("abc123") == 7
    assert await counter.pending("nothing") == 0
    assert await counter.pending_many(["abc123", "def456", "nothing"]) == {
        "abc123": 7,
        "def456": 0,
        "nothing": 0,
    }


@pytest.mark.asyncio
async def test_pending_ignores_garbage_values(counter, redis_client) -> None:
    await redis_client.set(clicks_key("abc123"), "not-a-number")
    assert await counter.pending("abc123") == 0


@pytest.mark.asyncio
async def test_flush_failure_is_logged_not_raised(counter, mock_store, tasks, caplog) -> None:
    mock_store.increment_clicks.side_effect = StoreUnavailableError("db down")

    with caplog.at_level(logging.ERROR, logger="shortener.tests"):
        for _ in range(10):
            total = await counter.record("abc123")
        await tasks.drain()

    assert total == 10
    assert mock_store.increment_clicks.await_count == 1
    assert any("db down" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_cache_outage_degrades_to_no_op(mock_store, tasks, settings) -> None:
    client = AsyncMock(spec=redis.Redis)
    client.incr = AsyncMock(side_effect=redis.ConnectionError("connection refused"))
    client.get = AsyncMock(side_effect=redis.ConnectionError("connection refused"))
    client.mget = AsyncMock(side_effect=redis.ConnectionError("connection refused"))
    counter = ClickCounter(RedisLinkCache(client, logger), mock_store, tasks, settings, logger)

    assert await counter.record("abc123") is None
    assert await counter.pending("abc123") == 0
    assert await counter.pending_many(["abc123"]) == {"abc123": 0}
    mock_store.increment_clicks.assert_not_called()
