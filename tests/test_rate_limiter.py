"""Per-IP rate limiting: headers, 429s, blocking and fail-open behaviour."""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from shortener.config import Settings
from shortener.exceptions import CacheUnavailableError
from shortener.rate_limiter import blocked_key, requests_key


@pytest.fixture
def settings(settings: Settings) -> Settings:
    return settings.model_copy(update={"RATE_LIMIT_REQUESTS_PER_MINUTE": 3, "RATE_LIMIT_MAX_VIOLATIONS": 2})


@pytest.mark.asyncio
async def test_requests_within_limit_carry_headers(client: AsyncClient) -> None:
    remaining = []
    for _ in range(3):
        response = await client.get("/api/stats/missing1")
        assert response.status_code == 404
        assert response.headers["X-RateLimit-Limit"] == "3"
        remaining.append(response.headers["X-RateLimit-Remaining"])

    assert remaining == ["2", "1", "0"]


@pytest.mark.asyncio
async def test_request_over_limit_is_rejected(client: AsyncClient) -> None:
    for _ in range(3):
        await client.get("/api/stats/missing1")

    response = await client.get("/api/stats/missing1")
    assert response.status_code == 429
    assert response.headers["Retry-After"] == "60"
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert "maximum 3 requests" in response.json()["detail"]


@pytest.mark.asyncio
async def test_redirect_is_metered(client: AsyncClient) -> None:
    create_resp = await client.post("/api/urls", json={"long_url": "https://www.example.com"})
    short_code = create_resp.json()["short_code"]

    response = await client.get(f"/urls/{short_code}")
    assert response.status_code == 307
    assert response.headers["X-RateLimit-Remaining"] == "1"


@pytest.mark.asyncio
async def test_health_is_exempt(client: AsyncClient) -> None:
    for _ in range(5):
        response = await client.get("/health")
        assert response.status_code == 200
        assert "X-RateLimit-Limit" not in response.headers


@pytest.mark.asyncio
async def test_repeated_violations_block_ip(manager, redis_client) -> None:
    limiter = manager.rate_limiter
    decisions = [await limiter.check("10.0.0.1") for _ in range(5)]
    assert [d.allowed for d in decisions] == [True, True, True, False, False]
    assert await redis_client.exists(blocked_key("10.0.0.1"))

    # A fresh window does not lift the block.
    await redis_client.delete(requests_key("10.0.0.1"))
    blocked = await limiter.check("10.0.0.1")
    assert not blocked.allowed
    assert 0 < blocked.retry_after <= 1800
    assert "blocked" in blocked.message

    assert (await limiter.check("10.0.0.2")).allowed


@pytest.mark.asyncio
async def test_window_counter_expires(manager, redis_client) -> None:
    await manager.rate_limiter.check("10.0.0.3")
    assert 0 < await redis_client.ttl(requests_key("10.0.0.3")) <= 60


@pytest.mark.asyncio
async def test_cache_outage_fails_open(client: AsyncClient, manager) -> None:
    with patch.object(manager.cache, "exists", AsyncMock(side_effect=CacheUnavailableError("down"))):
        assert await manager.rate_limiter.check("10.0.0.4") is None
        for _ in range(5):
            response = await client.get("/api/stats/missing1")
            assert response.status_code == 404
            assert "X-RateLimit-Limit" not in response.headers


@pytest.mark.asyncio
async def test_disabled_limiter_lets_everything_through(client: AsyncClient, manager) -> None:
    with patch.object(manager.settings, "RATE_LIMIT_ENABLED", False):
        for _ in range(5):
            response = await client.get("/api/stats/missing1")
            assert response.status_code == 404
