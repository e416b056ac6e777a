"""Redirect endpoint behavior tests."""

from unittest.mock import patch

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError


@pytest.mark.asyncio
async def test_redirect_valid_code(client: AsyncClient) -> None:
    create_resp = await client.post("/api/urls", json={"long_url": "https://www.google.com"})
    short_code = create_resp.json()["short_code"]

    # httpx won't follow by default
    response = await client.get(f"/urls/{short_code}")
    assert response.status_code == 307
    assert response.headers["location"] == "https://www.google.com"


@pytest.mark.asyncio
async def test_redirect_invalid_code(client: AsyncClient) -> None:
    response = await client.get("/urls/nonexistent")
    assert response.status_code == 404
    assert response.json() == {"detail": "Short URL not found"}


@pytest.mark.asyncio
async def test_redirect_increments_clicks(client: AsyncClient) -> None:
    create_resp = await client.post("/api/urls", json={"long_url": "https://www.python.org"})
    short_code = create_resp.json()["short_code"]

    for _ in range(3):
        await client.get(f"/urls/{short_code}")

    stats_resp = await client.get(f"/api/stats/{short_code}")
    assert stats_resp.status_code == 200
    assert stats_resp.json()["total_clicks"] == 3


@pytest.mark.asyncio
async def test_redirect_with_custom_code(client: AsyncClient) -> None:
    await client.post(
        "/api/urls",
        json={"long_url": "https://www.github.com", "short_code": "GitHub"},
    )
    response = await client.get("/urls/github")
    assert response.status_code == 307
    assert response.headers["location"] == "https://www.github.com"


@pytest.mark.asyncio
async def test_redirect_ignores_nested_prefix(client: AsyncClient) -> None:
    await client.post("/api/urls", json={"long_url": "https://www.github.com", "short_code": "nested"})
    response = await client.get("/urls/some/prefix/nested")
    assert response.status_code == 307


@pytest.mark.asyncio
async def test_redirect_database_outage(client: AsyncClient, manager) -> None:
    def unreachable():
        raise OperationalError("SELECT", {}, ConnectionRefusedError("connection refused"))

    with patch.object(manager.store, "_sessions", unreachable):
        response = await client.get("/urls/uncached1")

    assert response.status_code == 503
    assert response.json()["detail"].startswith("Database unavailable")
