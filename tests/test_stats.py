"""Stats endpoint tests."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_stats_merges_buffered_clicks(client: AsyncClient, manager) -> None:
    create_resp = await client.post("/api/urls", json={"long_url": "https://www.example.com"})
    short_code = create_resp.json()["short_code"]

    for _ in range(13):
        await client.get(f"/urls/{short_code}")
    await manager.tasks.drain()

    response = await client.get(f"/api/stats/{short_code}")
    assert response.status_code == 200
    data = response.json()
    assert data["short_code"] == short_code
    assert data["total_clicks"] == 13
    assert data["last_accessed_at"] is not None

    link = await manager.store.find_by_short_code(short_code)
    assert link.clicks == 10


@pytest.mark.asyncio
async def test_stats_not_found(client: AsyncClient) -> None:
    response = await client.get("/api/stats/nonexistent")
    assert response.status_code == 404
