"""Tests for health, readiness and version endpoints."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from foodie.cache.store import get_cache
from foodie.main import create_app
from foodie.ws.fanout import get_fanout


@pytest.mark.asyncio
async def test_health(client) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_version(client) -> None:
    response = await client.get("/version")
    assert response.status_code == 200
    assert "version" in response.json()


@pytest.mark.asyncio
async def test_ready_without_broker_is_degraded(client) -> None:
    response = await client.get("/ready")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "degraded"
    assert body["checks"]["database"] == "ok"
    assert body["checks"]["cache"] == "ok"
    assert body["checks"]["broker_publisher"] == "local-only"
    assert body["checks"]["broker_subscriber"] == "local-only"
    assert body["websockets"] == {"total_connections": 0, "unique_users": 0, "rooms": 0}


@pytest.mark.asyncio
async def test_ready_reports_cache_outage(client, fake_redis) -> None:
    fake_redis.down = True

    body = (await client.get("/ready")).json()

    assert body["checks"]["cache"] == "unavailable"
    assert body["checks"]["database"] == "ok"


@pytest.mark.asyncio
async def test_ready_without_database_is_unavailable(cache, fanout) -> None:
    application = create_app()
    application.dependency_overrides[get_cache] = lambda: cache
    application.dependency_overrides[get_fanout] = lambda: fanout

    async with AsyncClient(transport=ASGITransport(app=application), base_url="http://test") as ac:
        response = await ac.get("/ready")

    assert response.status_code == 503
    assert response.json() == {"detail": "Database not initialized"}
