"""Unit tests for health endpoints."""

import pytest


@pytest.mark.asyncio
async def test_health_check(test_client):
    """Test the health check endpoint."""
    response = await test_client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "trip-booking-api"
    assert "version" in data


@pytest.mark.asyncio
async def test_ready_check(test_client):
    """Test the readiness check reaches the database."""
    response = await test_client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"]["database"] == "ok"


@pytest.mark.asyncio
async def test_info_endpoint(test_client):
    """Test the service info endpoint."""
    response = await test_client.get("/info")
    assert response.status_code == 200
    data = response.json()
    assert "service" in data
    assert "version" in data
    assert data["features"]["waitlist_promotion"] is True
    assert data["limits"]["hold_ttl_hours"] == 24


@pytest.mark.asyncio
async def test_health_ping_rpc(test_client, clock):
    """Test the RPC-style health ping reports the engine clock."""
    clock.advance(hours=3)

    response = await test_client.post("/v1/health/ping", json={})

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["engine_ready"] is True
    assert data["environment"] == "staging"
    assert data["server_time"].startswith(clock.now.isoformat(timespec="seconds"))


@pytest.mark.asyncio
async def test_request_id_header_is_echoed(test_client):
    """Responses carry the caller's request ID."""
    response = await test_client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
