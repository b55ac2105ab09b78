"""Tests for health check endpoints."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.database import get_db
from app.main import app


@pytest.fixture
def override_db():
    """Replace the database dependency with a mock session."""
    session = AsyncMock()

    async def _get_db():
        yield session

    app.dependency_overrides[get_db] = _get_db
    yield session
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def upload_pool():
    """Attach a fake worker pool to application state."""
    pool = MagicMock()
    pool.stats.return_value = {"max_concurrent": 4, "active": 1, "queued": 2}
    app.state.upload_pool = pool
    yield pool
    del app.state.upload_pool


@pytest.mark.asyncio
async def test_health_check_returns_ok(client):
    """Health endpoint should return status ok."""
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"


@pytest.mark.asyncio
async def test_health_check_uses_provided_request_id(client):
    """Health endpoint should echo back provided X-Request-ID."""
    custom_id = "test-request-id-12345"
    response = await client.get("/health", headers={"X-Request-ID": custom_id})

    assert response.headers["X-Request-ID"] == custom_id


@pytest.mark.asyncio
async def test_readiness_reports_pool_stats(client, override_db, upload_pool):
    """Readiness should include ingestion pool occupancy."""
    response = await client.get("/health/ready")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["database"] == "connected"
    assert data["ingestion"] == {"max_concurrent": 4, "active": 1, "queued": 2}


@pytest.mark.asyncio
async def test_readiness_degraded_without_pool(client, override_db):
    """Readiness is degraded when the worker pool was never started."""
    response = await client.get("/health/ready")

    data = response.json()
    assert data["status"] == "degraded"
    assert data["ingestion"] is None


@pytest.mark.asyncio
async def test_readiness_unhealthy_when_database_fails(client, override_db, upload_pool):
    """Readiness should report a disconnected database."""
    override_db.execute.side_effect = OSError("connection refused")

    response = await client.get("/health/ready")

    data = response.json()
    assert data["status"] == "unhealthy"
    assert data["database"] == "disconnected"
