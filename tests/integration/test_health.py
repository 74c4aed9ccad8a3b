from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from cardtruth.db.session import get_db
from cardtruth.main import app


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    """Test basic health check."""
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"


@pytest.mark.asyncio
async def test_health_ready(client: AsyncClient):
    """Test readiness check with database connection."""
    response = await client.get("/health/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready", "database": "connected"}


@pytest.mark.asyncio
async def test_health_ready_database_down(client: AsyncClient):
    session = AsyncMock()
    session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("unable to open database"))

    async def broken_db():
        yield session

    app.dependency_overrides[get_db] = broken_db

    response = await client.get("/health/ready")
    assert response.status_code == 503
    data = response.json()
    assert data["database"] == "disconnected"
    assert data["error"] == "OperationalError"
