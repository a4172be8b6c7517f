"""API tests for the application health endpoints."""

import pytest
from httpx import ASGITransport, AsyncClient

from ecocol.main import app


@pytest.mark.asyncio
async def test_health() -> None:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["x-request-id"]


@pytest.mark.asyncio
async def test_ready_without_storage() -> None:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/ready")

    assert response.status_code == 503
    assert response.json()["checks"] == {"blob_storage": False}
