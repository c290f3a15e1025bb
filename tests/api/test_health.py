"""Tests for the health check endpoint."""
from httpx import AsyncClient


async def test_health_endpoint_returns_200(client: AsyncClient) -> None:
    """Test that the health endpoint returns 200 OK."""
    response = await client.get("/health")
    assert response.status_code == 200


async def test_health_endpoint_returns_healthy_status(client: AsyncClient) -> None:
    """Test that the health endpoint reports a reachable store."""
    response = await client.get("/health")
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] == "healthy"
