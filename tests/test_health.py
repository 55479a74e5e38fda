"""Tests for health and metrics endpoints."""

import pytest
from httpx import AsyncClient

from tryon_gateway import __version__


@pytest.mark.asyncio
class TestHealth:
    """Tests for ungated endpoints."""

    async def test_health(self, client: AsyncClient) -> None:
        """Liveness reports the running version."""
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "version": __version__}

    async def test_product_health(self, client: AsyncClient) -> None:
        """The product health check needs no key."""
        response = await client.get("/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert "timestamp" in body

    async def test_correlation_id_header(self, client: AsyncClient) -> None:
        """Responses echo the caller's correlation id."""
        response = await client.get("/v1/health", headers={"X-Correlation-ID": "abc-123"})

        assert response.headers["X-Correlation-ID"] == "abc-123"

    async def test_metrics(self, client: AsyncClient) -> None:
        """Request metrics are exposed in Prometheus format."""
        await client.get("/v1/health")

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "tryon_gateway_active_requests" in response.text
        assert 'tryon_gateway_request_total{endpoint="/v1/health"' in response.text
