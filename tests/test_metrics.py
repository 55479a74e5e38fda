"""Tests for Prometheus metrics integration."""

from fastapi import APIRouter, FastAPI
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from tryon_gateway.api.middleware.metrics import MetricsMiddleware
from tryon_gateway.core.metrics import (
    track_allocation,
    track_gate_decision,
    track_pool_reset,
    track_usage_log_write,
)


def _sample(name: str, labels: dict[str, str] | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestTrackers:
    """Tests for the tracking helpers."""

    def test_track_allocation(self) -> None:
        """Allocation outcomes are counted by label."""
        before = _sample("tryon_gateway_credential_allocations_total", {"outcome": "exhausted"})

        track_allocation("exhausted")

        after = _sample("tryon_gateway_credential_allocations_total", {"outcome": "exhausted"})
        assert after == before + 1

    def test_track_pool_reset(self) -> None:
        """Pool resets are counted by outcome."""
        before = _sample("tryon_gateway_credential_pool_resets_total", {"outcome": "failure"})

        track_pool_reset("failure")

        assert _sample("tryon_gateway_credential_pool_resets_total", {"outcome": "failure"}) == before + 1

    def test_track_gate_decision(self) -> None:
        """Gate decisions carry the policy kind."""
        labels = {"outcome": "quota_exceeded", "policy": "free_tier"}
        before = _sample("tryon_gateway_gate_decisions_total", labels)

        track_gate_decision("quota_exceeded", "free_tier")

        assert _sample("tryon_gateway_gate_decisions_total", labels) == before + 1

    def test_track_usage_log_write(self) -> None:
        """Usage log writes are counted by outcome."""
        before = _sample("tryon_gateway_usage_log_writes_total", {"outcome": "success"})

        track_usage_log_write("success")

        assert _sample("tryon_gateway_usage_log_writes_total", {"outcome": "success"}) == before + 1


class TestMetricsMiddleware:
    """Tests for the request metrics middleware."""

    def _app(self) -> FastAPI:
        app = FastAPI()
        app.add_middleware(MetricsMiddleware)

        @app.get("/items/{item_id}")
        async def get_item(item_id: int) -> dict[str, int]:
            return {"item_id": item_id}

        @app.get("/health")
        async def health() -> dict[str, str]:
            return {"status": "healthy"}

        versioned = APIRouter(prefix="/v2")

        @versioned.get("/health")
        async def versioned_health() -> dict[str, str]:
            return {"status": "healthy"}

        app.include_router(versioned)

        return app

    def test_counts_by_route_pattern(self) -> None:
        """Requests are labeled with the route pattern, not the raw path."""
        labels = {"endpoint": "/items/{item_id}", "method": "GET", "status": "200"}
        before = _sample("tryon_gateway_request_total", labels)

        with TestClient(self._app()) as client:
            client.get("/items/1")
            client.get("/items/2")

        assert _sample("tryon_gateway_request_total", labels) == before + 2

    def test_health_is_excluded(self) -> None:
        """Health checks are not counted."""
        labels = {"endpoint": "/health", "method": "GET", "status": "200"}
        before = _sample("tryon_gateway_request_total", labels)

        with TestClient(self._app()) as client:
            client.get("/health")

        assert _sample("tryon_gateway_request_total", labels) == before

    def test_prefixed_route_keeps_full_path(self) -> None:
        """A prefixed router's route is labeled with its full path, not the bare suffix."""
        full = {"endpoint": "/v2/health", "method": "GET", "status": "200"}
        bare = {"endpoint": "/health", "method": "GET", "status": "200"}
        before_full = _sample("tryon_gateway_request_total", full)
        before_bare = _sample("tryon_gateway_request_total", bare)

        with TestClient(self._app()) as client:
            client.get("/v2/health")

        assert _sample("tryon_gateway_request_total", full) == before_full + 1
        assert _sample("tryon_gateway_request_total", bare) == before_bare

    def test_unmatched_path_uses_raw_path(self) -> None:
        """Requests that match no route fall back to the URL path."""
        labels = {"endpoint": "/nowhere", "method": "GET", "status": "404"}
        before = _sample("tryon_gateway_request_total", labels)

        with TestClient(self._app()) as client:
            client.get("/nowhere")

        assert _sample("tryon_gateway_request_total", labels) == before + 1
