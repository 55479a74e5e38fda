"""Tests for structured logging and the request logging middleware."""

import logging
from types import SimpleNamespace
from typing import Any
from unittest.mock import patch
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from tryon_gateway.api.middleware.logging import (
    CORRELATION_ID_HEADER,
    MAX_CORRELATION_ID_LENGTH,
    LoggingMiddleware,
)
from tryon_gateway.core.logging import (
    SERVICE_NAME,
    LoggerMixin,
    add_correlation_id,
    add_service_context,
    configure_logging,
    correlation_id_ctx,
    drop_color_message_key,
    get_correlation_id,
    get_logger,
    set_correlation_id,
)


class TestCorrelationId:
    """Tests for correlation ID management."""

    def setup_method(self) -> None:
        """Clear correlation ID before each test."""
        correlation_id_ctx.set(None)

    def test_set_and_get_correlation_id(self) -> None:
        """Test setting and getting correlation ID."""
        assert get_correlation_id() is None

        correlation_id = set_correlation_id("test-correlation-123")
        assert correlation_id == "test-correlation-123"
        assert get_correlation_id() == "test-correlation-123"

    def test_auto_generate_correlation_id(self) -> None:
        """Test auto-generation of correlation ID."""
        correlation_id = set_correlation_id()
        assert len(correlation_id) == 36


class TestProcessors:
    """Tests for the custom structlog processors."""

    def setup_method(self) -> None:
        correlation_id_ctx.set(None)

    def test_correlation_id_added_when_bound(self) -> None:
        """Entries carry the bound correlation id."""
        set_correlation_id("corr-1")

        event = add_correlation_id(logging.getLogger(), "info", {"event": "x"})

        assert event["correlation_id"] == "corr-1"

    def test_correlation_id_absent_when_unbound(self) -> None:
        """Nothing is added outside a request."""
        event = add_correlation_id(logging.getLogger(), "info", {"event": "x"})

        assert "correlation_id" not in event

    def test_service_context(self) -> None:
        """Entries name the service."""
        event = add_service_context(logging.getLogger(), "info", {"event": "x"})

        assert event["service"] == SERVICE_NAME

    def test_drop_color_message(self) -> None:
        """Uvicorn's duplicate message key is removed."""
        event = drop_color_message_key(
            logging.getLogger(), "info", {"event": "x", "color_message": "x"}
        )

        assert event == {"event": "x"}


class TestConfigureLogging:
    """Tests for logging configuration."""

    def test_json_mode_sets_root_level(self) -> None:
        """The root logger gets one handler at the requested level."""
        configure_logging(json_logs=True, log_level="warning")

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_console_mode(self) -> None:
        """Console mode configures without error and loggers are usable."""
        configure_logging(json_logs=False, log_level="DEBUG")

        get_logger("console_test").debug("debug_message", credential_id="abc")


class TestLoggerMixin:
    """Tests for LoggerMixin class."""

    def test_logger_mixin(self) -> None:
        """The mixin provides a working logger property."""

        class PoolService(LoggerMixin):
            def do_work(self) -> str:
                self.logger.info("pool_event", action="testing")
                return "done"

        assert PoolService().do_work() == "done"


class TestLoggingMiddleware:
    """Tests for request logging."""

    user_id = uuid4()
    api_key_id = uuid4()
    credential_id = uuid4()

    def _app(self) -> FastAPI:
        app = FastAPI()
        app.add_middleware(LoggingMiddleware)

        @app.get("/gated")
        async def gated(request: Request) -> dict[str, str]:
            request.state.user = SimpleNamespace(id=self.user_id)
            request.state.api_key = SimpleNamespace(id=self.api_key_id)
            request.state.credential = SimpleNamespace(id=self.credential_id, key="provider-secret")
            return {"status": "ok"}

        @app.get("/open")
        async def open_route() -> dict[str, str]:
            return {"status": "ok"}

        return app

    def _completed(
        self, path: str, headers: dict[str, str] | None = None
    ) -> tuple[dict[str, Any], dict[str, str]]:
        with patch("tryon_gateway.api.middleware.logging.logger") as mock_logger:
            with TestClient(self._app()) as client:
                response = client.get(path, headers=headers or {})

        calls = [c for c in mock_logger.info.call_args_list if c.args == ("request_completed",)]
        assert len(calls) == 1
        return calls[0].kwargs, dict(response.headers)

    def test_completion_names_user_key_and_credential(self) -> None:
        """The completion line carries the caller's ids and never the provider key."""
        fields, _ = self._completed("/gated")

        assert fields["status_code"] == 200
        assert fields["user_id"] == str(self.user_id)
        assert fields["api_key_id"] == str(self.api_key_id)
        assert fields["credential_id"] == str(self.credential_id)
        assert "provider-secret" not in repr(fields)

    def test_anonymous_request_has_no_caller_ids(self) -> None:
        """Nothing is added when no caller was resolved."""
        fields, _ = self._completed("/open")

        assert "user_id" not in fields
        assert "credential_id" not in fields

    def test_caller_correlation_id_is_echoed(self) -> None:
        """A usable correlation id is kept."""
        _, headers = self._completed("/open", {CORRELATION_ID_HEADER: "trace-42"})

        assert headers["x-correlation-id"] == "trace-42"

    def test_oversized_correlation_id_is_replaced(self) -> None:
        """Oversized correlation ids are swapped for a generated one."""
        supplied = "x" * (MAX_CORRELATION_ID_LENGTH + 1)

        _, headers = self._completed("/open", {CORRELATION_ID_HEADER: supplied})

        assert headers["x-correlation-id"] != supplied
        assert len(headers["x-correlation-id"]) == 36
