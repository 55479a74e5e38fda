"""Request logging middleware for FastAPI.

Every log line emitted while a request is handled carries the correlation
and request ids. The completion line also names who was served and with
what: the gate puts the caller's user and product key on ``request.state``
and the try-on handler adds the provider credential it claimed, so one
line ties a response to its user, key and credential without ever logging
the keys themselves.
"""

from __future__ import annotations

import time
from typing import Any
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from tryon_gateway.core.logging import (
    bind_contextvars,
    clear_contextvars,
    get_logger,
    set_correlation_id,
)

logger = get_logger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"
MAX_CORRELATION_ID_LENGTH = 128


def caller_context(request: Request) -> dict[str, Any]:
    """Ids of the user, product key and provider credential behind a request.

    Only what has been resolved so far is included: nothing for anonymous
    or rejected-before-lookup requests, no credential when none was claimed.
    """
    state = request.state
    context: dict[str, Any] = {}

    user = getattr(state, "user", None)
    if user is not None:
        context["user_id"] = str(user.id)

    api_key = getattr(state, "api_key", None)
    if api_key is not None:
        context["api_key_id"] = str(api_key.id)

    credential = getattr(state, "credential", None)
    if credential is not None:
        context["credential_id"] = str(credential.id)

    return context


def incoming_correlation_id(request: Request) -> str:
    """The caller's correlation id when it is usable, otherwise a fresh one.

    The value is echoed in a response header and written to every log line,
    so oversized or non-printable ids are replaced.
    """
    supplied = request.headers.get(CORRELATION_ID_HEADER, "").strip()
    if supplied and len(supplied) <= MAX_CORRELATION_ID_LENGTH and supplied.isprintable():
        return supplied
    return str(uuid4())


class LoggingMiddleware(BaseHTTPMiddleware):
    """Binds request ids to the log context and logs each request's outcome."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        clear_contextvars()

        correlation_id = incoming_correlation_id(request)
        set_correlation_id(correlation_id)
        request_id = str(uuid4())

        bind_contextvars(
            correlation_id=correlation_id,
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_ip=self._get_client_ip(request),
        )

        start_time = time.perf_counter()
        logger.info("request_started")

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
                **caller_context(request),
            )

            response.headers[CORRELATION_ID_HEADER] = correlation_id
            response.headers[REQUEST_ID_HEADER] = request_id

            return response

        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.exception(
                "request_failed",
                duration_ms=round(duration_ms, 2),
                error_type=type(exc).__name__,
                **caller_context(request),
            )
            raise

        finally:
            clear_contextvars()

    def _get_client_ip(self, request: Request) -> str | None:
        """First hop of ``X-Forwarded-For``, then ``X-Real-IP``, then the peer."""
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host

        return None
