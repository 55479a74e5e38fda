"""Exception handlers for FastAPI.

Every error leaves the service as
``{success: false, error: {code, message, details}, correlation_id}``.
Quota rejections additionally carry ``limit``, ``used`` and ``plan`` at the
top level so callers can act on them without parsing ``details``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tryon_gateway.core.exceptions import (
    ErrorCode,
    GatewayException,
    PoolExhaustedError,
    QuotaExceededError,
    get_http_status_for_exception,
)
from tryon_gateway.core.logging import get_correlation_id, get_logger
from tryon_gateway.schemas.base import ErrorDetail, ErrorResponse, QuotaExceededResponse

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = get_logger(__name__)


def create_error_response(
    error_code: str,
    message: str,
    details: dict[str, Any] | None = None,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """Build an ``ErrorResponse`` body.

    Args:
        error_code: Gateway error code.
        message: Caller-facing message.
        details: Structured context, dropped when empty.
        correlation_id: Request correlation ID.
    """
    body = ErrorResponse(
        error=ErrorDetail(code=error_code, message=message, details=details or None),
        correlation_id=correlation_id or None,
    )
    return body.to_content()


async def gateway_exception_handler(
    request: Request,
    exc: GatewayException,
) -> JSONResponse:
    """Handle GatewayException and subclasses."""
    correlation_id = get_correlation_id()

    logger.warning(
        "gateway_exception",
        error_code=exc.error_code.value,
        error_message=exc.message,
        http_status=exc.http_status.value,
        path=request.url.path,
        details=exc.details,
    )

    return JSONResponse(
        status_code=exc.http_status.value,
        content=create_error_response(
            error_code=exc.error_code.value,
            message=exc.user_message,
            details=exc.details if exc.details else None,
            correlation_id=correlation_id,
        ),
        headers=exc.headers,
    )


async def quota_exceeded_handler(
    request: Request,
    exc: QuotaExceededError,
) -> JSONResponse:
    """Quota rejections report the limit, usage and plan at the top level."""
    correlation_id = get_correlation_id()

    logger.info(
        "quota_exceeded_response",
        path=request.url.path,
        limit=exc.limit,
        used=exc.used,
        plan=exc.plan,
    )

    body = QuotaExceededResponse(
        code=exc.error_code.value,
        correlation_id=correlation_id or None,
        **exc.response_fields(),
    )

    return JSONResponse(status_code=exc.http_status.value, content=body.to_content())


async def pool_exhausted_handler(
    request: Request,
    exc: PoolExhaustedError,
) -> JSONResponse:
    """The caller gets a generic message; operators get the detail in logs."""
    correlation_id = get_correlation_id()

    logger.error(
        "pool_exhausted_response",
        error_code=exc.error_code.value,
        error_message=exc.message,
        path=request.url.path,
        details=exc.details,
    )

    return JSONResponse(
        status_code=exc.http_status.value,
        content=create_error_response(
            error_code=exc.error_code.value,
            message=exc.user_message,
            correlation_id=correlation_id,
        ),
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Transform request validation errors into the standard error shape."""
    correlation_id = get_correlation_id()

    errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    logger.warning(
        "validation_error",
        path=request.url.path,
        error_count=len(errors),
        errors=errors[:5],
    )

    return JSONResponse(
        status_code=400,
        content=create_error_response(
            error_code=ErrorCode.VALIDATION_ERROR.value,
            message="Request validation failed",
            details={"validation_errors": errors},
            correlation_id=correlation_id,
        ),
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Map Starlette HTTP exceptions (404 routes, 405 methods) to our format."""
    correlation_id = get_correlation_id()

    status_to_error_code = {
        400: ErrorCode.INVALID_INPUT,
        401: ErrorCode.AUTHENTICATION_REQUIRED,
        403: ErrorCode.PERMISSION_DENIED,
        404: ErrorCode.RESOURCE_NOT_FOUND,
        405: ErrorCode.INVALID_INPUT,
        429: ErrorCode.RATE_LIMIT_EXCEEDED,
        500: ErrorCode.INTERNAL_ERROR,
        502: ErrorCode.EXTERNAL_API_ERROR,
        504: ErrorCode.UPSTREAM_TIMEOUT,
    }

    error_code = status_to_error_code.get(exc.status_code, ErrorCode.UNKNOWN_ERROR)

    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            error_code=error_code.value,
            message=str(exc.detail) if exc.detail else "An error occurred",
            correlation_id=correlation_id,
        ),
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Log the full exception and return a generic error response."""
    correlation_id = get_correlation_id()
    http_status = get_http_status_for_exception(exc)

    logger.exception(
        "unhandled_exception",
        error_type=type(exc).__name__,
        error_message=str(exc),
        path=request.url.path,
    )

    return JSONResponse(
        status_code=http_status.value,
        content=create_error_response(
            error_code=ErrorCode.INTERNAL_ERROR.value,
            message="An unexpected error occurred. Please try again later.",
            correlation_id=correlation_id,
        ),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application.

    Starlette picks the handler registered for the closest class in the
    exception's MRO, so the quota and pool handlers win over the generic
    ``GatewayException`` one.
    """
    app.add_exception_handler(QuotaExceededError, quota_exceeded_handler)  # type: ignore[arg-type]
    app.add_exception_handler(PoolExhaustedError, pool_exhausted_handler)  # type: ignore[arg-type]
    app.add_exception_handler(GatewayException, gateway_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)
