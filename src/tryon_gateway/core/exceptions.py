"""Custom exceptions for the try-on gateway.

Every error the gateway raises deliberately derives from ``GatewayException``
and carries:
- a machine-readable error code
- the HTTP status used when it reaches a client
- a user-facing message that may hide operator detail
- structured details for logs and responses
"""

from __future__ import annotations

from enum import Enum
from http import HTTPStatus
from typing import Any


class ErrorCode(str, Enum):
    """Machine-readable error codes for API responses."""

    # General errors (1xxx)
    INTERNAL_ERROR = "TG1000"
    UNKNOWN_ERROR = "TG1001"

    # Authentication errors (2xxx)
    AUTHENTICATION_REQUIRED = "TG2000"
    MISSING_CREDENTIAL = "TG2001"
    INVALID_CREDENTIAL = "TG2002"
    TOKEN_INVALID = "TG2003"
    TOKEN_EXPIRED = "TG2004"

    # Authorization errors (3xxx)
    PERMISSION_DENIED = "TG3000"
    REVOKED_CREDENTIAL = "TG3001"
    ACCOUNT_SUSPENDED = "TG3002"
    INSUFFICIENT_PERMISSIONS = "TG3003"

    # Validation errors (4xxx)
    VALIDATION_ERROR = "TG4000"
    INVALID_INPUT = "TG4001"
    INVALID_IMAGE = "TG4002"

    # Resource errors (5xxx)
    RESOURCE_NOT_FOUND = "TG5000"
    USER_NOT_FOUND = "TG5001"
    API_KEY_NOT_FOUND = "TG5002"
    CREDENTIAL_NOT_FOUND = "TG5003"
    PLAN_NOT_FOUND = "TG5004"
    SUBSCRIPTION_NOT_FOUND = "TG5005"
    RESOURCE_CONFLICT = "TG5009"

    # Usage ledger errors (6xxx)
    USAGE_LOG_WRITE_FAILED = "TG6001"

    # Upstream API errors (7xxx)
    EXTERNAL_API_ERROR = "TG7000"
    UPSTREAM_TIMEOUT = "TG7001"

    # Rate limiting and capacity errors (8xxx)
    RATE_LIMIT_EXCEEDED = "TG8000"
    QUOTA_EXCEEDED = "TG8001"
    POOL_EXHAUSTED = "TG8100"


class GatewayException(Exception):
    """Base exception for all gateway errors.

    Attributes:
        message: Human-readable error message (logged).
        error_code: Machine-readable error code.
        http_status: HTTP status code for API responses.
        details: Additional context for debugging.
        user_message: Message shown to API callers (may differ from message).
    """

    message: str = "An unexpected error occurred"
    error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR
    http_status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
    user_message: str | None = None

    def __init__(
        self,
        message: str | None = None,
        *,
        error_code: ErrorCode | None = None,
        http_status: HTTPStatus | None = None,
        details: dict[str, Any] | None = None,
        user_message: str | None = None,
    ) -> None:
        self.message = message or self.__class__.message
        self.error_code = error_code or self.__class__.error_code
        self.http_status = http_status or self.__class__.http_status
        self.details = details or {}
        self.user_message = user_message or self.__class__.user_message or self.message
        super().__init__(self.message)

    @property
    def headers(self) -> dict[str, str] | None:
        """Extra response headers for this error."""
        return None

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code.value}, "
            f"http_status={self.http_status.value}, "
            f"details={self.details!r}"
            f")"
        )


# ============================================================================
# Authentication Exceptions
# ============================================================================


class AuthenticationError(GatewayException):
    """Authentication-related errors."""

    message = "Authentication required"
    error_code = ErrorCode.AUTHENTICATION_REQUIRED
    http_status = HTTPStatus.UNAUTHORIZED

    @property
    def headers(self) -> dict[str, str] | None:
        return {"WWW-Authenticate": "Bearer"}


class MissingCredentialError(AuthenticationError):
    """The Authorization header is absent or not a Bearer token."""

    message = "Authorization header is missing or invalid. Use Bearer <api_key>."
    error_code = ErrorCode.MISSING_CREDENTIAL


class InvalidCredentialError(AuthenticationError):
    """The presented product API key does not match any stored key."""

    message = "Invalid API key."
    error_code = ErrorCode.INVALID_CREDENTIAL


class InvalidTokenError(AuthenticationError):
    """Invalid or malformed session token."""

    message = "Invalid or expired token"
    error_code = ErrorCode.TOKEN_INVALID


class TokenExpiredError(InvalidTokenError):
    """Session token has expired."""

    message = "Token has expired"
    error_code = ErrorCode.TOKEN_EXPIRED


# ============================================================================
# Authorization Exceptions
# ============================================================================


class AuthorizationError(GatewayException):
    """Authorization-related errors."""

    message = "Permission denied"
    error_code = ErrorCode.PERMISSION_DENIED
    http_status = HTTPStatus.FORBIDDEN


class RevokedCredentialError(AuthorizationError):
    """The product API key has been revoked by its owner."""

    message = "This API key has been revoked."
    error_code = ErrorCode.REVOKED_CREDENTIAL


class AccountSuspendedError(AuthorizationError):
    """The key's owning account is suspended."""

    message = "User account is suspended."
    error_code = ErrorCode.ACCOUNT_SUSPENDED


class InsufficientPermissionsError(AuthorizationError):
    """Caller lacks the role required for this operation."""

    message = "Insufficient permissions"
    error_code = ErrorCode.INSUFFICIENT_PERMISSIONS


# ============================================================================
# Validation Exceptions
# ============================================================================


class ValidationError(GatewayException):
    """Input validation errors."""

    message = "Validation error"
    error_code = ErrorCode.VALIDATION_ERROR
    http_status = HTTPStatus.BAD_REQUEST


class InvalidInputError(ValidationError):
    """Invalid input provided."""

    message = "Invalid input"
    error_code = ErrorCode.INVALID_INPUT


class InvalidImageError(ValidationError):
    """An input image could not be loaded or is unacceptable."""

    message = "Invalid image"
    error_code = ErrorCode.INVALID_IMAGE


# ============================================================================
# Resource Exceptions
# ============================================================================


class NotFoundError(GatewayException):
    """Resource not found errors."""

    message = "Resource not found"
    error_code = ErrorCode.RESOURCE_NOT_FOUND
    http_status = HTTPStatus.NOT_FOUND

    def __init__(
        self,
        message: str | None = None,
        *,
        resource_type: str | None = None,
        resource_id: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {}) or {}
        if resource_type:
            details["resource_type"] = resource_type
        if resource_id:
            details["resource_id"] = resource_id

        if message is None and resource_type:
            message = f"{resource_type} not found"
            if resource_id:
                message = f"{resource_type} '{resource_id}' not found"

        super().__init__(message, details=details, **kwargs)


class UserNotFoundError(NotFoundError):
    """User not found."""

    message = "User not found"
    error_code = ErrorCode.USER_NOT_FOUND


class APIKeyNotFoundError(NotFoundError):
    """Product API key not found for this owner."""

    message = "API key not found"
    error_code = ErrorCode.API_KEY_NOT_FOUND


class CredentialNotFoundError(NotFoundError):
    """Provider credential not found."""

    message = "Credential not found"
    error_code = ErrorCode.CREDENTIAL_NOT_FOUND


class PlanNotFoundError(NotFoundError):
    """Subscription plan not found."""

    message = "Plan not found"
    error_code = ErrorCode.PLAN_NOT_FOUND


class SubscriptionNotFoundError(NotFoundError):
    """Subscription not found."""

    message = "Subscription not found"
    error_code = ErrorCode.SUBSCRIPTION_NOT_FOUND


class ConflictError(GatewayException):
    """A unique value already exists."""

    message = "Resource already exists"
    error_code = ErrorCode.RESOURCE_CONFLICT
    http_status = HTTPStatus.CONFLICT


# ============================================================================
# Usage Ledger Exceptions
# ============================================================================


class UsageLogWriteError(GatewayException):
    """A usage log entry could not be written after the response was sent.

    Built inside post-response tasks for its code and details, which go to
    the logs; it never reaches a caller.
    """

    message = "Failed to write usage log entry"
    error_code = ErrorCode.USAGE_LOG_WRITE_FAILED
    http_status = HTTPStatus.INTERNAL_SERVER_ERROR


# ============================================================================
# Upstream API Exceptions
# ============================================================================


class ExternalAPIError(GatewayException):
    """The upstream image API failed or returned an unusable response."""

    message = "Upstream API error"
    error_code = ErrorCode.EXTERNAL_API_ERROR
    http_status = HTTPStatus.BAD_GATEWAY
    user_message = "The image service is temporarily unavailable. Please try again later."

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {}) or {}
        if status_code is not None:
            details["upstream_status_code"] = status_code
        super().__init__(message, details=details, **kwargs)


class UpstreamTimeoutError(ExternalAPIError):
    """The upstream image API did not answer within the configured timeout."""

    message = "Upstream API timeout"
    error_code = ErrorCode.UPSTREAM_TIMEOUT
    http_status = HTTPStatus.GATEWAY_TIMEOUT
    user_message = "The image service took too long to respond. Please try again."


# ============================================================================
# Rate Limiting and Capacity Exceptions
# ============================================================================


class RateLimitError(GatewayException):
    """Per-minute rate limit exceeded."""

    message = "Rate limit exceeded"
    error_code = ErrorCode.RATE_LIMIT_EXCEEDED
    http_status = HTTPStatus.TOO_MANY_REQUESTS

    def __init__(
        self,
        message: str | None = None,
        *,
        retry_after: int | None = None,
        limit: int | None = None,
        window_seconds: int | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {}) or {}
        if retry_after:
            details["retry_after_seconds"] = retry_after
        if limit:
            details["limit"] = limit
        if window_seconds:
            details["window_seconds"] = window_seconds
        self.retry_after = retry_after

        super().__init__(message, details=details, **kwargs)

    @property
    def headers(self) -> dict[str, str] | None:
        if self.retry_after:
            return {"Retry-After": str(self.retry_after)}
        return None


class QuotaExceededError(GatewayException):
    """The caller has used up the request quota for the current window."""

    message = "Quota exceeded"
    error_code = ErrorCode.QUOTA_EXCEEDED
    http_status = HTTPStatus.TOO_MANY_REQUESTS

    def __init__(
        self,
        *,
        limit: int,
        used: int,
        plan: str,
        **kwargs: Any,
    ) -> None:
        self.limit = limit
        self.used = used
        self.plan = plan
        super().__init__(
            f"Quota exceeded. Limit: {limit} requests.",
            details={"limit": limit, "used": used, "plan": plan},
            **kwargs,
        )

    def response_fields(self) -> dict[str, Any]:
        """Top-level fields returned to the caller alongside the error."""
        return {
            "error": self.user_message,
            "limit": self.limit,
            "used": self.used,
            "plan": self.plan,
        }


class PoolExhaustedError(GatewayException):
    """No provider credential in the pool can take another request.

    Operator-facing: the detail is logged while callers receive a generic
    message. Not retried within the request.
    """

    message = "All provider credentials are rate-limited"
    error_code = ErrorCode.POOL_EXHAUSTED
    http_status = HTTPStatus.SERVICE_UNAVAILABLE
    user_message = "The service is temporarily at capacity. Please try again later."


# ============================================================================
# Exception to HTTP Status Mapping
# ============================================================================


def get_http_status_for_exception(exc: Exception) -> HTTPStatus:
    """Get the appropriate HTTP status code for an exception."""
    if isinstance(exc, GatewayException):
        return exc.http_status

    exception_status_map: dict[type, HTTPStatus] = {
        ValueError: HTTPStatus.BAD_REQUEST,
        PermissionError: HTTPStatus.FORBIDDEN,
        TimeoutError: HTTPStatus.GATEWAY_TIMEOUT,
        ConnectionError: HTTPStatus.BAD_GATEWAY,
    }

    for exc_type, status in exception_status_map.items():
        if isinstance(exc, exc_type):
            return status

    return HTTPStatus.INTERNAL_SERVER_ERROR
