"""Response envelopes shared by every route.

Management routes wrap their payload in ``BaseResponse``. Errors are
rendered by the exception handlers from ``ErrorResponse``, except quota
rejections, which use ``QuotaExceededResponse`` so callers can read the
limit and usage without parsing details. Every envelope carries the
request's correlation id, the key for finding it in the logs.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from tryon_gateway.core.logging import get_correlation_id

T = TypeVar("T")


class ResponseMetadata(BaseModel):
    """When the response was built and which request it belongs to."""

    model_config = ConfigDict(extra="forbid")

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    correlation_id: str | None = Field(
        default_factory=get_correlation_id,
        description="Same value as the X-Correlation-ID response header",
    )


class BaseResponse(BaseModel, Generic[T]):
    """Envelope for successful management responses."""

    model_config = ConfigDict(extra="forbid")

    success: bool = True
    data: T
    message: str | None = None
    meta: ResponseMetadata = Field(default_factory=ResponseMetadata)


class ErrorDetail(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code: str = Field(..., description="Gateway error code, e.g. TG3002 for a suspended account")
    message: str = Field(..., description="Caller-facing message")
    details: dict[str, Any] | None = Field(
        default=None,
        description="Structured context; omitted when there is none",
    )


class ErrorResponse(BaseModel):
    """Error body for every rejection except quota exhaustion."""

    model_config = ConfigDict(extra="forbid")

    success: bool = False
    error: ErrorDetail
    correlation_id: str | None = None

    def to_content(self) -> dict[str, Any]:
        """JSON body with empty ``details`` and ``correlation_id`` left out."""
        content = self.model_dump(mode="json")
        if self.error.details is None:
            del content["error"]["details"]
        if self.correlation_id is None:
            del content["correlation_id"]
        return content


class QuotaExceededResponse(BaseModel):
    """Body of a 429 for a used-up monthly or free tier quota."""

    model_config = ConfigDict(extra="forbid")

    success: bool = False
    code: str
    error: str = Field(..., description="Caller-facing message")
    limit: int
    used: int
    plan: str = Field(..., description="Plan name, or the free tier")
    correlation_id: str | None = None

    def to_content(self) -> dict[str, Any]:
        content = self.model_dump(mode="json")
        if self.correlation_id is None:
            del content["correlation_id"]
        return content
