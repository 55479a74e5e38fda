"""Product API key schemas for requests and responses."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from tryon_gateway.models.api_key import APIKeyStatus


class APIKeyCreate(BaseModel):
    """Schema for creating a new product API key."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Descriptive name for the API key",
    )


class APIKeyResponse(BaseModel):
    """Key metadata. Never contains the key itself."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    key_prefix: str = Field(
        ...,
        description="Leading characters of the key, for identification",
    )
    status: APIKeyStatus
    last_used_at: datetime | None = None
    created_at: datetime


class APIKeyCreatedResponse(BaseModel):
    """Schema for a newly created key with its plaintext."""

    model_config = ConfigDict(extra="forbid")

    api_key: str = Field(
        ...,
        description="The plain API key (shown only once)",
    )
    key_info: APIKeyResponse
    message: str = Field(
        default="API key created successfully. Store this key securely as it will not be shown again.",
        description="Warning message",
    )
