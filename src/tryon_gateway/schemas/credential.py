"""Provider credential schemas for pool administration."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from tryon_gateway.models.credential import ProviderCredential


class CredentialCreate(BaseModel):
    """Schema for adding a provider key to the pool."""

    model_config = ConfigDict(extra="forbid")

    key: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Provider API key",
    )


class CredentialResponse(BaseModel):
    """Pool entry with its key masked."""

    id: UUID
    key: str = Field(..., description="First and last four characters of the key")
    request_count: int
    is_rate_limited: bool
    last_used_at: datetime
    created_at: datetime

    @classmethod
    def from_credential(cls, credential: ProviderCredential) -> "CredentialResponse":
        return cls(
            id=credential.id,
            key=credential.masked_key,
            request_count=credential.request_count,
            is_rate_limited=credential.is_rate_limited,
            last_used_at=credential.last_used_at,
            created_at=credential.created_at,
        )


class PoolResetResponse(BaseModel):
    """Result of a manual pool reset."""

    credentials_reset: int
