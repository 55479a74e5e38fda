"""Product API key model for gateway authentication."""

import enum
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Enum, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tryon_gateway.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from tryon_gateway.models.user import User


class APIKeyStatus(str, enum.Enum):
    """Product API key status. Revocation is a soft delete."""

    ACTIVE = "active"
    REVOKED = "revoked"


class APIKey(Base, TimestampMixin):
    """
    Caller-facing product API key.

    Only the SHA-256 hash of the token is stored, together with a short
    non-secret prefix used to tell keys apart in listings. The plaintext is
    returned to the owner once, at creation.
    """

    __tablename__ = "api_keys"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    key_prefix: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )
    key_hash: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )
    status: Mapped[APIKeyStatus] = mapped_column(
        Enum(APIKeyStatus, values_callable=lambda x: [e.value for e in x]),
        default=APIKeyStatus.ACTIVE,
        nullable=False,
        index=True,
    )
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    user: Mapped["User"] = relationship("User", back_populates="api_keys")

    @property
    def is_revoked(self) -> bool:
        return self.status == APIKeyStatus.REVOKED

    def __repr__(self) -> str:
        return f"<APIKey(id={self.id}, name={self.name}, prefix={self.key_prefix}, status={self.status})>"
