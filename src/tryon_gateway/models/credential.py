"""Provider credential model: one upstream API key in the rotating pool."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from tryon_gateway.models.base import Base, CreatedAtMixin, utcnow


class ProviderCredential(Base, CreatedAtMixin):
    """
    Upstream provider API key with its daily usage counter.

    ``is_rate_limited`` is set exactly when ``request_count`` reaches the
    configured ceiling; both are cleared by the daily reset.
    """

    __tablename__ = "provider_credentials"
    __table_args__ = (
        Index(
            "ix_provider_credentials_eligibility",
            "is_rate_limited",
            "last_used_at",
        ),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )
    key: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    request_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    is_rate_limited: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    last_used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    @property
    def masked_key(self) -> str:
        """First and last four characters, for admin listings."""
        if len(self.key) <= 8:
            return "*" * len(self.key)
        return f"{self.key[:4]}...{self.key[-4:]}"

    def __repr__(self) -> str:
        return (
            f"<ProviderCredential(id={self.id}, key={self.masked_key}, "
            f"count={self.request_count}, rate_limited={self.is_rate_limited})>"
        )
