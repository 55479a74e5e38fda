"""Usage ledger entry model."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from tryon_gateway.models.base import Base, utcnow


class UsageLogEntry(Base):
    """One completed gated request. Rows are append-only."""

    __tablename__ = "api_usage_logs"
    __table_args__ = (
        Index("ix_api_usage_logs_user_timestamp", "user_id", "request_timestamp"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    request_timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    api_key_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("api_keys.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    http_method: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
    )
    endpoint: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    http_status_code: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    response_time_ms: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    credits_consumed: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<UsageLogEntry(id={self.id}, user_id={self.user_id}, "
            f"endpoint={self.endpoint}, status={self.http_status_code})>"
        )
