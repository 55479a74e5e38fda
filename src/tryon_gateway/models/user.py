"""User model: the owner of product API keys and subscriptions."""

import enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Enum, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tryon_gateway.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from tryon_gateway.models.api_key import APIKey
    from tryon_gateway.models.subscription import Subscription


class AccountStatus(str, enum.Enum):
    """Account lifecycle status."""

    PENDING_VERIFICATION = "pending_verification"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class User(Base, TimestampMixin):
    """Account record.

    Registration and profile management live in the account service; the
    gateway only reads the account status and the current subscription
    pointer.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        index=True,
        nullable=False,
    )
    username: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        index=True,
        nullable=False,
    )
    account_status: Mapped[AccountStatus] = mapped_column(
        Enum(AccountStatus, values_callable=lambda x: [e.value for e in x]),
        default=AccountStatus.PENDING_VERIFICATION,
        nullable=False,
    )
    customer_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    current_subscription_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("subscriptions.id", use_alter=True, ondelete="SET NULL"),
        unique=True,
        nullable=True,
    )

    api_keys: Mapped[list["APIKey"]] = relationship(
        "APIKey",
        back_populates="user",
    )
    subscriptions: Mapped[list["Subscription"]] = relationship(
        "Subscription",
        back_populates="user",
        foreign_keys="Subscription.user_id",
    )
    current_subscription: Mapped["Subscription | None"] = relationship(
        "Subscription",
        foreign_keys=[current_subscription_id],
        post_update=True,
    )

    @property
    def is_suspended(self) -> bool:
        return self.account_status == AccountStatus.SUSPENDED

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username}, status={self.account_status})>"
