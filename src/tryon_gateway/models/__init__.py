"""ORM models."""

from tryon_gateway.models.api_key import APIKey, APIKeyStatus
from tryon_gateway.models.base import Base, CreatedAtMixin, TimestampMixin
from tryon_gateway.models.credential import ProviderCredential
from tryon_gateway.models.subscription import (
    BillingCycle,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
)
from tryon_gateway.models.usage_log import UsageLogEntry
from tryon_gateway.models.user import AccountStatus, User

__all__ = [
    "APIKey",
    "APIKeyStatus",
    "AccountStatus",
    "Base",
    "BillingCycle",
    "CreatedAtMixin",
    "ProviderCredential",
    "Subscription",
    "SubscriptionPlan",
    "SubscriptionStatus",
    "TimestampMixin",
    "UsageLogEntry",
    "User",
]
