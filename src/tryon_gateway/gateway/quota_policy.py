"""Quota policies: which limit applies to a caller and since when it counts.

A caller is either on an active subscription (the plan's monthly limit,
counted from the start of the current billing period) or on the free tier
(a fixed limit counted over a trailing window ending now). Both cases are
plain values so the admission decision can be computed without a request
or a database.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Literal
from uuid import UUID

from tryon_gateway.core.config import get_settings
from tryon_gateway.models.base import utcnow
from tryon_gateway.models.user import User

settings = get_settings()

FREE_TIER_PLAN_NAME = "Free Tier"


@dataclass(frozen=True)
class SubscribedPolicy:
    """Quota granted by an active subscription."""

    limit: int
    window_start: datetime
    plan_name: str
    rate_limit_per_minute: int
    subscription_id: UUID
    kind: Literal["subscribed"] = "subscribed"


@dataclass(frozen=True)
class FreeTierPolicy:
    """Fallback quota for callers without an active subscription."""

    limit: int
    window_start: datetime
    rate_limit_per_minute: int
    plan_name: str = FREE_TIER_PLAN_NAME
    kind: Literal["free_tier"] = "free_tier"


QuotaPolicy = SubscribedPolicy | FreeTierPolicy


@dataclass(frozen=True)
class QuotaDecision:
    """Outcome of checking usage against a policy."""

    policy: QuotaPolicy
    used: int
    allowed: bool

    @property
    def remaining(self) -> int:
        return max(0, self.policy.limit - self.used)


def free_tier_policy(now: datetime | None = None) -> FreeTierPolicy:
    """Free tier policy with its trailing window ending at ``now``."""
    now = now or utcnow()
    return FreeTierPolicy(
        limit=settings.free_tier_request_limit,
        window_start=now - timedelta(days=settings.free_tier_window_days),
        rate_limit_per_minute=settings.free_tier_rate_limit_per_minute,
    )


def resolve_quota_policy(user: User, now: datetime | None = None) -> QuotaPolicy:
    """
    Pick the policy for a user whose current subscription and plan are loaded.

    Only a subscription with status ``active`` grants the plan's quota;
    trialing, past-due and canceled subscriptions fall back to the free tier.
    """
    subscription = user.current_subscription
    if subscription is not None and subscription.is_active and subscription.plan is not None:
        plan = subscription.plan
        return SubscribedPolicy(
            limit=plan.request_limit_monthly,
            window_start=subscription.current_period_start,
            plan_name=plan.name,
            rate_limit_per_minute=plan.rate_limit_per_minute,
            subscription_id=subscription.id,
        )
    return free_tier_policy(now)


def evaluate_quota(policy: QuotaPolicy, used: int) -> QuotaDecision:
    """Admit while usage in the window is strictly below the limit."""
    return QuotaDecision(policy=policy, used=used, allowed=used < policy.limit)
