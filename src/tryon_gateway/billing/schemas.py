"""Pydantic schemas for plan and subscription administration."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from tryon_gateway.models.subscription import BillingCycle, SubscriptionStatus


class SubscriptionPlanBase(BaseModel):
    """Base schema for subscription plan."""

    name: str = Field(..., min_length=1, max_length=100)
    plan_provider_id: str = Field(..., min_length=1, max_length=255)
    price_cents: int = Field(..., ge=0)
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    request_limit_monthly: int = Field(..., ge=0)
    rate_limit_per_minute: int = Field(..., ge=1)
    features: dict[str, Any] | None = None
    is_public: bool = True


class SubscriptionPlanCreate(SubscriptionPlanBase):
    """Schema for creating a subscription plan."""


class SubscriptionPlanResponse(SubscriptionPlanBase):
    """Schema for subscription plan response."""

    id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SubscriptionActivate(BaseModel):
    """A subscription write produced by billing sync or an administrator."""

    user_id: UUID
    plan_id: UUID
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    current_period_start: datetime
    current_period_end: datetime
    provider_subscription_id: str | None = Field(None, max_length=255)

    @model_validator(mode="after")
    def check_period(self) -> "SubscriptionActivate":
        if self.current_period_end <= self.current_period_start:
            raise ValueError("current_period_end must be after current_period_start")
        return self


class SubscriptionStatusUpdate(BaseModel):
    """Status change for an existing subscription."""

    status: SubscriptionStatus
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool | None = None


class SubscriptionResponse(BaseModel):
    """Schema for subscription response."""

    id: UUID
    user_id: UUID
    plan_id: UUID
    provider_subscription_id: str | None
    status: SubscriptionStatus
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SubscriptionPlanUpdate(BaseModel):
    """Partial plan change. Unset fields are left alone."""

    name: str | None = Field(None, min_length=1, max_length=100)
    price_cents: int | None = Field(None, ge=0)
    request_limit_monthly: int | None = Field(None, ge=0)
    rate_limit_per_minute: int | None = Field(None, ge=1)
    features: dict[str, Any] | None = None
    is_public: bool | None = None
