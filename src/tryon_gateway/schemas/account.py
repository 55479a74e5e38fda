"""Account status schemas and the administrator's view of users."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, field_validator

from tryon_gateway.models.user import AccountStatus


class AccountInfo(BaseModel):
    user_id: UUID
    email: str
    status: AccountStatus
    status_message: str
    member_since: datetime


class SubscriptionInfo(BaseModel):
    plan_name: str
    status: str
    policy: str
    period_start: datetime | None = None
    period_end: datetime | None = None


class UsageInfo(BaseModel):
    window_start: datetime
    requests_used: int
    request_limit: int
    requests_remaining: int
    rate_limit_per_minute: int
    successful_requests: int
    failed_requests: int
    average_response_time_ms: float


class AccountStatusResponse(BaseModel):
    """Account, subscription and usage under the applicable quota policy."""

    account: AccountInfo
    subscription: SubscriptionInfo
    usage: UsageInfo


class UserResponse(BaseModel):
    """A user record as administrators see it."""

    id: UUID
    email: str
    username: str
    account_status: AccountStatus
    customer_id: str | None
    current_subscription_id: UUID | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserStatusUpdate(BaseModel):
    """Suspend or reactivate an account."""

    status: AccountStatus

    @field_validator("status")
    @classmethod
    def check_target(cls, value: AccountStatus) -> AccountStatus:
        if value == AccountStatus.PENDING_VERIFICATION:
            raise ValueError("status must be 'active' or 'suspended'")
        return value
