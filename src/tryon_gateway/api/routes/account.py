"""Account status route for key owners."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tryon_gateway.api.dependencies.auth import get_current_user
from tryon_gateway.api.dependencies.database import get_db
from tryon_gateway.gateway.quota_policy import SubscribedPolicy, resolve_quota_policy
from tryon_gateway.gateway.usage_ledger import UsageLedger
from tryon_gateway.models.user import AccountStatus, User
from tryon_gateway.schemas.account import (
    AccountInfo,
    AccountStatusResponse,
    SubscriptionInfo,
    UsageInfo,
)
from tryon_gateway.schemas.base import BaseResponse

router = APIRouter(prefix="/account", tags=["account"])

STATUS_MESSAGES = {
    AccountStatus.ACTIVE: "Active",
    AccountStatus.PENDING_VERIFICATION: "Pending Email Verification",
    AccountStatus.SUSPENDED: "Account Suspended",
}


@router.get("/status", response_model=BaseResponse[AccountStatusResponse])
async def account_status(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BaseResponse[AccountStatusResponse]:
    """
    Account, subscription and usage for the logged-in user.

    Usage is counted the same way the gate counts it, under whichever
    policy currently applies.
    """
    policy = resolve_quota_policy(current_user)
    summary = await UsageLedger.summarize(db, current_user.id, policy.window_start)
    subscription = current_user.current_subscription

    return BaseResponse(
        data=AccountStatusResponse(
            account=AccountInfo(
                user_id=current_user.id,
                email=current_user.email,
                status=current_user.account_status,
                status_message=STATUS_MESSAGES[current_user.account_status],
                member_since=current_user.created_at,
            ),
            subscription=SubscriptionInfo(
                plan_name=policy.plan_name,
                status=subscription.status.value if subscription else "inactive",
                policy=policy.kind,
                period_start=subscription.current_period_start if subscription else None,
                period_end=subscription.current_period_end if subscription else None,
            ),
            usage=UsageInfo(
                window_start=policy.window_start,
                requests_used=summary.total_requests,
                request_limit=policy.limit,
                requests_remaining=max(0, policy.limit - summary.total_requests),
                rate_limit_per_minute=policy.rate_limit_per_minute,
                successful_requests=summary.successful_requests,
                failed_requests=summary.failed_requests,
                average_response_time_ms=summary.average_response_time_ms,
            ),
        ),
        message=(
            "Subscribed plan quota"
            if isinstance(policy, SubscribedPolicy)
            else "Free tier quota"
        ),
    )
