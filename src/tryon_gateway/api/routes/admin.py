"""Administrator routes: provider credential pool, users, plans and subscriptions."""

from typing import Annotated
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tryon_gateway.api.dependencies.auth import require_admin
from tryon_gateway.api.dependencies.database import get_db
from tryon_gateway.billing.schemas import (
    SubscriptionActivate,
    SubscriptionPlanCreate,
    SubscriptionPlanResponse,
    SubscriptionPlanUpdate,
    SubscriptionResponse,
    SubscriptionStatusUpdate,
)
from tryon_gateway.billing.service import BillingService
from tryon_gateway.core.database import SessionFactory, get_session_factory
from tryon_gateway.core.metrics import track_pool_reset
from tryon_gateway.core.security import TokenSubject
from tryon_gateway.gateway.credential_store import CredentialStore, reset_credential_pool
from tryon_gateway.models.user import AccountStatus
from tryon_gateway.schemas.account import UserResponse, UserStatusUpdate
from tryon_gateway.schemas.base import BaseResponse
from tryon_gateway.schemas.credential import (
    CredentialCreate,
    CredentialResponse,
    PoolResetResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

AdminSubject = Annotated[TokenSubject, Depends(require_admin)]
DbSession = Annotated[AsyncSession, Depends(get_db)]


# ============================================================================
# Credential pool
# ============================================================================


@router.get("/credentials", response_model=BaseResponse[list[CredentialResponse]])
async def list_credentials(
    admin: AdminSubject,
    db: DbSession,
) -> BaseResponse[list[CredentialResponse]]:
    """List the pool with keys masked."""
    credentials = await CredentialStore.list_credentials(db)
    return BaseResponse(
        data=[CredentialResponse.from_credential(c) for c in credentials],
        message=f"Retrieved {len(credentials)} credentials",
    )


@router.post(
    "/credentials",
    response_model=BaseResponse[CredentialResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_credential(
    payload: CredentialCreate,
    admin: AdminSubject,
    db: DbSession,
) -> BaseResponse[CredentialResponse]:
    """Add a provider key to the pool."""
    credential = await CredentialStore.add_credential(db, payload.key)
    await db.commit()

    logger.info("admin_credential_added", admin_id=admin.subject_id, credential_id=str(credential.id))

    return BaseResponse(
        data=CredentialResponse.from_credential(credential),
        message="Credential added",
    )


@router.delete("/credentials/{credential_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_credential(
    credential_id: UUID,
    admin: AdminSubject,
    db: DbSession,
) -> None:
    """Remove a provider key from the pool."""
    await CredentialStore.delete_credential(db, credential_id)
    await db.commit()

    logger.info("admin_credential_deleted", admin_id=admin.subject_id, credential_id=str(credential_id))


@router.post("/credentials/reset", response_model=BaseResponse[PoolResetResponse])
async def reset_credentials(
    admin: AdminSubject,
    session_factory: Annotated[SessionFactory, Depends(get_session_factory)],
) -> BaseResponse[PoolResetResponse]:
    """Run the daily pool reset now."""
    reset_count = await reset_credential_pool(session_factory)
    track_pool_reset("success")

    logger.info("admin_pool_reset", admin_id=admin.subject_id, credentials_reset=reset_count)

    return BaseResponse(
        data=PoolResetResponse(credentials_reset=reset_count),
        message="Credential pool reset",
    )


# ============================================================================
# Users
# ============================================================================


@router.get("/users", response_model=BaseResponse[list[UserResponse]])
async def list_users(
    admin: AdminSubject,
    db: DbSession,
    account_status: Annotated[AccountStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> BaseResponse[list[UserResponse]]:
    """List users, newest first."""
    users = await BillingService(db).list_users(status=account_status, limit=limit, offset=offset)
    return BaseResponse(
        data=[UserResponse.model_validate(u) for u in users],
        message=f"Retrieved {len(users)} users",
    )


@router.get("/users/{user_id}", response_model=BaseResponse[UserResponse])
async def get_user(
    user_id: UUID,
    admin: AdminSubject,
    db: DbSession,
) -> BaseResponse[UserResponse]:
    """Get one user."""
    user = await BillingService(db).get_user(user_id)
    return BaseResponse(data=UserResponse.model_validate(user))


@router.patch("/users/{user_id}/status", response_model=BaseResponse[UserResponse])
async def update_user_status(
    user_id: UUID,
    payload: UserStatusUpdate,
    admin: AdminSubject,
    db: DbSession,
) -> BaseResponse[UserResponse]:
    """Suspend or reactivate an account. Suspended users' keys are refused by the gate."""
    user = await BillingService(db).update_user_status(user_id, payload)
    await db.commit()

    logger.info(
        "admin_user_status_changed",
        admin_id=admin.subject_id,
        user_id=str(user_id),
        status=user.account_status.value,
    )

    return BaseResponse(
        data=UserResponse.model_validate(user),
        message=f"Account {user.account_status.value}",
    )


# ============================================================================
# Plans and subscriptions
# ============================================================================


@router.get("/plans", response_model=BaseResponse[list[SubscriptionPlanResponse]])
async def list_plans(
    admin: AdminSubject,
    db: DbSession,
) -> BaseResponse[list[SubscriptionPlanResponse]]:
    """List all plans, public or not."""
    plans = await BillingService(db).list_plans()
    return BaseResponse(
        data=[SubscriptionPlanResponse.model_validate(p) for p in plans],
    )


@router.post(
    "/plans",
    response_model=BaseResponse[SubscriptionPlanResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_plan(
    payload: SubscriptionPlanCreate,
    admin: AdminSubject,
    db: DbSession,
) -> BaseResponse[SubscriptionPlanResponse]:
    """Create a subscription plan."""
    plan = await BillingService(db).create_plan(payload)
    await db.commit()

    return BaseResponse(
        data=SubscriptionPlanResponse.model_validate(plan),
        message="Plan created",
    )


@router.patch("/plans/{plan_id}", response_model=BaseResponse[SubscriptionPlanResponse])
async def update_plan(
    plan_id: UUID,
    payload: SubscriptionPlanUpdate,
    admin: AdminSubject,
    db: DbSession,
) -> BaseResponse[SubscriptionPlanResponse]:
    """Change a plan's name, price, limits or visibility."""
    plan = await BillingService(db).update_plan(plan_id, payload)
    await db.commit()

    logger.info("admin_plan_updated", admin_id=admin.subject_id, plan_id=str(plan_id))

    return BaseResponse(
        data=SubscriptionPlanResponse.model_validate(plan),
        message="Plan updated",
    )


@router.post(
    "/subscriptions",
    response_model=BaseResponse[SubscriptionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def activate_subscription(
    payload: SubscriptionActivate,
    admin: AdminSubject,
    db: DbSession,
) -> BaseResponse[SubscriptionResponse]:
    """Record a subscription and make it the user's current one."""
    subscription = await BillingService(db).activate_subscription(payload)
    await db.commit()

    return BaseResponse(
        data=SubscriptionResponse.model_validate(subscription),
        message="Subscription activated",
    )


@router.patch(
    "/subscriptions/{subscription_id}",
    response_model=BaseResponse[SubscriptionResponse],
)
async def update_subscription(
    subscription_id: UUID,
    payload: SubscriptionStatusUpdate,
    admin: AdminSubject,
    db: DbSession,
) -> BaseResponse[SubscriptionResponse]:
    """Change a subscription's status. Canceling clears the current pointer."""
    subscription = await BillingService(db).update_subscription_status(subscription_id, payload)
    await db.commit()

    return BaseResponse(
        data=SubscriptionResponse.model_validate(subscription),
        message="Subscription updated",
    )
