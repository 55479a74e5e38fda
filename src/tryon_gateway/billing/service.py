"""Billing service for plans, subscription state and account status."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tryon_gateway.billing.schemas import (
    SubscriptionActivate,
    SubscriptionPlanCreate,
    SubscriptionPlanUpdate,
    SubscriptionStatusUpdate,
)
from tryon_gateway.core.exceptions import (
    ConflictError,
    PlanNotFoundError,
    SubscriptionNotFoundError,
    UserNotFoundError,
)
from tryon_gateway.core.logging import LoggerMixin
from tryon_gateway.models.subscription import (
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
)
from tryon_gateway.models.user import AccountStatus, User
from tryon_gateway.schemas.account import UserStatusUpdate


class BillingService(LoggerMixin):
    """Service for plan records, subscription writes and account status.

    Billing-provider webhooks and admin actions both end up here; the
    gateway itself only reads the resulting state.
    """

    def __init__(self, db: AsyncSession) -> None:
        """Initialize billing service.

        Args:
            db: Database session
        """
        self.db = db

    async def create_plan(self, plan_data: SubscriptionPlanCreate) -> SubscriptionPlan:
        """Create a new subscription plan.

        Raises:
            ConflictError: If a plan with the same provider id exists
        """
        existing = await self.db.execute(
            select(SubscriptionPlan.id).where(
                SubscriptionPlan.plan_provider_id == plan_data.plan_provider_id,
            ),
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(
                "A plan with this provider id already exists",
                details={"plan_provider_id": plan_data.plan_provider_id},
            )

        plan = SubscriptionPlan(**plan_data.model_dump())
        self.db.add(plan)
        await self.db.flush()
        await self.db.refresh(plan)

        self.logger.info(
            "subscription_plan_created",
            plan_id=str(plan.id),
            plan_provider_id=plan.plan_provider_id,
            request_limit_monthly=plan.request_limit_monthly,
        )

        return plan

    async def get_plan(self, plan_id: UUID) -> SubscriptionPlan:
        """Get a subscription plan by ID.

        Raises:
            PlanNotFoundError: If plan not found
        """
        plan = await self.db.get(SubscriptionPlan, plan_id)
        if plan is None:
            raise PlanNotFoundError(resource_type="Plan", resource_id=str(plan_id))
        return plan

    async def list_plans(self, public_only: bool = False) -> list[SubscriptionPlan]:
        """List subscription plans ordered by price."""
        query = select(SubscriptionPlan)
        if public_only:
            query = query.where(SubscriptionPlan.is_public.is_(True))

        result = await self.db.execute(query.order_by(SubscriptionPlan.price_cents))
        return list(result.scalars().all())

    async def update_plan(self, plan_id: UUID, update: SubscriptionPlanUpdate) -> SubscriptionPlan:
        """Apply the fields set on ``update`` to a plan.

        Limit changes take effect on the next gated request of every user
        on the plan.

        Raises:
            PlanNotFoundError: If plan not found
        """
        plan = await self.get_plan(plan_id)

        changes = update.model_dump(exclude_unset=True)
        for field, value in changes.items():
            setattr(plan, field, value)

        await self.db.flush()
        await self.db.refresh(plan)

        self.logger.info(
            "subscription_plan_updated",
            plan_id=str(plan.id),
            fields=sorted(changes),
        )

        return plan

    async def get_subscription(self, subscription_id: UUID) -> Subscription:
        """Get a subscription by ID.

        Raises:
            SubscriptionNotFoundError: If subscription not found
        """
        subscription = await self.db.get(Subscription, subscription_id)
        if subscription is None:
            raise SubscriptionNotFoundError(
                resource_type="Subscription",
                resource_id=str(subscription_id),
            )
        return subscription

    async def activate_subscription(self, data: SubscriptionActivate) -> Subscription:
        """Record a new subscription and make it the user's current one.

        The previous current subscription, if any, stays as history.

        Raises:
            UserNotFoundError: If the user does not exist
            PlanNotFoundError: If the plan does not exist
        """
        user = await self.get_user(data.user_id)
        plan = await self.get_plan(data.plan_id)

        subscription = Subscription(
            user_id=user.id,
            plan_id=plan.id,
            provider_subscription_id=data.provider_subscription_id,
            status=data.status,
            current_period_start=data.current_period_start,
            current_period_end=data.current_period_end,
        )
        self.db.add(subscription)
        await self.db.flush()

        previous_id = user.current_subscription_id
        user.current_subscription_id = subscription.id
        await self.db.flush()
        await self.db.refresh(subscription)

        self.logger.info(
            "subscription_activated",
            user_id=str(user.id),
            subscription_id=str(subscription.id),
            previous_subscription_id=str(previous_id) if previous_id else None,
            plan_id=str(plan.id),
            status=subscription.status.value,
        )

        return subscription

    async def update_subscription_status(
        self,
        subscription_id: UUID,
        update: SubscriptionStatusUpdate,
    ) -> Subscription:
        """Apply a status change, clearing the current pointer on cancellation.

        Raises:
            SubscriptionNotFoundError: If subscription not found
        """
        subscription = await self.get_subscription(subscription_id)
        previous_status = subscription.status

        subscription.status = update.status
        if update.current_period_start is not None:
            subscription.current_period_start = update.current_period_start
        if update.current_period_end is not None:
            subscription.current_period_end = update.current_period_end
        if update.cancel_at_period_end is not None:
            subscription.cancel_at_period_end = update.cancel_at_period_end

        if update.status == SubscriptionStatus.CANCELED:
            await self._clear_current_pointer(subscription)

        await self.db.flush()
        await self.db.refresh(subscription)

        self.logger.info(
            "subscription_status_updated",
            subscription_id=str(subscription.id),
            user_id=str(subscription.user_id),
            previous_status=previous_status.value,
            status=subscription.status.value,
        )

        return subscription

    async def cancel_subscription(self, subscription_id: UUID) -> Subscription:
        """Cancel a subscription immediately."""
        return await self.update_subscription_status(
            subscription_id,
            SubscriptionStatusUpdate(status=SubscriptionStatus.CANCELED),
        )

    async def _clear_current_pointer(self, subscription: Subscription) -> None:
        user = await self.db.get(User, subscription.user_id)
        if user is not None and user.current_subscription_id == subscription.id:
            user.current_subscription_id = None
            self.logger.info(
                "current_subscription_cleared",
                user_id=str(user.id),
                subscription_id=str(subscription.id),
            )

    async def list_users(
        self,
        status: AccountStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[User]:
        """List users, newest first, optionally filtered by account status."""
        query = select(User)
        if status is not None:
            query = query.where(User.account_status == status)

        result = await self.db.execute(
            query.order_by(User.created_at.desc(), User.id).limit(limit).offset(offset),
        )
        return list(result.scalars().all())

    async def get_user(self, user_id: UUID) -> User:
        """Get a user by ID.

        Raises:
            UserNotFoundError: If user not found
        """
        user = await self.db.get(User, user_id)
        if user is None:
            raise UserNotFoundError(resource_type="User", resource_id=str(user_id))
        return user

    async def update_user_status(self, user_id: UUID, update: UserStatusUpdate) -> User:
        """Suspend or reactivate an account.

        Suspension is read by the gate on every request, so the user's keys
        stop working as soon as this commits.

        Raises:
            UserNotFoundError: If user not found
        """
        user = await self.get_user(user_id)
        previous_status = user.account_status

        user.account_status = update.status
        await self.db.flush()
        await self.db.refresh(user)

        self.logger.info(
            "account_status_updated",
            user_id=str(user.id),
            previous_status=previous_status.value,
            status=user.account_status.value,
        )

        return user
