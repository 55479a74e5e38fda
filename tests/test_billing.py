"""Tests for plans and subscription state."""

from datetime import timedelta
from uuid import uuid4

import pytest
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from tryon_gateway.billing.schemas import (
    SubscriptionActivate,
    SubscriptionPlanCreate,
    SubscriptionPlanUpdate,
    SubscriptionStatusUpdate,
)
from tryon_gateway.billing.service import BillingService
from tryon_gateway.core.exceptions import ConflictError, PlanNotFoundError, UserNotFoundError
from tryon_gateway.models.base import utcnow
from tryon_gateway.models.subscription import (
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
)
from tryon_gateway.models.user import AccountStatus, User
from tryon_gateway.schemas.account import UserStatusUpdate


def _plan_data(**overrides: object) -> SubscriptionPlanCreate:
    data: dict[str, object] = {
        "name": "Starter",
        "plan_provider_id": "price_starter",
        "price_cents": 900,
        "request_limit_monthly": 100,
        "rate_limit_per_minute": 20,
    }
    data.update(overrides)
    return SubscriptionPlanCreate(**data)  # type: ignore[arg-type]


def _activation(user: User, plan: SubscriptionPlan, **overrides: object) -> SubscriptionActivate:
    now = utcnow()
    data: dict[str, object] = {
        "user_id": user.id,
        "plan_id": plan.id,
        "current_period_start": now,
        "current_period_end": now + timedelta(days=30),
    }
    data.update(overrides)
    return SubscriptionActivate(**data)  # type: ignore[arg-type]


@pytest.mark.asyncio
class TestPlans:
    """Tests for plan records."""

    async def test_create_plan(self, db_session: AsyncSession) -> None:
        """Plans are created with their limits."""
        plan = await BillingService(db_session).create_plan(_plan_data())

        assert plan.id is not None
        assert plan.request_limit_monthly == 100
        assert plan.rate_limit_per_minute == 20
        assert plan.is_public is True

    async def test_duplicate_provider_id(self, db_session: AsyncSession) -> None:
        """Provider plan ids are unique."""
        service = BillingService(db_session)
        await service.create_plan(_plan_data())

        with pytest.raises(ConflictError):
            await service.create_plan(_plan_data(name="Starter again"))

    async def test_list_plans_by_price(self, db_session: AsyncSession) -> None:
        """Plans are listed cheapest first, optionally public only."""
        service = BillingService(db_session)
        await service.create_plan(_plan_data(plan_provider_id="price_b", price_cents=2900))
        await service.create_plan(_plan_data(plan_provider_id="price_a", price_cents=900))
        await service.create_plan(
            _plan_data(plan_provider_id="price_hidden", price_cents=0, is_public=False)
        )

        assert [p.price_cents for p in await service.list_plans()] == [0, 900, 2900]
        assert [p.price_cents for p in await service.list_plans(public_only=True)] == [900, 2900]

    async def test_get_missing_plan(self, db_session: AsyncSession) -> None:
        """Unknown plans are not found."""
        with pytest.raises(PlanNotFoundError):
            await BillingService(db_session).get_plan(uuid4())

    async def test_update_plan_changes_only_set_fields(
        self,
        db_session: AsyncSession,
        pro_plan: SubscriptionPlan,
    ) -> None:
        """Fields left out of the update keep their values."""
        plan = await BillingService(db_session).update_plan(
            pro_plan.id,
            SubscriptionPlanUpdate(rate_limit_per_minute=250),
        )

        assert plan.rate_limit_per_minute == 250
        assert plan.request_limit_monthly == 500
        assert plan.name == "Pro"

    async def test_update_missing_plan(self, db_session: AsyncSession) -> None:
        """Updating an unknown plan is not found."""
        with pytest.raises(PlanNotFoundError):
            await BillingService(db_session).update_plan(uuid4(), SubscriptionPlanUpdate(name="x"))


@pytest.mark.asyncio
class TestSubscriptions:
    """Tests for subscription writes and the current pointer."""

    async def test_activation_sets_current_subscription(
        self,
        db_session: AsyncSession,
        test_user: User,
        pro_plan: SubscriptionPlan,
    ) -> None:
        """Activating makes the subscription the user's current one."""
        subscription = await BillingService(db_session).activate_subscription(
            _activation(test_user, pro_plan, provider_subscription_id="sub_abc")
        )

        await db_session.refresh(test_user)
        assert test_user.current_subscription_id == subscription.id
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.provider_subscription_id == "sub_abc"

    async def test_reactivation_keeps_history(
        self,
        db_session: AsyncSession,
        test_user: User,
        pro_plan: SubscriptionPlan,
        subscription: Subscription,
    ) -> None:
        """A new subscription replaces the pointer and keeps the old row."""
        replacement = await BillingService(db_session).activate_subscription(
            _activation(test_user, pro_plan)
        )

        await db_session.refresh(test_user)
        assert test_user.current_subscription_id == replacement.id
        assert await db_session.get(Subscription, subscription.id) is not None

    async def test_cancel_clears_current_pointer(
        self,
        db_session: AsyncSession,
        test_user: User,
        subscription: Subscription,
    ) -> None:
        """Canceling the current subscription returns the user to the free tier."""
        canceled = await BillingService(db_session).cancel_subscription(subscription.id)

        await db_session.refresh(test_user)
        assert canceled.status == SubscriptionStatus.CANCELED
        assert test_user.current_subscription_id is None

    async def test_past_due_keeps_pointer(
        self,
        db_session: AsyncSession,
        test_user: User,
        subscription: Subscription,
    ) -> None:
        """Non-cancel status changes leave the pointer alone."""
        updated = await BillingService(db_session).update_subscription_status(
            subscription.id,
            SubscriptionStatusUpdate(status=SubscriptionStatus.PAST_DUE),
        )

        await db_session.refresh(test_user)
        assert updated.status == SubscriptionStatus.PAST_DUE
        assert test_user.current_subscription_id == subscription.id

    async def test_activation_for_unknown_user(
        self,
        db_session: AsyncSession,
        pro_plan: SubscriptionPlan,
    ) -> None:
        """Subscriptions need an existing user."""
        ghost = User(id=uuid4(), email="ghost@example.com", username="ghost")

        with pytest.raises(UserNotFoundError):
            await BillingService(db_session).activate_subscription(_activation(ghost, pro_plan))


@pytest.mark.asyncio
class TestAccountStatus:
    """Tests for user lookup and suspension."""

    async def test_suspend_and_reactivate(
        self,
        db_session: AsyncSession,
        test_user: User,
    ) -> None:
        """Status moves between active and suspended."""
        service = BillingService(db_session)

        suspended = await service.update_user_status(
            test_user.id, UserStatusUpdate(status=AccountStatus.SUSPENDED)
        )
        assert suspended.is_suspended is True

        reactivated = await service.update_user_status(
            test_user.id, UserStatusUpdate(status=AccountStatus.ACTIVE)
        )
        assert reactivated.is_suspended is False

    async def test_list_users_by_status(
        self,
        db_session: AsyncSession,
        test_user: User,
        other_user: User,
    ) -> None:
        """Listing can be narrowed to one status."""
        service = BillingService(db_session)
        await service.update_user_status(
            other_user.id, UserStatusUpdate(status=AccountStatus.SUSPENDED)
        )

        assert len(await service.list_users()) == 2
        assert [u.id for u in await service.list_users(status=AccountStatus.SUSPENDED)] == [
            other_user.id
        ]
        assert [u.id for u in await service.list_users(status=AccountStatus.ACTIVE)] == [test_user.id]

    async def test_unknown_user(self, db_session: AsyncSession) -> None:
        """Unknown users are not found."""
        with pytest.raises(UserNotFoundError):
            await BillingService(db_session).update_user_status(
                uuid4(), UserStatusUpdate(status=AccountStatus.SUSPENDED)
            )


class TestBillingSchemas:
    """Tests for request validation on billing writes."""

    def test_period_must_end_after_start(self) -> None:
        """An empty or inverted period is rejected."""
        now = utcnow()
        with pytest.raises(ValidationError):
            SubscriptionActivate(
                user_id=uuid4(),
                plan_id=uuid4(),
                current_period_start=now,
                current_period_end=now,
            )

    def test_status_update_rejects_pending_verification(self) -> None:
        """Administrators cannot send an account back to verification."""
        with pytest.raises(ValidationError):
            UserStatusUpdate(status=AccountStatus.PENDING_VERIFICATION)
