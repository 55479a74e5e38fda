"""Test configuration and fixtures."""

from __future__ import annotations

import base64
import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import timedelta
from pathlib import Path
from typing import Any
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from tryon_gateway.api.main import app
from tryon_gateway.core.database import SessionFactory, build_engine, build_session_factory, get_session_factory
from tryon_gateway.core.redis import get_redis
from tryon_gateway.core.security import ROLE_ADMIN, create_access_token
from tryon_gateway.gateway.api_key_manager import APIKeyManager
from tryon_gateway.models.api_key import APIKey
from tryon_gateway.models.base import Base, utcnow
from tryon_gateway.models.credential import ProviderCredential
from tryon_gateway.models.subscription import (
    BillingCycle,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
)
from tryon_gateway.models.usage_log import UsageLogEntry
from tryon_gateway.models.user import AccountStatus, User
from tryon_gateway.upstream.gemini import ImageGenerationClient, get_image_client

# Set TEST_DATABASE_URL to run against PostgreSQL; each test otherwise gets
# its own SQLite file.
EXTERNAL_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")

GENERATED_IMAGE = base64.b64encode(b"generated-try-on-image").decode("ascii")
PNG_DATA = base64.b64encode(b"\x89PNG\r\n\x1a\nfake-image-bytes").decode("ascii")


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh database with every table."""
    database_url = EXTERNAL_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'gateway.db'}"
    test_engine = build_engine(database_url)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    if EXTERNAL_DATABASE_URL:
        async with test_engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(engine: AsyncEngine) -> SessionFactory:
    """Session factory bound to the test database."""
    return build_session_factory(engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory: SessionFactory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


class StatefulRedisMock:
    """A stateful Redis mock covering the commands the gateway uses."""

    def __init__(self) -> None:
        self._data: dict[str, str | int] = {}
        self._expiry: dict[str, int] = {}

    async def get(self, key: str) -> str | int | None:
        return self._data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._data[key] = value
        if ex is not None:
            self._expiry[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        count = 0
        for key in keys:
            if key in self._data:
                del self._data[key]
                self._expiry.pop(key, None)
                count += 1
        return count

    async def incr(self, key: str) -> int:
        val = int(self._data.get(key, 0)) + 1
        self._data[key] = val
        return val

    async def expire(self, key: str, seconds: int, nx: bool = False) -> bool:
        if key not in self._data:
            return False
        if nx and key in self._expiry:
            return False
        self._expiry[key] = seconds
        return True

    async def ttl(self, key: str) -> int:
        if key not in self._data:
            return -2
        return self._expiry.get(key, -1)

    def pipeline(self, transaction: bool = True) -> "MockPipeline":
        return MockPipeline(self)

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        pass


class MockPipeline:
    """Queues commands and runs them in order against the mock on ``execute``."""

    def __init__(self, redis: StatefulRedisMock) -> None:
        self._redis = redis
        self._commands: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []

    def __getattr__(self, name: str) -> Callable[..., "MockPipeline"]:
        def queue(*args: Any, **kwargs: Any) -> "MockPipeline":
            self._commands.append((name, args, kwargs))
            return self

        return queue

    async def execute(self) -> list[Any]:
        results = [
            await getattr(self._redis, name)(*args, **kwargs)
            for name, args, kwargs in self._commands
        ]
        self._commands.clear()
        return results


@pytest.fixture
def redis_client() -> StatefulRedisMock:
    """Stateful Redis stand-in for the rate limiter."""
    return StatefulRedisMock()


class FakeUpstream:
    """Scripted upstream image API behind ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.mode = "ok"
        self.requests: list[httpx.Request] = []
        self.generated_image = GENERATED_IMAGE

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if self.mode == "timeout":
            raise httpx.ReadTimeout("upstream timed out", request=request)
        if self.mode == "error":
            return httpx.Response(500, json={"error": {"message": "internal"}})
        if self.mode == "no_image":
            return httpx.Response(
                200,
                json={"candidates": [{"content": {"parts": [{"text": "no image"}]}}]},
            )

        return httpx.Response(
            200,
            json={
                "candidates": [
                    {
                        "content": {
                            "parts": [
                                {"text": "Here is the result"},
                                {"inlineData": {"mimeType": "image/png", "data": GENERATED_IMAGE}},
                            ]
                        }
                    }
                ]
            },
        )


@pytest.fixture
def upstream() -> FakeUpstream:
    """Controllable upstream API."""
    return FakeUpstream()


@pytest_asyncio.fixture(scope="function")
async def image_client(upstream: FakeUpstream) -> AsyncGenerator[ImageGenerationClient, None]:
    """Image client wired to the fake upstream."""
    client = ImageGenerationClient(
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)),
        base_url="https://upstream.test",
        model="test-image-model",
        timeout=5.0,
    )
    yield client
    await client.close()


@pytest_asyncio.fixture(scope="function")
async def client(
    session_factory: SessionFactory,
    redis_client: StatefulRedisMock,
    image_client: ImageGenerationClient,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database, redis and upstream overrides."""

    def override_get_session_factory() -> SessionFactory:
        return session_factory

    async def override_get_redis() -> StatefulRedisMock:
        return redis_client

    async def override_get_image_client() -> ImageGenerationClient:
        return image_client

    app.dependency_overrides[get_session_factory] = override_get_session_factory
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_image_client] = override_get_image_client

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_user(db_session: AsyncSession) -> User:
    """Create an active test user without a subscription."""
    user = User(
        id=uuid4(),
        email="testuser@example.com",
        username="testuser",
        account_status=AccountStatus.ACTIVE,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture(scope="function")
async def other_user(db_session: AsyncSession) -> User:
    """A second active user."""
    user = User(
        id=uuid4(),
        email="other@example.com",
        username="otheruser",
        account_status=AccountStatus.ACTIVE,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture(scope="function")
async def pro_plan(db_session: AsyncSession) -> SubscriptionPlan:
    """Create a plan with 500 requests per period."""
    plan = SubscriptionPlan(
        name="Pro",
        plan_provider_id="price_pro_monthly",
        price_cents=2900,
        billing_cycle=BillingCycle.MONTHLY,
        request_limit_monthly=500,
        rate_limit_per_minute=100,
        features={"priority_support": True},
    )
    db_session.add(plan)
    await db_session.commit()
    return plan


@pytest_asyncio.fixture(scope="function")
async def subscription(
    db_session: AsyncSession,
    test_user: User,
    pro_plan: SubscriptionPlan,
) -> Subscription:
    """Give ``test_user`` an active Pro subscription that started yesterday."""
    now = utcnow()
    subscription = Subscription(
        user_id=test_user.id,
        plan_id=pro_plan.id,
        provider_subscription_id="sub_test_123",
        status=SubscriptionStatus.ACTIVE,
        current_period_start=now - timedelta(days=1),
        current_period_end=now + timedelta(days=29),
    )
    db_session.add(subscription)
    await db_session.flush()

    test_user.current_subscription_id = subscription.id
    await db_session.commit()
    return subscription


@pytest_asyncio.fixture(scope="function")
async def api_key(db_session: AsyncSession, test_user: User) -> tuple[str, APIKey]:
    """Create a product API key for ``test_user``. Returns (plaintext, record)."""
    plaintext, record = await APIKeyManager.create_api_key(db_session, test_user.id, "Test Key")
    await db_session.commit()
    return plaintext, record


@pytest_asyncio.fixture(scope="function")
async def credentials(db_session: AsyncSession) -> list[ProviderCredential]:
    """Seed the pool with three provider keys."""
    pool = [ProviderCredential(key=f"provider-key-{i:04d}-secret") for i in range(3)]
    db_session.add_all(pool)
    await db_session.commit()
    return pool


@pytest.fixture
def seed_usage(
    session_factory: SessionFactory,
) -> Callable[..., Awaitable[None]]:
    """Write ``count`` ledger entries for a key, five minutes in the past by default."""

    async def _seed(api_key: APIKey, count: int, age: timedelta = timedelta(minutes=5)) -> None:
        timestamp = utcnow() - age
        async with session_factory() as session:
            session.add_all(
                UsageLogEntry(
                    request_timestamp=timestamp,
                    user_id=api_key.user_id,
                    api_key_id=api_key.id,
                    http_method="POST",
                    endpoint="/v1/try-on",
                    http_status_code=200,
                    response_time_ms=1200,
                )
                for _ in range(count)
            )
            await session.commit()

    return _seed


@pytest.fixture
def usage_entries(
    session_factory: SessionFactory,
) -> Callable[..., Awaitable[list[UsageLogEntry]]]:
    """Read every ledger entry for a user, oldest first."""

    async def _entries(user_id: Any) -> list[UsageLogEntry]:
        async with session_factory() as session:
            result = await session.execute(
                select(UsageLogEntry)
                .where(UsageLogEntry.user_id == user_id)
                .order_by(UsageLogEntry.id)
            )
            return list(result.scalars().all())

    return _entries


@pytest.fixture
def count_usage(
    session_factory: SessionFactory,
) -> Callable[..., Awaitable[int]]:
    """Count every ledger entry in the database."""

    async def _count() -> int:
        async with session_factory() as session:
            result = await session.execute(select(func.count(UsageLogEntry.id)))
            return int(result.scalar_one())

    return _count


def _user_headers(user: User) -> dict[str, str]:
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for() -> Callable[[User], dict[str, str]]:
    """Build session token headers for any user."""
    return _user_headers


@pytest.fixture
def auth_headers(test_user: User) -> dict[str, str]:
    """Session token headers for ``test_user``."""
    return _user_headers(test_user)


@pytest.fixture
def admin_headers() -> dict[str, str]:
    """Session token headers carrying the admin role."""
    token = create_access_token({"sub": str(uuid4()), "role": ROLE_ADMIN})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def try_on_payload() -> Callable[..., dict[str, Any]]:
    """Build a valid try-on body with inline images."""

    def _payload(**overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "user_image": {"data": PNG_DATA, "mime_type": "image/png"},
            "product_image": {"data": PNG_DATA, "mime_type": "image/png"},
        }
        payload.update(overrides)
        return payload

    return _payload
