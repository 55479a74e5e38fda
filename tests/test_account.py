"""Tests for the account status route."""

from collections.abc import Awaitable, Callable

import pytest
from httpx import AsyncClient

from tryon_gateway.core.config import get_settings
from tryon_gateway.models.api_key import APIKey
from tryon_gateway.models.subscription import Subscription

settings = get_settings()

STATUS_URL = "/api/v1/account/status"


@pytest.mark.asyncio
class TestAccountStatus:
    """Tests for GET /api/v1/account/status."""

    async def test_free_tier_usage(
        self,
        client: AsyncClient,
        auth_headers: dict[str, str],
        api_key: tuple[str, APIKey],
        seed_usage: Callable[..., Awaitable[None]],
    ) -> None:
        """Free tier callers see their trailing-window usage."""
        await seed_usage(api_key[1], 2)

        response = await client.get(STATUS_URL, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["account"]["email"] == "testuser@example.com"
        assert data["account"]["status"] == "active"
        assert data["subscription"]["plan_name"] == "Free Tier"
        assert data["subscription"]["policy"] == "free_tier"
        assert data["subscription"]["status"] == "inactive"
        assert data["usage"]["requests_used"] == 2
        assert data["usage"]["request_limit"] == settings.free_tier_request_limit
        assert data["usage"]["requests_remaining"] == settings.free_tier_request_limit - 2
        assert data["usage"]["successful_requests"] == 2

    async def test_subscribed_usage(
        self,
        client: AsyncClient,
        auth_headers: dict[str, str],
        api_key: tuple[str, APIKey],
        subscription: Subscription,
        seed_usage: Callable[..., Awaitable[None]],
    ) -> None:
        """Subscribers see their plan and billing period."""
        await seed_usage(api_key[1], 10)

        response = await client.get(STATUS_URL, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["subscription"]["plan_name"] == "Pro"
        assert data["subscription"]["policy"] == "subscribed"
        assert data["subscription"]["status"] == "active"
        assert data["usage"]["requests_used"] == 10
        assert data["usage"]["request_limit"] == 500
        assert data["usage"]["requests_remaining"] == 490
        assert data["usage"]["rate_limit_per_minute"] == 100

    async def test_requires_session_token(self, client: AsyncClient) -> None:
        """Account status needs a session token."""
        response = await client.get(STATUS_URL)

        assert response.status_code == 401
        assert response.json()["success"] is False
