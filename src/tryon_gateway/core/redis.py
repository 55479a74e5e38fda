"""Redis client for the per-minute rate limiter.

Redis only holds short-lived window counters, one key per user. The rate
limiter fails open, so the client uses short socket timeouts: a slow Redis
costs a request at most ``redis_socket_timeout_seconds`` before it is
admitted without a rate check.
"""

from uuid import UUID

import redis.asyncio as redis
import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from tryon_gateway.core.config import get_settings

logger = structlog.get_logger(__name__)

settings = get_settings()

RATE_LIMIT_KEY_PREFIX = "rate_limit:minute"

_redis_client: Redis | None = None


def rate_limit_key(user_id: UUID) -> str:
    """Counter key for a user's current rate limit window."""
    return f"{RATE_LIMIT_KEY_PREFIX}:{user_id}"


async def get_redis() -> Redis:
    """Shared client for rate limit counters, created on first use."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(  # type: ignore[no-untyped-call]
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=settings.redis_socket_timeout_seconds,
            socket_connect_timeout=settings.redis_socket_timeout_seconds,
        )
    return _redis_client


async def close_redis() -> None:
    """Close the shared client on shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


async def check_redis_connection() -> bool:
    """Ping Redis for the readiness check.

    An unreachable Redis only degrades readiness: gated requests are still
    served, without per-minute limits.
    """
    try:
        client = await get_redis()
        await client.ping()
        return True
    except (RedisError, OSError) as e:
        logger.warning("redis_unreachable", error=str(e))
        return False
