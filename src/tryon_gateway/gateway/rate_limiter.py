"""Per-minute rate limiting for gated requests using Redis."""

from dataclasses import dataclass
from uuid import UUID

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from tryon_gateway.core.config import get_settings
from tryon_gateway.core.redis import rate_limit_key

logger = structlog.get_logger(__name__)

settings = get_settings()


@dataclass
class RateLimitStatus:
    """Rate limit status information."""

    limit: int
    used: int
    remaining: int
    reset_in_seconds: int


class PlanRateLimiter:
    """
    Fixed-window per-minute limiter keyed by user.

    The increment and the window expiry are sent as one MULTI/EXEC block.
    The expiry is set only when the counter has none, so a counter that
    somehow lost its TTL gets one on the next request.

    When Redis is unreachable the limiter admits the request and logs a
    warning; the monthly quota still applies.
    """

    def __init__(self, redis_client: Redis, window_seconds: int | None = None) -> None:
        """
        Initialize the rate limiter.

        Args:
            redis_client: Redis client instance
            window_seconds: Window length, defaults to the configured value
        """
        self.redis = redis_client
        self.window_seconds = window_seconds or settings.rate_limit_window_seconds

    async def check_rate_limit(self, user_id: UUID, limit: int) -> tuple[bool, RateLimitStatus]:
        """
        Count this request against the user's current window.

        Returns:
            Tuple of (allowed, status)
        """
        key = rate_limit_key(user_id)

        pipeline = self.redis.pipeline()
        pipeline.incr(key)
        pipeline.expire(key, self.window_seconds, nx=True)
        pipeline.ttl(key)

        try:
            count, _, ttl = await pipeline.execute()
        except RedisError as e:
            logger.warning(
                "rate_limiter_unavailable",
                user_id=str(user_id),
                error=str(e),
            )
            return True, RateLimitStatus(
                limit=limit,
                used=0,
                remaining=limit,
                reset_in_seconds=self.window_seconds,
            )

        used = int(count)
        reset_in = int(ttl) if int(ttl) > 0 else self.window_seconds

        if used > limit:
            logger.warning(
                "rate_limit_exceeded",
                user_id=str(user_id),
                used=used,
                limit=limit,
            )
            return False, RateLimitStatus(
                limit=limit,
                used=used,
                remaining=0,
                reset_in_seconds=reset_in,
            )

        return True, RateLimitStatus(
            limit=limit,
            used=used,
            remaining=limit - used,
            reset_in_seconds=reset_in,
        )
