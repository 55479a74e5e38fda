"""Quota gate: admission pipeline for requests carrying a product API key.

Each request moves through these steps in order and stops at the first
failure:

1. The bearer token is read from the ``Authorization`` header.
2. The key is resolved together with its owner, the owner's current
   subscription and plan. Unknown, revoked and suspended keys are
   rejected here.
3. From this point on the request will be written to the usage ledger
   once its response has been sent, whatever the outcome.
4. Usage in the applicable quota window is compared to the limit.
5. The per-minute rate limit is applied.

A provider credential is not claimed here. The handler claims one through
``AdmittedRequest.allocate_credential`` once the request body and its
inputs have been checked, so requests that never reach the upstream API do
not use up pool capacity.

Nothing here depends on the web framework; the FastAPI dependency in
``api.dependencies.api_key_auth`` feeds it a header value and a
``PostResponseTasks`` queue.
"""

from dataclasses import dataclass
from datetime import datetime

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from tryon_gateway.core.database import SessionFactory
from tryon_gateway.core.exceptions import (
    AccountSuspendedError,
    InvalidCredentialError,
    MissingCredentialError,
    PoolExhaustedError,
    QuotaExceededError,
    RateLimitError,
    RevokedCredentialError,
)
from tryon_gateway.core.logging import LoggerMixin
from tryon_gateway.core.metrics import track_gate_decision
from tryon_gateway.gateway.api_key_manager import APIKeyManager
from tryon_gateway.gateway.key_rotator import AllocatedCredential, KeyRotator
from tryon_gateway.gateway.quota_policy import (
    QuotaDecision,
    QuotaPolicy,
    evaluate_quota,
    resolve_quota_policy,
)
from tryon_gateway.gateway.rate_limiter import PlanRateLimiter
from tryon_gateway.gateway.request_logger import touch_api_key_task, usage_log_task
from tryon_gateway.gateway.response_hooks import PostResponseTasks
from tryon_gateway.gateway.usage_ledger import UsageLedger
from tryon_gateway.models.api_key import APIKey
from tryon_gateway.models.subscription import Subscription
from tryon_gateway.models.user import User

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class AdmittedRequest:
    """Everything downstream handlers need about an admitted caller."""

    user: User
    api_key: APIKey
    subscription: Subscription | None
    quota: QuotaDecision
    rotator: KeyRotator

    @property
    def policy(self) -> QuotaPolicy:
        return self.quota.policy

    async def allocate_credential(self) -> AllocatedCredential:
        """
        Claim a provider credential for the upstream call.

        Raises:
            PoolExhaustedError: If every credential is at the ceiling
        """
        try:
            return await self.rotator.allocate_credential()
        except PoolExhaustedError:
            track_gate_decision("pool_exhausted", self.policy.kind)
            raise


def parse_bearer_token(authorization: str | None) -> str:
    """
    Extract the token from an ``Authorization: Bearer <token>`` header.

    Raises:
        MissingCredentialError: If the header is absent, uses another scheme
            or carries an empty token
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise MissingCredentialError()

    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise MissingCredentialError("API key is missing.")
    return token


class QuotaGate(LoggerMixin):
    """Authenticates a product API key and admits or rejects the request."""

    def __init__(
        self,
        db: AsyncSession,
        redis: Redis,
        *,
        rotator: KeyRotator | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        """
        Initialize the gate.

        Args:
            db: Session used for key lookup and quota counting
            redis: Redis client for the per-minute limiter
            rotator: Credential allocator, built from ``session_factory``
                when omitted
            session_factory: Factory for the transactions that outlive the
                request session (allocation and post-response writes)
        """
        self.db = db
        self.rate_limiter = PlanRateLimiter(redis)
        self.rotator = rotator or KeyRotator(session_factory)
        self.session_factory = session_factory

    async def resolve_key(self, token: str) -> APIKey:
        """
        Look up a token and check that it may be used.

        Raises:
            InvalidCredentialError: If no key has this hash
            RevokedCredentialError: If the key was revoked
            AccountSuspendedError: If the key's owner is suspended
        """
        api_key = await APIKeyManager.find_by_token(self.db, token)

        if api_key is None:
            track_gate_decision("invalid_credential", "unknown")
            self.logger.info("gate_rejected_invalid_key")
            raise InvalidCredentialError()

        if api_key.is_revoked:
            track_gate_decision("revoked_credential", "unknown")
            self.logger.info(
                "gate_rejected_revoked_key",
                api_key_id=str(api_key.id),
                user_id=str(api_key.user_id),
            )
            raise RevokedCredentialError()

        if api_key.user.is_suspended:
            track_gate_decision("account_suspended", "unknown")
            self.logger.info(
                "gate_rejected_suspended_account",
                api_key_id=str(api_key.id),
                user_id=str(api_key.user_id),
            )
            raise AccountSuspendedError()

        return api_key

    async def check_quota(self, user: User, now: datetime | None = None) -> QuotaDecision:
        """
        Count usage in the user's window and compare it to the limit.

        Raises:
            QuotaExceededError: If usage has reached the limit
        """
        policy = resolve_quota_policy(user, now)
        used = await UsageLedger.count_since(self.db, user.id, policy.window_start)
        decision = evaluate_quota(policy, used)

        if not decision.allowed:
            track_gate_decision("quota_exceeded", policy.kind)
            self.logger.info(
                "quota_exceeded",
                user_id=str(user.id),
                policy=policy.kind,
                plan=policy.plan_name,
                limit=policy.limit,
                used=used,
            )
            raise QuotaExceededError(limit=policy.limit, used=used, plan=policy.plan_name)

        return decision

    async def check_rate(self, user: User, policy: QuotaPolicy) -> None:
        """
        Apply the per-minute limit of the user's policy.

        Raises:
            RateLimitError: If the user has used up the current minute
        """
        allowed, status = await self.rate_limiter.check_rate_limit(
            user.id,
            policy.rate_limit_per_minute,
        )
        if not allowed:
            track_gate_decision("rate_limited", policy.kind)
            raise RateLimitError(
                retry_after=status.reset_in_seconds,
                limit=status.limit,
                window_seconds=self.rate_limiter.window_seconds,
            )

    async def admit(
        self,
        authorization: str | None,
        tasks: PostResponseTasks,
        *,
        http_method: str,
        endpoint: str,
    ) -> AdmittedRequest:
        """
        Run the full admission pipeline for one request.

        Raises:
            MissingCredentialError, InvalidCredentialError,
            RevokedCredentialError, AccountSuspendedError,
            QuotaExceededError, RateLimitError
        """
        token = parse_bearer_token(authorization)
        api_key = await self.resolve_key(token)
        user = api_key.user

        tasks.add(
            usage_log_task(
                user_id=user.id,
                api_key_id=api_key.id,
                http_method=http_method,
                endpoint=endpoint,
                session_factory=self.session_factory,
            ),
            name="usage_log",
        )

        decision = await self.check_quota(user)
        await self.check_rate(user, decision.policy)

        tasks.add(touch_api_key_task(api_key.id, self.session_factory), name="touch_api_key")

        track_gate_decision("admitted", decision.policy.kind)
        self.logger.debug(
            "gate_admitted",
            user_id=str(user.id),
            api_key_id=str(api_key.id),
            policy=decision.policy.kind,
            used=decision.used,
            limit=decision.policy.limit,
        )

        return AdmittedRequest(
            user=user,
            api_key=api_key,
            subscription=user.current_subscription,
            quota=decision,
            rotator=self.rotator,
        )
