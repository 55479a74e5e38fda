"""Key rotator: least-recently-used allocation from the provider key pool.

Allocation is a compare-and-swap loop. Each attempt reads the current LRU
candidate, then claims it with one conditional ``UPDATE`` that re-checks
eligibility. If a concurrent allocation took the last slot first, the
update matches no row and the loop picks a fresh candidate. Counts can
therefore never pass the ceiling, and every successful increment is
reflected.

A claim only fails when its candidate stopped being eligible, which means
another allocation filled that credential. Each retry therefore follows a
credential leaving the pool, and the loop ends after at most one pass per
credential: either a claim succeeds or no candidate is left.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tryon_gateway.core.config import get_settings
from tryon_gateway.core.database import SessionFactory, with_transaction
from tryon_gateway.core.exceptions import PoolExhaustedError
from tryon_gateway.core.logging import LoggerMixin
from tryon_gateway.core.metrics import credential_allocation_retries_total, track_allocation
from tryon_gateway.models.base import utcnow
from tryon_gateway.models.credential import ProviderCredential

settings = get_settings()


@dataclass(frozen=True)
class AllocatedCredential:
    """A provider key claimed for one upstream request."""

    id: UUID
    key: str
    request_count: int
    is_rate_limited: bool


class KeyRotator(LoggerMixin):
    """Hands out provider credentials in least-recently-used order."""

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        *,
        ceiling: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.ceiling = ceiling or settings.credential_ceiling

    def _eligible(self) -> tuple:
        return (
            ProviderCredential.is_rate_limited.is_(False),
            ProviderCredential.request_count < self.ceiling,
        )

    async def allocate_credential(self) -> AllocatedCredential:
        """
        Claim the eligible credential with the oldest ``last_used_at``.

        Raises:
            PoolExhaustedError: If no credential is below the ceiling
        """
        return await with_transaction(self._allocate, self._session_factory)

    async def _allocate(self, session: AsyncSession) -> AllocatedCredential:
        attempt = 0
        while True:
            attempt += 1
            candidate = await session.execute(
                select(ProviderCredential.id)
                .where(*self._eligible())
                .order_by(
                    ProviderCredential.last_used_at,
                    ProviderCredential.created_at,
                    ProviderCredential.id,
                )
                .limit(1)
            )
            candidate_id = candidate.scalar_one_or_none()

            if candidate_id is None:
                track_allocation("exhausted")
                self.logger.error(
                    "pool_exhausted",
                    ceiling=self.ceiling,
                    attempts=attempt,
                )
                raise PoolExhaustedError(details={"ceiling": self.ceiling})

            claimed = await session.execute(
                update(ProviderCredential)
                .where(ProviderCredential.id == candidate_id, *self._eligible())
                .values(
                    request_count=ProviderCredential.request_count + 1,
                    is_rate_limited=ProviderCredential.request_count + 1 >= self.ceiling,
                    last_used_at=utcnow(),
                )
                .returning(
                    ProviderCredential.id,
                    ProviderCredential.key,
                    ProviderCredential.request_count,
                    ProviderCredential.is_rate_limited,
                )
                .execution_options(synchronize_session=False)
            )
            row = claimed.one_or_none()

            if row is not None:
                track_allocation("allocated")
                self.logger.debug(
                    "credential_allocated",
                    credential_id=str(row.id),
                    request_count=row.request_count,
                    is_rate_limited=row.is_rate_limited,
                    attempt=attempt,
                )
                return AllocatedCredential(
                    id=row.id,
                    key=row.key,
                    request_count=row.request_count,
                    is_rate_limited=bool(row.is_rate_limited),
                )

            credential_allocation_retries_total.inc()
            self.logger.debug(
                "credential_allocation_conflict",
                credential_id=str(candidate_id),
                attempt=attempt,
            )
