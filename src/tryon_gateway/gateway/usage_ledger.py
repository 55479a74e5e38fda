"""Usage ledger: append-only record of gated calls, used for quota counts."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tryon_gateway.core.database import SessionFactory, with_transaction
from tryon_gateway.models.base import utcnow
from tryon_gateway.models.usage_log import UsageLogEntry

logger = structlog.get_logger(__name__)

CREDITS_PER_CALL = 1


@dataclass(frozen=True)
class UsageRecord:
    """One completed request, ready to be written to the ledger."""

    user_id: UUID
    api_key_id: UUID
    http_method: str
    endpoint: str
    http_status_code: int
    response_time_ms: int
    request_timestamp: datetime | None = None
    credits_consumed: int = CREDITS_PER_CALL


@dataclass
class UsageSummary:
    """Aggregated ledger figures for one user over one window."""

    window_start: datetime
    total_requests: int
    successful_requests: int
    failed_requests: int
    average_response_time_ms: float


class UsageLedger:
    """Reads and appends against ``api_usage_logs``. Rows are never updated."""

    @staticmethod
    async def append(db: AsyncSession, record: UsageRecord) -> UsageLogEntry:
        """Add one entry to the ledger within the caller's transaction."""
        entry = UsageLogEntry(
            request_timestamp=record.request_timestamp or utcnow(),
            user_id=record.user_id,
            api_key_id=record.api_key_id,
            http_method=record.http_method,
            endpoint=record.endpoint,
            http_status_code=record.http_status_code,
            response_time_ms=record.response_time_ms,
            credits_consumed=record.credits_consumed,
        )
        db.add(entry)
        await db.flush()
        return entry

    @staticmethod
    async def count_since(db: AsyncSession, user_id: UUID, since: datetime) -> int:
        """Number of entries for ``user_id`` at or after ``since``."""
        result = await db.execute(
            select(func.count(UsageLogEntry.id)).where(
                UsageLogEntry.user_id == user_id,
                UsageLogEntry.request_timestamp >= since,
            )
        )
        return int(result.scalar_one())

    @staticmethod
    async def summarize(db: AsyncSession, user_id: UUID, since: datetime) -> UsageSummary:
        """Totals, success/failure split and mean latency since ``since``."""
        result = await db.execute(
            select(
                func.count(UsageLogEntry.id),
                func.coalesce(
                    func.sum(case((UsageLogEntry.http_status_code < 400, 1), else_=0)),
                    0,
                ),
                func.avg(UsageLogEntry.response_time_ms),
            ).where(
                UsageLogEntry.user_id == user_id,
                UsageLogEntry.request_timestamp >= since,
            )
        )
        total, successful, avg_ms = result.one()
        total = int(total)
        successful = int(successful)
        return UsageSummary(
            window_start=since,
            total_requests=total,
            successful_requests=successful,
            failed_requests=total - successful,
            average_response_time_ms=round(float(avg_ms or 0.0), 2),
        )


async def record_usage(
    record: UsageRecord,
    session_factory: SessionFactory | None = None,
) -> UsageLogEntry:
    """Write one ledger entry in its own transaction."""

    async def _append(session: AsyncSession) -> UsageLogEntry:
        return await UsageLedger.append(session, record)

    entry = await with_transaction(_append, session_factory)
    logger.debug(
        "usage_logged",
        user_id=str(record.user_id),
        api_key_id=str(record.api_key_id),
        status_code=record.http_status_code,
        response_time_ms=record.response_time_ms,
    )
    return entry
