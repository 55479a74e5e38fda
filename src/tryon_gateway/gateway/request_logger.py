"""Post-response tasks that record a gated request."""

from uuid import UUID

import structlog

from tryon_gateway.core.database import SessionFactory
from tryon_gateway.core.exceptions import UsageLogWriteError
from tryon_gateway.core.metrics import track_usage_log_write
from tryon_gateway.gateway.api_key_manager import APIKeyManager
from tryon_gateway.gateway.response_hooks import PostResponseTask, ResponseOutcome
from tryon_gateway.gateway.usage_ledger import UsageRecord, record_usage

logger = structlog.get_logger(__name__)


def usage_log_task(
    *,
    user_id: UUID,
    api_key_id: UUID,
    http_method: str,
    endpoint: str,
    session_factory: SessionFactory | None = None,
) -> PostResponseTask:
    """
    Build the task that writes one ledger entry for a finished request.

    The entry carries the final status code and the request's elapsed time.
    Write failures are logged and counted; the response has already been
    sent, so nothing is raised.
    """

    async def write_usage_log(outcome: ResponseOutcome) -> None:
        record = UsageRecord(
            user_id=user_id,
            api_key_id=api_key_id,
            http_method=http_method,
            endpoint=endpoint,
            http_status_code=outcome.status_code,
            response_time_ms=outcome.duration_ms,
        )
        try:
            await record_usage(record, session_factory)
        except Exception as e:
            failure = UsageLogWriteError(
                details={
                    "user_id": str(user_id),
                    "api_key_id": str(api_key_id),
                    "status_code": outcome.status_code,
                },
            )
            track_usage_log_write("failure")
            logger.error(
                "usage_log_write_failed",
                error_code=failure.error_code.value,
                error=str(e),
                **failure.details,
                exc_info=True,
            )
            return

        track_usage_log_write("success")

    return write_usage_log


def touch_api_key_task(
    api_key_id: UUID,
    session_factory: SessionFactory | None = None,
) -> PostResponseTask:
    """Build the best-effort task that refreshes a key's ``last_used_at``."""

    async def touch_api_key(outcome: ResponseOutcome) -> None:
        try:
            await APIKeyManager.touch_last_used(api_key_id, session_factory)
        except Exception as e:
            logger.warning(
                "api_key_touch_failed",
                api_key_id=str(api_key_id),
                error=str(e),
            )

    return touch_api_key
