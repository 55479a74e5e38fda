"""Celery tasks for the provider credential pool."""

import asyncio
from collections.abc import Coroutine
from datetime import UTC, datetime
from typing import Any, TypeVar

import structlog
from celery import shared_task

from tryon_gateway.core.config import get_settings
from tryon_gateway.core.database import SessionFactory, build_engine, build_session_factory
from tryon_gateway.core.metrics import track_pool_reset
from tryon_gateway.gateway import credential_store

logger = structlog.get_logger(__name__)

settings = get_settings()

T = TypeVar("T")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run async function in sync context for Celery."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@shared_task(bind=True, name="tryon_gateway.workers.credential_tasks.reset_credential_pool")  # type: ignore[untyped-decorator]
def reset_credential_pool(_self: Any) -> dict[str, Any]:  # noqa: ARG001
    """Daily reset: zero every credential counter and clear every flag.

    A failed reset is logged and counted, never raised; the next scheduled
    run retries it.
    """
    return run_async(_reset_credential_pool_async())


async def _reset_credential_pool_async(
    session_factory: SessionFactory | None = None,
) -> dict[str, Any]:
    """Async implementation of the pool reset.

    Without an explicit factory, a short-lived engine is created for this
    run, since pooled connections cannot be shared across event loops.
    """
    started_at = datetime.now(UTC)
    engine = None
    if session_factory is None:
        engine = build_engine(settings.database_url)
        session_factory = build_session_factory(engine)

    try:
        reset_count = await credential_store.reset_credential_pool(session_factory)
    except Exception as e:
        track_pool_reset("failure")
        logger.error(
            "credential_pool_reset_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return {
            "success": False,
            "error": str(e),
            "started_at": started_at.isoformat(),
        }
    finally:
        if engine is not None:
            await engine.dispose()

    track_pool_reset("success")
    return {
        "success": True,
        "credentials_reset": reset_count,
        "started_at": started_at.isoformat(),
    }
