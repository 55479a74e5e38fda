"""Product API key dependency for gated endpoints."""

from typing import Annotated

from fastapi import Depends, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from tryon_gateway.api.dependencies.database import get_db
from tryon_gateway.api.middleware.response_hooks import POST_RESPONSE_TASKS_KEY
from tryon_gateway.core.database import SessionFactory, get_session_factory
from tryon_gateway.core.redis import get_redis
from tryon_gateway.gateway.key_rotator import KeyRotator
from tryon_gateway.gateway.quota_gate import AdmittedRequest, QuotaGate
from tryon_gateway.gateway.response_hooks import PostResponseTasks

MAX_ENDPOINT_LENGTH = 255


def get_post_response_tasks(request: Request) -> PostResponseTasks:
    """The queue installed by ``ResponseHooksMiddleware`` for this request."""
    tasks = getattr(request.state, POST_RESPONSE_TASKS_KEY, None)
    if tasks is None:
        raise RuntimeError("ResponseHooksMiddleware is not installed")
    return tasks


def _endpoint(request: Request) -> str:
    endpoint = request.url.path
    if request.url.query:
        endpoint = f"{endpoint}?{request.url.query}"
    return endpoint[:MAX_ENDPOINT_LENGTH]


async def require_product_api_key(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    redis_client: Annotated[Redis, Depends(get_redis)],
    session_factory: Annotated[SessionFactory, Depends(get_session_factory)],
    tasks: Annotated[PostResponseTasks, Depends(get_post_response_tasks)],
) -> AdmittedRequest:
    """
    Admit a request carrying ``Authorization: Bearer <product key>``.

    On success the caller's user, key and subscription are also attached
    to ``request.state``. The handler claims a provider credential itself
    through ``AdmittedRequest.allocate_credential``.
    """
    gate = QuotaGate(
        db,
        redis_client,
        rotator=KeyRotator(session_factory),
        session_factory=session_factory,
    )
    admitted = await gate.admit(
        request.headers.get("Authorization"),
        tasks,
        http_method=request.method,
        endpoint=_endpoint(request),
    )

    request.state.user = admitted.user
    request.state.api_key = admitted.api_key
    request.state.subscription = admitted.subscription

    return admitted


AdmittedCaller = Annotated[AdmittedRequest, Depends(require_product_api_key)]
