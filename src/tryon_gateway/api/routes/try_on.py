"""Product API: the gated virtual try-on endpoint."""

from datetime import UTC, datetime
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Request

from tryon_gateway.api.dependencies.api_key_auth import AdmittedCaller
from tryon_gateway.schemas.base import ErrorResponse, QuotaExceededResponse
from tryon_gateway.schemas.try_on import TryOnRequest, TryOnResponse
from tryon_gateway.upstream.gemini import ImageGenerationClient, get_image_client

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def product_health() -> dict[str, Any]:
    """Ungated health check for API consumers."""
    return {"status": "ok", "timestamp": datetime.now(UTC)}


@router.post(
    "/try-on",
    response_model=TryOnResponse,
    responses={
        **{
            status_code: {"model": ErrorResponse}
            for status_code in (400, 401, 403, 502, 503, 504)
        },
        429: {
            "model": QuotaExceededResponse | ErrorResponse,
            "description": "Monthly quota used up, or per-minute rate limit hit (with Retry-After)",
        },
    },
)
async def try_on(
    request: Request,
    payload: TryOnRequest,
    caller: AdmittedCaller,
    image_client: Annotated[ImageGenerationClient, Depends(get_image_client)],
) -> TryOnResponse:
    """
    Generate a try-on image of the product worn by the person in the user image.

    Requires ``Authorization: Bearer <product api key>``. Each call counts
    against the caller's quota whatever its outcome. A provider credential
    is claimed only after both images have loaded.
    """
    user_image = await image_client.load_image(payload.user_image)
    product_image = await image_client.load_image(payload.product_image)

    credential = await caller.allocate_credential()
    request.state.credential = credential

    base64_image = await image_client.generate_try_on(
        credential.key,
        user_image,
        product_image,
        payload.custom_prompt,
    )

    logger.info(
        "try_on_generated",
        user_id=str(caller.user.id),
        credential_id=str(credential.id),
        policy=caller.policy.kind,
    )

    return TryOnResponse(base64_image=base64_image)
