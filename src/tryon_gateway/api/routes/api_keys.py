"""Product API key management routes for key owners."""

from typing import Annotated
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tryon_gateway.api.dependencies.auth import get_current_user
from tryon_gateway.api.dependencies.database import get_db
from tryon_gateway.gateway.api_key_manager import APIKeyManager
from tryon_gateway.models.user import User
from tryon_gateway.schemas.api_key import (
    APIKeyCreate,
    APIKeyCreatedResponse,
    APIKeyResponse,
)
from tryon_gateway.schemas.base import BaseResponse

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api-keys", tags=["api-keys"])


@router.post(
    "",
    response_model=BaseResponse[APIKeyCreatedResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_api_key(
    key_data: APIKeyCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BaseResponse[APIKeyCreatedResponse]:
    """
    Create a new API key for the authenticated user.

    The plain API key is returned only once and should be stored securely.
    """
    plain_key, api_key = await APIKeyManager.create_api_key(
        db=db,
        user_id=current_user.id,
        name=key_data.name,
    )
    await db.commit()

    return BaseResponse(
        data=APIKeyCreatedResponse(
            api_key=plain_key,
            key_info=APIKeyResponse.model_validate(api_key),
        ),
        message="API key created successfully",
    )


@router.get(
    "",
    response_model=BaseResponse[list[APIKeyResponse]],
)
async def list_api_keys(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BaseResponse[list[APIKeyResponse]]:
    """List the user's keys. Key values are never returned."""
    api_keys = await APIKeyManager.list_user_keys(db, current_user.id)

    return BaseResponse(
        data=[APIKeyResponse.model_validate(key) for key in api_keys],
        message=f"Retrieved {len(api_keys)} API keys",
    )


@router.delete(
    "/{key_id}",
    response_model=BaseResponse[APIKeyResponse],
)
async def revoke_api_key(
    key_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BaseResponse[APIKeyResponse]:
    """Revoke one of the user's keys. The record is kept with status ``revoked``."""
    api_key = await APIKeyManager.revoke_api_key(db, key_id, current_user.id)
    await db.commit()

    return BaseResponse(
        data=APIKeyResponse.model_validate(api_key),
        message="API key revoked successfully",
    )
