"""Session token authentication dependencies for owner and admin routes."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from tryon_gateway.api.dependencies.database import get_db
from tryon_gateway.core.exceptions import (
    AuthenticationError,
    InsufficientPermissionsError,
    InvalidTokenError,
)
from tryon_gateway.core.security import TokenSubject, verify_token
from tryon_gateway.models.subscription import Subscription
from tryon_gateway.models.user import User

bearer_scheme = HTTPBearer(auto_error=False)


async def get_token_subject(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> TokenSubject:
    """Verify the session token and return its subject."""
    if credentials is None:
        raise AuthenticationError("Not authenticated")
    return verify_token(credentials.credentials)


async def get_current_user(
    subject: Annotated[TokenSubject, Depends(get_token_subject)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Load the user named by the token, with current subscription and plan."""
    try:
        user_id = UUID(subject.subject_id)
    except ValueError as e:
        raise InvalidTokenError("Token subject is not a user id") from e

    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .options(joinedload(User.current_subscription).joinedload(Subscription.plan))
    )
    user = result.unique().scalar_one_or_none()

    if user is None:
        raise InvalidTokenError("Token subject does not exist")

    return user


async def require_admin(
    subject: Annotated[TokenSubject, Depends(get_token_subject)],
) -> TokenSubject:
    """Allow only tokens carrying the admin role."""
    if not subject.is_admin:
        raise InsufficientPermissionsError("Administrator access required")
    return subject
