"""Database session dependency."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tryon_gateway.core.database import SessionFactory, get_session_context, get_session_factory


async def get_db(
    session_factory: Annotated[SessionFactory, Depends(get_session_factory)],
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a request-scoped session, committed on success and rolled back on error."""
    async with get_session_context(session_factory) as session:
        yield session
