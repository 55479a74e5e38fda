"""Database configuration, session management and transaction boundaries."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tryon_gateway.core.config import get_settings

settings = get_settings()

T = TypeVar("T")

SessionFactory = async_sessionmaker[AsyncSession]


def build_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine, skipping pool sizing for SQLite."""
    if "sqlite" in database_url.lower():
        return create_async_engine(database_url, echo=echo)

    return create_async_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def build_session_factory(bind: AsyncEngine) -> SessionFactory:
    """Create the session factory used by requests, the rotator and the scheduler."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine: AsyncEngine = build_engine(settings.database_url, echo=settings.debug)

async_session_factory: SessionFactory = build_session_factory(engine)


def get_session_factory() -> SessionFactory:
    """Dependency returning the shared session factory.

    Components that must outlive a request session (credential allocation,
    post-response usage logging) open their own transactions from it.
    """
    return async_session_factory


@asynccontextmanager
async def get_session_context(
    session_factory: SessionFactory | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Context manager for database sessions (for use outside of FastAPI)."""
    factory = session_factory or async_session_factory
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def transaction(
    session_factory: SessionFactory | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Open a session with an explicit transaction.

    The transaction commits when the block exits normally and rolls back if
    it raises. Credential allocation and the daily pool reset both run inside
    this boundary.
    """
    factory = session_factory or async_session_factory
    async with factory() as session:
        async with session.begin():
            yield session


async def with_transaction(
    fn: Callable[[AsyncSession], Awaitable[T]],
    session_factory: SessionFactory | None = None,
) -> T:
    """Run ``fn`` inside a single transaction and return its result."""
    async with transaction(session_factory) as session:
        return await fn(session)


async def check_database_connection() -> bool:
    """Check if database connection is healthy."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
