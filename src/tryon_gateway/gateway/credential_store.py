"""Credential store: administration and daily reset of the provider key pool."""

from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tryon_gateway.core.database import SessionFactory, with_transaction
from tryon_gateway.core.exceptions import ConflictError, CredentialNotFoundError, InvalidInputError
from tryon_gateway.models.credential import ProviderCredential

logger = structlog.get_logger(__name__)


class CredentialStore:
    """Operations on the ``provider_credentials`` table outside allocation."""

    @staticmethod
    async def add_credential(db: AsyncSession, key: str) -> ProviderCredential:
        """
        Add a provider key to the pool.

        Raises:
            InvalidInputError: If the key is blank
            ConflictError: If the key is already in the pool
        """
        key = key.strip()
        if not key:
            raise InvalidInputError("Credential key cannot be empty")

        existing = await db.execute(
            select(ProviderCredential.id).where(ProviderCredential.key == key)
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("This credential already exists in the pool")

        credential = ProviderCredential(key=key)
        db.add(credential)
        await db.flush()
        await db.refresh(credential)

        logger.info(
            "credential_added",
            credential_id=str(credential.id),
            key=credential.masked_key,
        )

        return credential

    @staticmethod
    async def list_credentials(db: AsyncSession) -> list[ProviderCredential]:
        """List the pool, oldest first."""
        result = await db.execute(
            select(ProviderCredential).order_by(ProviderCredential.created_at)
        )
        return list(result.scalars().all())

    @staticmethod
    async def delete_credential(db: AsyncSession, credential_id: UUID) -> None:
        """
        Remove a provider key from the pool.

        Raises:
            CredentialNotFoundError: If no such credential exists
        """
        credential = await db.get(ProviderCredential, credential_id)
        if credential is None:
            raise CredentialNotFoundError(
                resource_type="Credential",
                resource_id=str(credential_id),
            )

        await db.delete(credential)
        await db.flush()

        logger.info("credential_deleted", credential_id=str(credential_id))

    @staticmethod
    async def count_available(db: AsyncSession, ceiling: int) -> int:
        """Number of credentials that can still be allocated."""
        result = await db.execute(
            select(func.count(ProviderCredential.id)).where(
                ProviderCredential.is_rate_limited.is_(False),
                ProviderCredential.request_count < ceiling,
            )
        )
        return int(result.scalar_one())

    @staticmethod
    async def reset_counters(db: AsyncSession) -> int:
        """Zero every counter and clear every flag in one statement."""
        result = await db.execute(
            update(ProviderCredential)
            .values(request_count=0, is_rate_limited=False)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)


async def reset_credential_pool(session_factory: SessionFactory | None = None) -> int:
    """
    Reset the whole pool inside its own transaction.

    Runs in the same transaction boundary the rotator allocates in, so a
    reset never interleaves with half of an allocation.

    Returns:
        Number of credentials reset
    """
    reset_count = await with_transaction(CredentialStore.reset_counters, session_factory)
    logger.info("credential_pool_reset", credentials_reset=reset_count)
    return reset_count
