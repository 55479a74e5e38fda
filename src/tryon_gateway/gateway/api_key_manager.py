"""Product API key manager for generation, lookup and revocation."""

import hashlib
import hmac
import secrets
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from tryon_gateway.core.config import get_settings
from tryon_gateway.core.database import SessionFactory, with_transaction
from tryon_gateway.core.exceptions import APIKeyNotFoundError, InvalidInputError
from tryon_gateway.models.api_key import APIKey, APIKeyStatus
from tryon_gateway.models.base import utcnow
from tryon_gateway.models.subscription import Subscription
from tryon_gateway.models.user import User

logger = structlog.get_logger(__name__)

settings = get_settings()

# Plaintext format: {product_key_prefix}{64 hex chars}
KEY_RANDOM_BYTES = 32
KEY_DISPLAY_LEN = 16


class APIKeyManager:
    """
    Manages product API key lifecycle operations.

    Keys are stored as an unsalted SHA-256 hex digest so the gateway can
    resolve a presented token with a single indexed lookup.
    """

    @staticmethod
    def generate_key() -> tuple[str, str, str]:
        """
        Generate a new product API key.

        Returns:
            Tuple of (plaintext, key_hash, key_prefix)
        """
        plaintext = f"{settings.product_key_prefix}{secrets.token_hex(KEY_RANDOM_BYTES)}"
        return plaintext, APIKeyManager.hash_key(plaintext), plaintext[:KEY_DISPLAY_LEN]

    @staticmethod
    def hash_key(plaintext: str) -> str:
        """SHA-256 hex digest of a plaintext key."""
        return hashlib.sha256(plaintext.encode()).hexdigest()

    @staticmethod
    def verify_key(plaintext: str, key_hash: str) -> bool:
        """Constant-time check of a plaintext key against a stored hash."""
        return hmac.compare_digest(APIKeyManager.hash_key(plaintext), key_hash)

    @staticmethod
    async def create_api_key(
        db: AsyncSession,
        user_id: UUID,
        name: str,
    ) -> tuple[str, APIKey]:
        """
        Create a new product API key for a user.

        Args:
            db: Database session
            user_id: Owner of the key
            name: Human label for the key

        Returns:
            Tuple of (plaintext, api_key_record). The plaintext is not stored
            and must be shown to the owner now.

        Raises:
            InvalidInputError: If the name is empty
        """
        if not name or not name.strip():
            raise InvalidInputError("API key name cannot be empty")

        plaintext, key_hash, key_prefix = APIKeyManager.generate_key()

        api_key = APIKey(
            user_id=user_id,
            name=name.strip(),
            key_prefix=key_prefix,
            key_hash=key_hash,
            status=APIKeyStatus.ACTIVE,
        )

        db.add(api_key)
        await db.flush()
        await db.refresh(api_key)

        logger.info(
            "api_key_created",
            key_id=str(api_key.id),
            user_id=str(user_id),
            key_prefix=key_prefix,
        )

        return plaintext, api_key

    @staticmethod
    async def find_by_token(db: AsyncSession, plaintext: str) -> APIKey | None:
        """
        Resolve a presented token to its key record.

        The key, its owner, the owner's current subscription and that
        subscription's plan are loaded in one query. Revoked keys are
        returned too so the caller can tell them apart from unknown ones.
        """
        result = await db.execute(
            select(APIKey)
            .where(APIKey.key_hash == APIKeyManager.hash_key(plaintext))
            .options(
                joinedload(APIKey.user)
                .joinedload(User.current_subscription)
                .joinedload(Subscription.plan),
            )
        )
        return result.unique().scalar_one_or_none()

    @staticmethod
    async def revoke_api_key(
        db: AsyncSession,
        key_id: UUID,
        user_id: UUID,
    ) -> APIKey:
        """
        Revoke one of the owner's keys. Revoking twice is a no-op.

        Raises:
            APIKeyNotFoundError: If the key does not exist or belongs to
                another user
        """
        result = await db.execute(
            select(APIKey).where(
                APIKey.id == key_id,
                APIKey.user_id == user_id,
            )
        )
        api_key = result.scalar_one_or_none()

        if api_key is None:
            logger.warning(
                "api_key_revoke_failed_not_found",
                key_id=str(key_id),
                user_id=str(user_id),
            )
            raise APIKeyNotFoundError(resource_type="API key", resource_id=str(key_id))

        if api_key.status != APIKeyStatus.REVOKED:
            api_key.status = APIKeyStatus.REVOKED
            await db.flush()
            logger.info(
                "api_key_revoked",
                key_id=str(key_id),
                user_id=str(user_id),
            )

        return api_key

    @staticmethod
    async def list_user_keys(db: AsyncSession, user_id: UUID) -> list[APIKey]:
        """List all of a user's keys, newest first."""
        result = await db.execute(
            select(APIKey)
            .where(APIKey.user_id == user_id)
            .order_by(APIKey.created_at.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def touch_last_used(
        api_key_id: UUID,
        session_factory: SessionFactory | None = None,
    ) -> None:
        """Set ``last_used_at`` to now in a transaction of its own."""

        async def _touch(session: AsyncSession) -> None:
            await session.execute(
                update(APIKey)
                .where(APIKey.id == api_key_id)
                .values(last_used_at=utcnow())
                .execution_options(synchronize_session=False)
            )

        await with_transaction(_touch, session_factory)
