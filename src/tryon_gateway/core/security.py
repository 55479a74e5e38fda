"""Session token verification.

Token issuance belongs to the account service; this module only needs to
verify HS256 tokens and read the subject and role claims. ``create_access_token``
is kept for operator tooling and tests.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from tryon_gateway.core.config import get_settings
from tryon_gateway.core.exceptions import InvalidTokenError, TokenExpiredError

settings = get_settings()

ROLE_USER = "user"
ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class TokenSubject:
    """Verified identity carried by a session token."""

    subject_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed access token."""
    to_encode = data.copy()
    expire = datetime.now(UTC) + (
        expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any] | None:
    """Decode a token, returning None when it is invalid or expired."""
    try:
        return verify_claims(token)
    except InvalidTokenError:
        return None


def verify_claims(token: str) -> dict[str, Any]:
    """Decode and verify a token's signature and expiry."""
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError as e:
        raise TokenExpiredError() from e
    except jwt.PyJWTError as e:
        raise InvalidTokenError() from e
    return payload


def verify_token(token: str) -> TokenSubject:
    """Verify a session token and return its subject and role.

    Raises:
        InvalidTokenError: If the token is malformed, forged or lacks a subject.
        TokenExpiredError: If the token has expired.
    """
    payload = verify_claims(token)

    if payload.get("type") != "access":
        raise InvalidTokenError("Token is not an access token")

    subject = payload.get("sub")
    if not subject:
        raise InvalidTokenError("Token has no subject")

    role = payload.get("role", ROLE_USER)
    if role not in (ROLE_USER, ROLE_ADMIN):
        raise InvalidTokenError("Invalid role in token")

    return TokenSubject(subject_id=str(subject), role=role)
