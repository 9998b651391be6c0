"""
Password hashing and token utilities.

Passwords are hashed with bcrypt through passlib. Access and refresh tokens
are HS256 JWTs; one-time tokens (verification, reset, invitation) are random
hex strings of which only a SHA-256 digest is persisted.
"""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from jose import JWTError, jwt
from passlib.context import CryptContext

from autocontrol.core.config import settings
from autocontrol.core.exceptions import InvalidTokenError

# Password hashing context
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


class TokenType(str, Enum):
    """JWT purpose, stored in the `type` claim."""

    ACCESS = "access"
    REFRESH = "refresh"


def hash_password(password: str) -> str:
    """Hash a password."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def dummy_verify() -> None:
    """Spend the same time as a real verification (unknown account)."""
    pwd_context.dummy_verify()


def _encode(claims: dict[str, Any], key: str, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    to_encode = dict(claims)
    to_encode.update({"iat": int(now.timestamp()), "exp": now + expires_delta})
    return jwt.encode(to_encode, key, algorithm=settings.JWT_ALGORITHM)


def create_access_token(
    user_id: UUID,
    organization_id: UUID,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a short-lived access token carrying the tenant context."""
    return _encode(
        {
            "sub": str(user_id),
            "org": str(organization_id),
            "role": role,
            "type": TokenType.ACCESS.value,
        },
        settings.SECRET_KEY,
        expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(
    user_id: UUID,
    organization_id: UUID,
    role: str,
    version: int,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a long-lived refresh token.

    `ver` must match the user's token_version when the token is redeemed;
    bumping the version (logout, password change) revokes the token.
    """
    return _encode(
        {
            "sub": str(user_id),
            "org": str(organization_id),
            "role": role,
            "ver": version,
            "type": TokenType.REFRESH.value,
        },
        settings.refresh_secret_key,
        expires_delta or timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS),
    )


def decode_token(token: str, expected_type: TokenType = TokenType.ACCESS) -> dict[str, Any]:
    """
    Verify signature, expiry and purpose of a token.

    Raises:
        InvalidTokenError: If the token is malformed, expired, signed with
            another key or of the wrong type
    """
    key = settings.SECRET_KEY if expected_type == TokenType.ACCESS else settings.refresh_secret_key
    try:
        payload = jwt.decode(token, key, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise InvalidTokenError() from e

    if payload.get("type") != expected_type.value:
        raise InvalidTokenError()

    try:
        payload["sub"] = UUID(payload["sub"])
        payload["org"] = UUID(payload["org"])
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidTokenError() from e

    return payload


def generate_secure_token() -> str:
    """Generate a random one-time token (32 bytes, hex encoded)."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """Digest of a one-time token, as stored in the database."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
