"""
Security utilities for content service.

Password hashing with bcrypt and JWT access tokens with PyJWT.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
import structlog

from ..config import settings
from ..domain.exceptions import AuthError

logger = structlog.get_logger(__name__)

TOKEN_TYPE_ACCESS = "access"


@dataclass(frozen=True)
class Principal:
    """Identity carried by a validated access token."""

    author_id: int
    email: str


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password
        rounds: bcrypt cost factor (defaults to PASSWORD_HASH_ROUNDS)

    Returns:
        Hash as a string for storage
    """
    salt = bcrypt.gensalt(rounds=rounds or settings.PASSWORD_HASH_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a bcrypt hash."""
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(
    author_id: int, email: str, expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a signed access token.

    Args:
        author_id: Author the token identifies (JWT subject)
        email: Author email
        expires_delta: Token lifetime (defaults to ACCESS_TOKEN_EXPIRE_MINUTES)

    Returns:
        Encoded JWT
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {
        "sub": str(author_id),
        "email": email,
        "type": TOKEN_TYPE_ACCESS,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def validate_token(token: str) -> Principal:
    """
    Validate an access token.

    Args:
        token: Encoded JWT

    Returns:
        Principal named by the token

    Raises:
        AuthError: If the token is expired, malformed or not an access token
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        logger.debug("Token has expired")
        raise AuthError("token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token", error=str(e))
        raise AuthError("invalid token") from None

    if payload.get("type") != TOKEN_TYPE_ACCESS:
        logger.warning("Invalid token type", token_type=payload.get("type"))
        raise AuthError("invalid token type")

    try:
        author_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise AuthError("invalid subject") from None
    if author_id <= 0:
        raise AuthError("invalid subject")

    return Principal(author_id=author_id, email=payload.get("email", ""))
