"""Security utilities - JWT issuing/verification and password hashing."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

MIN_PASSWORD_LENGTH = 8


@dataclass(frozen=True)
class TokenPair:
    """Access + refresh token issued at login."""

    access_token: str
    refresh_token: str
    expires_in: int


def _encode(claims: dict[str, Any], lifetime: timedelta) -> str:
    now = datetime.now(UTC)
    to_encode = {**claims, "iat": now, "exp": now + lifetime}
    return jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )


def create_access_token(
    subject: str,
    expires_delta: timedelta | None = None,
    role: str | None = None,
) -> str:
    """Create JWT access token.

    The role claim is informational (used by the chat socket before the
    profile is loaded); authorization always re-reads the profile row.
    """
    claims: dict[str, Any] = {"sub": subject, "type": "access"}
    if role:
        claims["role"] = role
    return _encode(
        claims,
        expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes),
    )


def create_refresh_token(
    subject: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create JWT refresh token."""
    return _encode(
        {"sub": subject, "type": "refresh"},
        expires_delta or timedelta(days=settings.jwt_refresh_token_expire_days),
    )


def issue_token_pair(subject: str, role: str | None = None) -> TokenPair:
    """Issue the access/refresh pair returned by login and signup."""
    return TokenPair(
        access_token=create_access_token(subject, role=role),
        refresh_token=create_refresh_token(subject),
        expires_in=settings.jwt_access_token_expire_minutes * 60,
    )


def verify_token(token: str, expected_type: str | None = None) -> dict[str, Any] | None:
    """Verify JWT token and return payload.

    Returns None for expired, tampered or malformed tokens, and for tokens
    whose ``type`` claim does not match ``expected_type`` when given.
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None
    if expected_type is not None and payload.get("type") != expected_type:
        return None
    return payload


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password."""
    return pwd_context.hash(password)


def is_acceptable_password(password: str) -> bool:
    """Minimal signup policy: length plus at least one letter and one digit."""
    return (
        len(password) >= MIN_PASSWORD_LENGTH
        and any(c.isalpha() for c in password)
        and any(c.isdigit() for c in password)
    )
