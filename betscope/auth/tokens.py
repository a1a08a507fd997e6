"""
BetScope - JWT Token Management

Creates and validates JWT access tokens with:
- User ID (sub) and email
- Session ID (sid) when the token is bound to a server-side session
- Unique token ID (jti for log correlation)

Security:
- Short-lived tokens (JWT_EXPIRES_IN, 15 minutes by default)
- HS256 signed with JWT_SECRET
- A token whose exp equals the current second is already expired
"""

import calendar
import secrets
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt
from pydantic import BaseModel, Field

from betscope.auth.durations import parse_duration
from betscope.auth.models import User, utcnow
from betscope.config import settings


class InvalidTokenError(Exception):
    """Raised when JWT validation fails."""
    pass


class TokenPayload(BaseModel):
    """
    JWT token payload structure.

    Attributes:
        sub: Subject (user ID)
        email: Email at issue time
        sid: Session ID, absent for stateless tokens
        jti: Unique token ID
        exp: Expiration timestamp
        iat: Issued-at timestamp
    """
    sub: str = Field(..., description="User ID")
    email: str = Field(..., description="User email")
    sid: Optional[str] = Field(default=None, description="Session ID")
    jti: str = Field(..., description="Token ID")
    exp: datetime = Field(..., description="Expiration time")
    iat: datetime = Field(..., description="Issued at time")


def get_token_ttl() -> timedelta:
    return parse_duration(settings.JWT_EXPIRES_IN)


def get_token_expiry_seconds() -> int:
    """Get token expiry time in seconds for responses and cookies."""
    return int(get_token_ttl().total_seconds())


def _timestamp(moment: datetime) -> int:
    return calendar.timegm(moment.utctimetuple())


def create_access_token(
    user: User,
    session_id: Optional[UUID] = None,
    expires_delta: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Create a new JWT access token.

    Args:
        user: Authenticated user
        session_id: Server-side session the token is bound to, if any
        expires_delta: Override JWT_EXPIRES_IN
        now: Issue time (naive UTC), defaults to the current time

    Returns:
        Encoded JWT string
    """
    issued_at = now or utcnow()
    expire = issued_at + (expires_delta if expires_delta is not None else get_token_ttl())

    payload = {
        "sub": str(user.id),
        "email": user.email,
        "jti": secrets.token_hex(16),
        "iat": _timestamp(issued_at),
        "exp": _timestamp(expire),
    }
    if session_id is not None:
        payload["sid"] = str(session_id)

    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_access_token(token: str, now: Optional[datetime] = None) -> TokenPayload:
    """
    Verify and decode a JWT access token.

    Args:
        token: Encoded JWT string
        now: Verification time (naive UTC), defaults to the current time

    Returns:
        Decoded TokenPayload

    Raises:
        InvalidTokenError: If token is malformed, wrongly signed or expired
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_exp": False, "require_exp": True, "require_sub": True},
        )
    except JWTError as e:
        raise InvalidTokenError(f"Token validation failed: {e}")

    exp = payload.get("exp")
    if not isinstance(exp, (int, float)):
        raise InvalidTokenError("Token validation failed: invalid exp claim")
    if exp <= _timestamp(now or utcnow()):
        raise InvalidTokenError("Token validation failed: token expired")

    try:
        return TokenPayload(**payload)
    except ValueError as e:
        raise InvalidTokenError(f"Token validation failed: {e}")
