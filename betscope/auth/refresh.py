"""
BetScope - Refresh Token Rotation

Refresh tokens renew a session without asking for the password again.

Rotation model:
- The client holds an opaque secret; only its SHA-256 digest is stored
- Each secret is redeemable once; redeeming marks it USED and issues a
  successor recorded in replaced_by
- Presenting a USED secret again means it was copied. Every session and
  refresh token of the owner is revoked
"""

import hashlib
import secrets
from typing import Optional, Tuple
from uuid import UUID

from sqlmodel import Session as DBSession, select

from betscope.auth import sessions as session_service
from betscope.auth.durations import parse_duration
from betscope.auth.errors import UnauthorizedError
from betscope.auth.models import RefreshToken, RefreshTokenStatus, Session, User, UserStatus, utcnow
from betscope.config import settings
from betscope.logging import get_logger


logger = get_logger(__name__)


def hash_refresh_token(secret: str) -> str:
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


async def issue_refresh_token(
    db: DBSession,
    user_id: UUID,
    session_id: Optional[UUID] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Tuple[RefreshToken, str]:
    """
    Create a refresh token.

    Returns:
        Tuple of (stored record, plaintext secret for the client)
    """
    secret = secrets.token_urlsafe(48)
    record = RefreshToken(
        user_id=user_id,
        session_id=session_id,
        token=hash_refresh_token(secret),
        expires_at=utcnow() + parse_duration(settings.REFRESH_TOKEN_EXPIRES_IN),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record, secret


async def find_refresh_token(db: DBSession, secret: str) -> Optional[RefreshToken]:
    statement = select(RefreshToken).where(RefreshToken.token == hash_refresh_token(secret))
    return db.exec(statement).first()


async def revoke_all_user_refresh_tokens(db: DBSession, user_id: UUID, reason: Optional[str] = None) -> int:
    statement = select(RefreshToken).where(
        RefreshToken.user_id == user_id,
        RefreshToken.status == RefreshTokenStatus.ACTIVE,
    )
    tokens = db.exec(statement).all()
    for token in tokens:
        token.revoke(reason)
        db.add(token)
    db.commit()
    return len(tokens)


async def revoke_session_refresh_tokens(db: DBSession, session_id: UUID, reason: Optional[str] = None) -> int:
    statement = select(RefreshToken).where(
        RefreshToken.session_id == session_id,
        RefreshToken.status == RefreshTokenStatus.ACTIVE,
    )
    tokens = db.exec(statement).all()
    for token in tokens:
        token.revoke(reason)
        db.add(token)
    db.commit()
    return len(tokens)


async def revoke_refresh_token(db: DBSession, secret: str, reason: Optional[str] = None) -> Optional[RefreshToken]:
    record = await find_refresh_token(db, secret)
    if record is not None:
        record.revoke(reason)
        db.add(record)
        db.commit()
    return record


async def rotate_refresh_token(
    db: DBSession,
    secret: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Tuple[User, Optional[Session], RefreshToken, str]:
    """
    Redeem a refresh secret and issue its successor.

    Returns:
        Tuple of (user, bound session or None, new record, new secret)

    Raises:
        UnauthorizedError: Unknown, expired, revoked or reused secret, or the
            owner or bound session is no longer active
    """
    record = await find_refresh_token(db, secret)
    if record is None:
        raise UnauthorizedError("Invalid refresh token")

    if record.is_used:
        sessions_revoked = await session_service.revoke_all_user_sessions(
            db, record.user_id, reason="refresh_token_reuse"
        )
        refresh_revoked = await revoke_all_user_refresh_tokens(db, record.user_id, reason="refresh_token_reuse")
        logger.warning(
            "auth.refresh.reuse_detected",
            user_id=str(record.user_id),
            sessions_revoked=sessions_revoked,
            refresh_revoked=refresh_revoked,
        )
        raise UnauthorizedError("Refresh token reuse detected")

    if not record.is_active:
        if record.status == RefreshTokenStatus.ACTIVE:
            record.expire()
            db.add(record)
            db.commit()
        raise UnauthorizedError("Refresh token expired or revoked")

    user = db.get(User, record.user_id)
    if user is None or user.status != UserStatus.ACTIVE:
        raise UnauthorizedError("User account is inactive")

    session = None
    if record.session_id is not None:
        session = db.get(Session, record.session_id)
        if session is None or not session.is_active:
            record.revoke("session_inactive")
            db.add(record)
            db.commit()
            raise UnauthorizedError("Session expired or revoked")

    record.use()
    successor, new_secret = await issue_refresh_token(
        db,
        user_id=user.id,
        session_id=record.session_id,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    record.replaced_by = successor.id
    db.add(record)
    db.commit()

    return user, session, successor, new_secret

