"""
BetScope - Session Management

Server-side sessions, one per signed-in client context. Access tokens
carry the session id (sid), so revoking a session here invalidates the
tokens bound to it when AUTH_SESSION_CHECK is on.

Security:
- Session handles are random, never derived from user data
- Logout and revoke are immediate
- Expired sessions are marked EXPIRED when next seen
"""

import secrets
from typing import List, Optional
from uuid import UUID

from sqlmodel import Session as DBSession, select

from betscope.auth.durations import parse_duration
from betscope.auth.models import Session, SessionStatus, utcnow
from betscope.config import settings


async def create_session(
    db: DBSession,
    user_id: UUID,
    device_id: Optional[UUID] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Session:
    """
    Create a new server-side session.

    Args:
        db: Database session
        user_id: Owner
        device_id: Device the client identified as, if any
        ip_address: Client IP
        user_agent: Client user-agent

    Returns:
        Created Session, ACTIVE until SESSION_EXPIRES_IN elapses
    """
    now = utcnow()
    session = Session(
        user_id=user_id,
        device_id=device_id,
        token=secrets.token_urlsafe(32),
        status=SessionStatus.ACTIVE,
        expires_at=now + parse_duration(settings.SESSION_EXPIRES_IN),
        ip_address=ip_address,
        user_agent=user_agent,
        last_active_at=now,
    )

    db.add(session)
    db.commit()
    db.refresh(session)

    return session


async def get_session(db: DBSession, session_id: UUID) -> Optional[Session]:
    return db.get(Session, session_id)


async def validate_session(
    db: DBSession,
    session_id: UUID,
    user_id: UUID,
    ip_address: Optional[str] = None,
) -> Optional[Session]:
    """
    Validate a session is active and belongs to user.

    Validation checks:
        1. Session exists and belongs to the user
        2. Session is ACTIVE and not past expires_at

    An ACTIVE session found past its expiry is marked EXPIRED. A valid
    session gets its activity timestamp refreshed.

    Returns:
        Session if valid, None otherwise
    """
    session = db.get(Session, session_id)
    if session is None or session.user_id != user_id:
        return None

    if not session.is_active:
        if session.status == SessionStatus.ACTIVE and session.is_expired:
            session.expire()
            db.add(session)
            db.commit()
        return None

    session.update_activity(ip_address=ip_address)
    db.add(session)
    db.commit()

    return session


async def revoke_session(db: DBSession, session_id: UUID, reason: Optional[str] = None) -> bool:
    """
    Revoke a session (logout).

    Returns:
        True if the session was ACTIVE and is now REVOKED
    """
    session = db.get(Session, session_id)
    if session is None or session.status != SessionStatus.ACTIVE:
        return False

    session.revoke(reason)
    db.add(session)
    db.commit()

    return True


async def revoke_all_user_sessions(db: DBSession, user_id: UUID, reason: Optional[str] = None) -> int:
    """
    Revoke every ACTIVE session of a user (sign out everywhere).

    Use cases:
        - Password change
        - Account suspension or ban
        - Refresh token reuse
    """
    statement = select(Session).where(
        Session.user_id == user_id,
        Session.status == SessionStatus.ACTIVE,
    )
    sessions = db.exec(statement).all()

    for session in sessions:
        session.revoke(reason)
        db.add(session)
    db.commit()

    return len(sessions)


async def revoke_device_sessions(db: DBSession, device_id: UUID, reason: Optional[str] = None) -> int:
    statement = select(Session).where(
        Session.device_id == device_id,
        Session.status == SessionStatus.ACTIVE,
    )
    sessions = db.exec(statement).all()

    for session in sessions:
        session.revoke(reason)
        db.add(session)
    db.commit()

    return len(sessions)


async def get_active_sessions(db: DBSession, user_id: UUID) -> List[Session]:
    """Get all active sessions for a user, newest first."""
    statement = (
        select(Session)
        .where(
            Session.user_id == user_id,
            Session.status == SessionStatus.ACTIVE,
            Session.expires_at > utcnow(),
        )
        .order_by(Session.created_at.desc())
    )
    return list(db.exec(statement).all())


async def cleanup_expired_sessions(db: DBSession) -> int:
    """
    Mark ACTIVE sessions past their expiry as EXPIRED.

    Returns:
        Number of sessions expired
    """
    statement = select(Session).where(
        Session.status == SessionStatus.ACTIVE,
        Session.expires_at <= utcnow(),
    )
    sessions = db.exec(statement).all()

    for session in sessions:
        session.expire()
        db.add(session)
    db.commit()

    return len(sessions)
