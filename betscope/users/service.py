"""
BetScope - User Management

Profile, password, preferences, usage quotas and administrative status
changes. Status and is_active always move together.

record_usage backs POST /users/me/usage/{kind}. Usage counters are
read-modify-write on the user row without locking; concurrent increments
for one user can under-count.
"""

from datetime import datetime, time
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlmodel import Session as DBSession, select

from betscope.auth import refresh as refresh_service
from betscope.auth import sessions as session_service
from betscope.auth.credentials import find_user_by_username
from betscope.auth.errors import DuplicateAccountError, InvalidCredentialsError, NotFoundError
from betscope.auth.models import USAGE_PERIOD, SubscriptionPlan, User, UserStatus, utcnow
from betscope.auth.password import hash_password, verify_password
from betscope.logging import get_logger
from betscope.users.schemas import UpdateProfileRequest


logger = get_logger(__name__)


class UsageKind(str, Enum):
    PREDICTIONS = "predictions"
    CHAT = "chat"


async def get_user(db: DBSession, user_id: UUID) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def update_profile(db: DBSession, user: User, body: UpdateProfileRequest) -> User:
    """
    Apply the fields present in the request.

    Raises:
        DuplicateAccountError: New username is taken by someone else
    """
    changes = body.model_dump(exclude_unset=True)

    new_username = changes.get("username")
    if new_username is not None and new_username != user.username:
        if find_user_by_username(db, new_username) is not None:
            raise DuplicateAccountError("Username already taken")
    elif "username" in changes:
        changes.pop("username")

    for field_name, value in changes.items():
        setattr(user, field_name, value)

    user.updated_at = utcnow()
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


async def change_password(
    db: DBSession,
    user: User,
    current_password: str,
    new_password: str,
    keep_session_id: Optional[UUID] = None,
) -> int:
    """
    Replace the password after checking the current one.

    Every other session is revoked along with its refresh tokens; the
    session making the change (keep_session_id) survives.

    Returns:
        Number of sessions revoked

    Raises:
        InvalidCredentialsError: Current password is wrong
    """
    if not verify_password(current_password, user.password_hash):
        raise InvalidCredentialsError("Invalid current password")

    user.password_hash = hash_password(new_password)
    user.updated_at = utcnow()
    db.add(user)
    db.commit()

    revoked = 0
    for session in await session_service.get_active_sessions(db, user.id):
        if session.id == keep_session_id:
            continue
        if await session_service.revoke_session(db, session.id, reason="password_changed"):
            await refresh_service.revoke_session_refresh_tokens(db, session.id, reason="password_changed")
            revoked += 1

    logger.info("users.password_changed", user_id=str(user.id), sessions_revoked=revoked)
    return revoked


async def update_preferences(db: DBSession, user: User, preferences: Dict[str, Any]) -> User:
    """Shallow-merge new keys into the stored preferences."""
    merged = dict(user.preferences or {})
    merged.update(preferences)
    user.preferences = merged
    user.updated_at = utcnow()
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _reset_if_elapsed(user: User) -> bool:
    if user.usage_period_elapsed():
        user.reset_usage_period()
        return True
    return False


async def get_usage(db: DBSession, user: User) -> User:
    """Return the user with counters reset if the 30-day period has elapsed."""
    if _reset_if_elapsed(user):
        db.add(user)
        db.commit()
    return user


def usage_period_resets_at(user: User) -> datetime:
    return (user.usage_period_start or user.created_at) + USAGE_PERIOD


async def record_usage(db: DBSession, user: User, kind: UsageKind) -> bool:
    """
    Count one prediction or chat message against the monthly quota.

    Returns:
        False when the quota is exhausted (nothing is counted), True otherwise
    """
    reset = _reset_if_elapsed(user)

    if kind == UsageKind.PREDICTIONS:
        allowed = user.can_use_predictions()
        if allowed:
            user.monthly_predictions += 1
    else:
        allowed = user.can_use_chat()
        if allowed:
            user.monthly_chat_messages += 1

    if allowed or reset:
        db.add(user)
        db.commit()

    if not allowed:
        logger.info("users.quota_exhausted", user_id=str(user.id), kind=kind.value)
    return allowed


async def list_users(db: DBSession, page: int = 1, limit: int = 10) -> Tuple[List[User], int]:
    """Newest first. Page numbers start at 1."""
    total = db.exec(select(func.count()).select_from(User)).one()
    statement = (
        select(User)
        .order_by(User.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(db.exec(statement).all()), total


async def set_status(db: DBSession, user_id: UUID, new_status: UserStatus) -> Tuple[User, int]:
    """
    Move an account to a new status.

    Suspending or banning also revokes every session and refresh token so
    signed-in clients lose access immediately.

    Returns:
        Tuple of (user, sessions revoked)
    """
    user = await get_user(db, user_id)
    user.status = new_status
    user.is_active = new_status == UserStatus.ACTIVE
    user.updated_at = utcnow()
    db.add(user)
    db.commit()

    revoked = 0
    if new_status in (UserStatus.SUSPENDED, UserStatus.BANNED):
        reason = f"account_{new_status.value.lower()}"
        revoked = await session_service.revoke_all_user_sessions(db, user.id, reason=reason)
        await refresh_service.revoke_all_user_refresh_tokens(db, user.id, reason=reason)

    logger.info("users.status_changed", user_id=str(user.id), status=new_status.value, sessions_revoked=revoked)
    return user, revoked


async def get_user_stats(db: DBSession) -> Dict[str, int]:
    def count(*conditions) -> int:
        statement = select(func.count()).select_from(User)
        for condition in conditions:
            statement = statement.where(condition)
        return db.exec(statement).one()

    start_of_today = datetime.combine(utcnow().date(), time.min)
    return {
        "total_users": count(),
        "active_users": count(User.status == UserStatus.ACTIVE),
        "subscribed_users": count(User.subscription_plan.in_([SubscriptionPlan.PRO, SubscriptionPlan.ULTRA])),
        "new_users_today": count(User.created_at >= start_of_today),
    }
