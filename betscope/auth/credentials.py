"""
BetScope - Credential Verification

Maps what a client proves (email + password, or a verified external
identity) to a local User.

Security:
- Lookups are case-normalised
- Unknown email and wrong password return the same None, and both paths
  run one bcrypt comparison
"""

import re
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel
from sqlmodel import Session as DBSession, select

from betscope.auth.errors import ExternalIdentityError
from betscope.auth.models import User, utcnow
from betscope.auth.password import hash_password, unusable_password_hash, verify_password
from betscope.logging import get_logger


logger = get_logger(__name__)


class ExternalProfile(BaseModel):
    """Profile returned by an external identity provider after verification."""
    provider: str = "google"
    provider_id: str
    email: str
    email_verified: bool = True
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar: Optional[str] = None


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password("betscope-timing-equaliser")


def warm_up() -> None:
    """Build the dummy hash at startup so no login request pays for it."""
    _dummy_hash()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def find_user_by_email(db: DBSession, email: str) -> Optional[User]:
    statement = select(User).where(User.email == normalize_email(email))
    return db.exec(statement).first()


def find_user_by_username(db: DBSession, username: str) -> Optional[User]:
    statement = select(User).where(User.username == username.strip().lower())
    return db.exec(statement).first()


async def verify_credentials(db: DBSession, email: str, password: str) -> Optional[User]:
    """
    Check an email/password pair.

    Returns:
        The user when the password matches, otherwise None. Callers cannot
        tell an unknown email from a wrong password.
    """
    user = find_user_by_email(db, email)
    if user is None:
        verify_password(password, _dummy_hash())
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def _external_username(db: DBSession, profile: ExternalProfile) -> str:
    base = re.sub(r"[^a-z0-9_]", "", f"{profile.provider}_{profile.provider_id}".lower())[:90]
    candidate = base
    suffix = 1
    while find_user_by_username(db, candidate) is not None:
        suffix += 1
        candidate = f"{base}_{suffix}"
    return candidate


async def resolve_external_identity(db: DBSession, verified_email: str, profile: ExternalProfile) -> User:
    """
    Map a verified external identity to a local account, creating it if absent.

    New accounts get a synthesised username (google_<id>, suffixed on
    collision) and a random password hash nobody knows, so they can only
    sign in through the provider.

    Raises:
        ExternalIdentityError: The provider did not return a usable email
    """
    if not verified_email or "@" not in verified_email:
        raise ExternalIdentityError("External identity has no usable email")

    user = find_user_by_email(db, verified_email)
    if user is not None:
        return user

    user = User(
        email=normalize_email(verified_email),
        username=_external_username(db, profile),
        password_hash=unusable_password_hash(),
        first_name=profile.first_name,
        last_name=profile.last_name,
        avatar=profile.avatar,
        auth_provider=profile.provider,
        email_verified=profile.email_verified,
        usage_period_start=utcnow(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("auth.user.created_from_external", user_id=str(user.id), provider=profile.provider)
    return user
