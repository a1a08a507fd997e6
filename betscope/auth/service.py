"""
BetScope - Account Flows

Login, registration, refresh, logout and external sign-in, shared by the
REST routes and the graph endpoint. Functions here return domain objects
and raise AuthError subclasses; transports decide how to render them.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import Request
from starlette.responses import Response
from sqlmodel import Session as DBSession

from betscope.auth import devices as device_service
from betscope.auth import refresh as refresh_service
from betscope.auth import sessions as session_service
from betscope.auth.cookies import (
    clear_auth_cookie,
    clear_refresh_cookie,
    set_auth_cookie,
    set_refresh_cookie,
)
from betscope.auth.credentials import (
    ExternalProfile,
    find_user_by_email,
    find_user_by_username,
    resolve_external_identity,
    verify_credentials,
)
from betscope.auth.dependencies import AuthContext
from betscope.auth.errors import DuplicateAccountError, InvalidCredentialsError, UnauthorizedError
from betscope.auth.events import get_client_ip, get_user_agent, log_auth_event
from betscope.auth.models import Session, User, UserStatus, utcnow
from betscope.auth.password import hash_password, needs_rehash
from betscope.auth.schemas import RegisterRequest
from betscope.auth.tokens import create_access_token, get_token_expiry_seconds
from betscope.config import settings


@dataclass
class IssuedCredentials:
    """Everything handed to a client after a successful sign-in or refresh."""
    access_token: str
    refresh_token: str
    expires_in: int
    session: Optional[Session] = None


def apply_credentials(response: Response, credentials: IssuedCredentials) -> None:
    set_auth_cookie(response, credentials.access_token)
    set_refresh_cookie(response, credentials.refresh_token)


def clear_credentials(response: Response) -> None:
    clear_auth_cookie(response)
    clear_refresh_cookie(response)


async def start_session(db: DBSession, request: Request, user: User) -> IssuedCredentials:
    """
    Open a session for an authenticated user.

    Registers the device named by X-Device-Fingerprint, creates the
    session and its first refresh token, and signs an access token bound
    to the session. Updates last-login metadata.

    Raises:
        DeviceBlockedError: The fingerprint belongs to a blocked device
    """
    ip_address = get_client_ip(request)
    user_agent = get_user_agent(request)

    device = await device_service.register_device(
        db,
        user_id=user.id,
        fingerprint=request.headers.get(device_service.FINGERPRINT_HEADER),
        user_agent=user_agent,
        ip_address=ip_address,
        name=request.headers.get(device_service.DEVICE_NAME_HEADER),
    )
    session = await session_service.create_session(
        db,
        user_id=user.id,
        device_id=device.id if device else None,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    _, refresh_secret = await refresh_service.issue_refresh_token(
        db,
        user_id=user.id,
        session_id=session.id,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    user.last_login_at = utcnow()
    user.last_login_ip = ip_address
    db.add(user)
    db.commit()

    return IssuedCredentials(
        access_token=create_access_token(user, session_id=session.id),
        refresh_token=refresh_secret,
        expires_in=get_token_expiry_seconds(),
        session=session,
    )


async def login(db: DBSession, request: Request, email: str, password: str) -> Tuple[User, IssuedCredentials]:
    """
    Authenticate with email and password.

    Raises:
        InvalidCredentialsError: Unknown email or wrong password
        UnauthorizedError: Account is suspended, banned or inactive
        DeviceBlockedError: Signing in from a blocked device
    """
    user = await verify_credentials(db, email, password)

    if user is None:
        log_auth_event(request, "auth.login.failure", level="warning", reason="invalid_credentials")
        raise InvalidCredentialsError()

    if not user.is_active:
        log_auth_event(
            request, "auth.login.failure",
            user_id=str(user.id), level="warning", reason="account_inactive",
        )
        raise UnauthorizedError("Account is not active")

    # Work factor upgrade
    if needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
        db.add(user)
        db.commit()

    credentials = await start_session(db, request, user)

    log_auth_event(
        request, "auth.login.success",
        user_id=str(user.id), session_id=str(credentials.session.id),
    )
    return user, credentials


async def register(db: DBSession, request: Request, body: RegisterRequest) -> Tuple[User, IssuedCredentials]:
    """
    Create a local account and sign it in.

    Raises:
        DuplicateAccountError: Email or username already registered
    """
    if find_user_by_email(db, body.email) is not None:
        log_auth_event(request, "auth.register.failure", level="warning", reason="duplicate_email")
        raise DuplicateAccountError("Email already registered")

    if find_user_by_username(db, body.username) is not None:
        log_auth_event(request, "auth.register.failure", level="warning", reason="duplicate_username")
        raise DuplicateAccountError("Username already taken")

    now = utcnow()
    user = User(
        email=body.email,
        username=body.username,
        password_hash=hash_password(body.password),
        first_name=body.first_name,
        last_name=body.last_name,
        usage_period_start=now,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    credentials = await start_session(db, request, user)

    log_auth_event(
        request, "auth.register.success",
        user_id=str(user.id), session_id=str(credentials.session.id),
    )
    return user, credentials


async def refresh(db: DBSession, request: Request, refresh_secret: Optional[str]) -> Tuple[User, IssuedCredentials]:
    """
    Trade a refresh secret for a new access token and refresh secret.

    Raises:
        UnauthorizedError: Missing, unknown, expired, revoked or reused secret
    """
    if not refresh_secret:
        raise UnauthorizedError("Missing refresh token")

    try:
        user, session, _, new_secret = await refresh_service.rotate_refresh_token(
            db,
            refresh_secret,
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
        )
    except UnauthorizedError as e:
        log_auth_event(request, "auth.refresh.failure", level="warning", reason=e.detail)
        raise

    if session is not None:
        session.update_activity(ip_address=get_client_ip(request))
        db.add(session)
        db.commit()

    log_auth_event(
        request, "auth.refresh.success",
        user_id=str(user.id), session_id=str(session.id) if session else None,
    )
    return user, IssuedCredentials(
        access_token=create_access_token(user, session_id=session.id if session else None),
        refresh_token=new_secret,
        expires_in=get_token_expiry_seconds(),
        session=session,
    )


async def logout(
    db: DBSession,
    request: Request,
    context: AuthContext,
    refresh_secret: Optional[str] = None,
    all_sessions: bool = False,
) -> int:
    """
    Revoke what the caller presented. Never fails: an anonymous caller
    just gets their cookies cleared by the transport.

    Returns:
        Number of sessions revoked
    """
    revoked = 0

    if refresh_secret:
        await refresh_service.revoke_refresh_token(db, refresh_secret, reason="logout")

    if context.user is not None and all_sessions:
        revoked = await session_service.revoke_all_user_sessions(db, context.user.id, reason="logout_all")
        await refresh_service.revoke_all_user_refresh_tokens(db, context.user.id, reason="logout_all")
    else:
        session_id = context.session_id
        if session_id is not None and await session_service.revoke_session(db, session_id, reason="logout"):
            revoked = 1
            await refresh_service.revoke_session_refresh_tokens(db, session_id, reason="logout")

    log_auth_event(
        request, "auth.logout",
        user_id=str(context.user.id) if context.user else None,
        sessions_revoked=revoked,
        all_sessions=all_sessions,
    )
    return revoked


async def external_login(db: DBSession, request: Request, profile: ExternalProfile) -> Tuple[User, IssuedCredentials]:
    """
    Sign in with a verified external profile, creating the account if needed.

    Raises:
        UnauthorizedError: The matching account is suspended, banned or inactive
    """
    user = await resolve_external_identity(db, profile.email, profile)

    if user.status != UserStatus.ACTIVE or not user.is_active:
        log_auth_event(
            request, "auth.oauth.failure",
            user_id=str(user.id), level="warning", reason="account_inactive",
        )
        raise UnauthorizedError("Account is not active")

    credentials = await start_session(db, request, user)

    log_auth_event(
        request, "auth.oauth.success",
        user_id=str(user.id), provider=profile.provider, session_id=str(credentials.session.id),
    )
    return user, credentials


def read_refresh_secret(request: Request, body_secret: Optional[str] = None) -> Optional[str]:
    return request.cookies.get(settings.AUTH_REFRESH_COOKIE_NAME) or body_secret
