"""
BetScope - Authentication Routes

API endpoints for authentication:
- POST   /auth/login                 - Authenticate, set cookies
- POST   /auth/register              - Create account, set cookies
- POST   /auth/refresh               - Rotate refresh token, set cookies
- POST   /auth/logout                - Revoke session, clear cookies
- GET    /auth/me                    - Current user
- GET    /auth/google                - Start Google sign-in
- GET    /auth/google/callback       - Finish Google sign-in
- GET    /auth/sessions              - List active sessions
- DELETE /auth/sessions/{id}         - Revoke a session
- POST   /auth/sessions/revoke-all   - Revoke every session
- GET    /auth/devices               - List devices
- POST   /auth/devices/{id}/trust    - Trust a device
- POST   /auth/devices/{id}/block    - Block a device

All operations are written to the auth event log.
"""

import secrets
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import RedirectResponse
from sqlmodel import Session as DBSession

from betscope.auth import devices as device_service
from betscope.auth import refresh as refresh_service
from betscope.auth import service as auth_service
from betscope.auth import sessions as session_service
from betscope.auth.cookies import clear_oauth_state_cookie, set_oauth_state_cookie
from betscope.auth.dependencies import AuthContext, authorize, get_db
from betscope.auth.errors import AuthError, ExternalIdentityError, ForbiddenError, NotFoundError
from betscope.auth.events import log_auth_event
from betscope.auth.models import Device, Role
from betscope.auth.oauth import GoogleOAuthProvider
from betscope.auth.schemas import (
    ActiveSessionsResponse,
    AuthResponse,
    BlockDeviceRequest,
    DeviceInfo,
    DevicesResponse,
    ErrorResponse,
    LoginRequest,
    LogoutRequest,
    LogoutResponse,
    RefreshRequest,
    RegisterRequest,
    SessionInfo,
    UserResponse,
)
from betscope.config import settings
from betscope.gateway.policy import Public, RequiresAuth


router = APIRouter(prefix="/auth", tags=["authentication"])


def _auth_response(response: Response, user, credentials, message: str) -> AuthResponse:
    auth_service.apply_credentials(response, credentials)
    return AuthResponse(
        user=UserResponse.from_user(user),
        access_token=credentials.access_token,
        expires_in=credentials.expires_in,
        message=message,
    )


def _device_info(device: Device) -> DeviceInfo:
    return DeviceInfo(
        id=device.id,
        name=device.display_name,
        type=device.type.value,
        status=device.status.value,
        last_seen_ip=device.last_seen_ip,
        location=device.location,
        last_seen_at=device.last_seen_at,
        trusted_at=device.trusted_at,
        blocked_at=device.blocked_at,
        blocked_reason=device.blocked_reason,
        created_at=device.created_at,
    )


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
    summary="Authenticate user and create session",
)
async def login(
    request: Request,
    response: Response,
    credentials: LoginRequest,
    auth: AuthContext = Depends(authorize(Public())),
    db: DBSession = Depends(get_db),
):
    """
    Authenticate user with email and password.

    On success the access token and refresh token are set as httpOnly
    cookies; the access token is also returned for header-based clients.

    Raises:
        401: Invalid credentials or inactive account
        403: Device is blocked
    """
    user, issued = await auth_service.login(db, request, credentials.email, credentials.password)
    return _auth_response(response, user, issued, "Login successful")


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
    summary="Create account and sign in",
)
async def register(
    request: Request,
    response: Response,
    body: RegisterRequest,
    auth: AuthContext = Depends(authorize(Public())),
    db: DBSession = Depends(get_db),
):
    """
    Register a new account. Email and username must both be unused.

    Raises:
        409: Email or username already registered
    """
    user, issued = await auth_service.register(db, request, body)
    return _auth_response(response, user, issued, "Registration successful")


@router.post(
    "/refresh",
    response_model=AuthResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Rotate refresh token and issue a new access token",
)
async def refresh(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = None,
    auth: AuthContext = Depends(authorize(Public())),
    db: DBSession = Depends(get_db),
):
    """
    Redeem the refresh token (cookie, or body for non-browser clients).

    Each refresh token works once. Presenting a used one revokes every
    session of its owner.
    """
    secret = auth_service.read_refresh_secret(request, body.refresh_token if body else None)
    user, issued = await auth_service.refresh(db, request, secret)
    return _auth_response(response, user, issued, "Token refreshed")


@router.post(
    "/logout",
    response_model=LogoutResponse,
    summary="Revoke current session and clear cookies",
)
async def logout(
    request: Request,
    response: Response,
    body: Optional[LogoutRequest] = None,
    auth: AuthContext = Depends(authorize(Public())),
    db: DBSession = Depends(get_db),
):
    """
    Log out. Always succeeds and always clears the auth cookies.

    Args:
        body: Optional. Set all_sessions=true to logout everywhere.
    """
    revoked = await auth_service.logout(
        db,
        request,
        auth,
        refresh_secret=auth_service.read_refresh_secret(request),
        all_sessions=bool(body and body.all_sessions),
    )
    auth_service.clear_credentials(response)
    return LogoutResponse(message="Logged out", sessions_revoked=revoked)


@router.get(
    "/me",
    response_model=UserResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Get current user information",
)
async def get_me(auth: AuthContext = Depends(authorize(RequiresAuth()))):
    """Get the current authenticated user's profile."""
    return UserResponse.from_user(auth.user)


def get_oauth_provider(request: Request) -> GoogleOAuthProvider:
    return request.app.state.google_oauth


@router.get(
    "/google",
    status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    responses={503: {"model": ErrorResponse}},
    summary="Start Google sign-in",
)
async def google_login(
    request: Request,
    auth: AuthContext = Depends(authorize(Public())),
    provider: GoogleOAuthProvider = Depends(get_oauth_provider),
):
    """Redirect to Google's consent screen."""
    state = secrets.token_urlsafe(24)
    redirect = RedirectResponse(provider.authorization_url(state), status_code=status.HTTP_307_TEMPORARY_REDIRECT)
    set_oauth_state_cookie(redirect, state)
    return redirect


@router.get(
    "/google/callback",
    status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    summary="Finish Google sign-in",
)
async def google_callback(
    request: Request,
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
    auth: AuthContext = Depends(authorize(Public())),
    provider: GoogleOAuthProvider = Depends(get_oauth_provider),
    db: DBSession = Depends(get_db),
):
    """
    Exchange the authorization code, sign the user in and redirect to
    FRONTEND_URL/auth/callback. The token travels only in cookies.

    Failures redirect to the same page with ?error=<code>.
    """
    frontend_callback = f"{settings.FRONTEND_URL.rstrip('/')}/auth/callback"
    expected_state = request.cookies.get(settings.OAUTH_STATE_COOKIE_NAME)

    def failure(reason: str) -> RedirectResponse:
        log_auth_event(request, "auth.oauth.failure", level="warning", reason=reason)
        redirect = RedirectResponse(f"{frontend_callback}?error={reason}", status_code=status.HTTP_307_TEMPORARY_REDIRECT)
        clear_oauth_state_cookie(redirect)
        return redirect

    if error:
        return failure("access_denied")
    if not code or not state or not expected_state or not secrets.compare_digest(state, expected_state):
        return failure("invalid_state")

    try:
        profile = await provider.exchange_code(code)
        user, issued = await auth_service.external_login(db, request, profile)
    except ExternalIdentityError:
        return failure("provider_error")
    except AuthError as e:
        return failure(e.error_code)

    redirect = RedirectResponse(frontend_callback, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
    auth_service.apply_credentials(redirect, issued)
    clear_oauth_state_cookie(redirect)
    return redirect


@router.get(
    "/sessions",
    response_model=ActiveSessionsResponse,
    summary="List active sessions",
)
async def list_sessions(
    auth: AuthContext = Depends(authorize(RequiresAuth())),
    db: DBSession = Depends(get_db),
):
    """List all active sessions for the current user."""
    current_id = auth.session_id
    active_sessions = await session_service.get_active_sessions(db, auth.user.id)

    session_list = [
        SessionInfo(
            id=s.id,
            device_id=s.device_id,
            status=s.status.value,
            ip_address=s.ip_address,
            user_agent=s.user_agent,
            location=s.location,
            last_active_at=s.last_active_at,
            expires_at=s.expires_at,
            created_at=s.created_at,
            is_current=(s.id == current_id),
        )
        for s in active_sessions
    ]

    return ActiveSessionsResponse(sessions=session_list, total=len(session_list))


@router.post(
    "/sessions/revoke-all",
    response_model=LogoutResponse,
    summary="Revoke every session of the current user",
)
async def revoke_all_sessions(
    request: Request,
    response: Response,
    auth: AuthContext = Depends(authorize(RequiresAuth())),
    db: DBSession = Depends(get_db),
):
    """Sign out everywhere, including this client."""
    count = await session_service.revoke_all_user_sessions(db, auth.user.id, reason="revoke_all")
    await refresh_service.revoke_all_user_refresh_tokens(db, auth.user.id, reason="revoke_all")

    log_auth_event(request, "auth.session.revoked_all", user_id=str(auth.user.id), sessions_revoked=count)

    auth_service.clear_credentials(response)
    return LogoutResponse(message="All sessions revoked", sessions_revoked=count)


@router.delete(
    "/sessions/{target_session_id}",
    response_model=LogoutResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Revoke a specific session",
)
async def revoke_session(
    request: Request,
    target_session_id: UUID,
    auth: AuthContext = Depends(authorize(RequiresAuth())),
    db: DBSession = Depends(get_db),
):
    """
    Revoke a specific session.

    Users can only revoke their own sessions.
    Admins can revoke any session.
    """
    session = await session_service.get_session(db, target_session_id)
    if session is None:
        raise NotFoundError("Session not found")

    if session.user_id != auth.user.id and auth.user.role != Role.ADMIN:
        raise ForbiddenError("Cannot revoke another user's session")

    revoked = await session_service.revoke_session(db, target_session_id, reason="revoked_by_user")
    await refresh_service.revoke_session_refresh_tokens(db, target_session_id, reason="revoked_by_user")

    log_auth_event(
        request, "auth.session.revoked",
        user_id=str(auth.user.id),
        target_session_id=str(target_session_id),
        target_user_id=str(session.user_id),
    )

    return LogoutResponse(message="Session revoked", sessions_revoked=int(revoked))


@router.get(
    "/devices",
    response_model=DevicesResponse,
    summary="List devices",
)
async def list_devices(
    auth: AuthContext = Depends(authorize(RequiresAuth())),
    db: DBSession = Depends(get_db),
):
    devices = await device_service.get_user_devices(db, auth.user.id)
    return DevicesResponse(devices=[_device_info(d) for d in devices], total=len(devices))


@router.post(
    "/devices/{device_id}/trust",
    response_model=DeviceInfo,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Trust a device",
)
async def trust_device(
    request: Request,
    device_id: UUID,
    auth: AuthContext = Depends(authorize(RequiresAuth())),
    db: DBSession = Depends(get_db),
):
    """Mark a device as trusted. Blocked devices stay blocked (409)."""
    device = await device_service.get_owned_device(db, device_id, auth.user)
    await device_service.trust_device(db, device)

    log_auth_event(request, "auth.device.trusted", user_id=str(auth.user.id), device_id=str(device.id))
    return _device_info(device)


@router.post(
    "/devices/{device_id}/block",
    response_model=DeviceInfo,
    responses={404: {"model": ErrorResponse}},
    summary="Block a device",
)
async def block_device(
    request: Request,
    device_id: UUID,
    body: Optional[BlockDeviceRequest] = None,
    auth: AuthContext = Depends(authorize(RequiresAuth())),
    db: DBSession = Depends(get_db),
):
    """Block a device permanently and revoke every session opened from it."""
    device = await device_service.get_owned_device(db, device_id, auth.user)
    revoked = await device_service.block_device(db, device, reason=body.reason if body else None)

    log_auth_event(
        request, "auth.device.blocked",
        user_id=str(auth.user.id), device_id=str(device.id), sessions_revoked=revoked,
    )
    return _device_info(device)
