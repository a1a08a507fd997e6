"""
BetScope - User Routes

Self-service:
- PATCH /users/me               - Update profile
- POST  /users/me/password      - Change password
- PUT   /users/me/preferences   - Merge preferences
- GET   /users/me/usage         - Monthly quota usage
- POST  /users/me/usage/{kind}  - Count one prediction or chat message

Staff (ADMIN, MODERATOR):
- GET   /users                  - Paged user list
- GET   /users/stats            - Account counts
- GET   /users/{id}             - One user

Admin only:
- POST  /users/{id}/activate | suspend | ban
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlmodel import Session as DBSession

from betscope.auth.dependencies import AuthContext, authorize, get_db
from betscope.auth.errors import QuotaExceededError
from betscope.auth.events import log_auth_event
from betscope.auth.models import Role, User, UserStatus
from betscope.auth.schemas import ErrorResponse
from betscope.gateway.policy import RequiresAuth, RequiresRole
from betscope.users import service as user_service
from betscope.users.service import UsageKind
from betscope.users.schemas import (
    ChangePasswordRequest,
    MessageResponse,
    PreferencesRequest,
    ProfileResponse,
    UpdateProfileRequest,
    UsageResponse,
    UserListResponse,
    UserStatsResponse,
)


router = APIRouter(prefix="/users", tags=["users"])

STAFF = RequiresRole(Role.ADMIN, Role.MODERATOR)
ADMIN_ONLY = RequiresRole(Role.ADMIN)


@router.patch(
    "/me",
    response_model=ProfileResponse,
    responses={409: {"model": ErrorResponse}},
    summary="Update own profile",
)
async def update_me(
    body: UpdateProfileRequest,
    auth: AuthContext = Depends(authorize(RequiresAuth())),
    db: DBSession = Depends(get_db),
):
    user = await user_service.update_profile(db, auth.user, body)
    return ProfileResponse.from_user(user)


@router.post(
    "/me/password",
    response_model=MessageResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Change own password",
)
async def change_password(
    request: Request,
    body: ChangePasswordRequest,
    auth: AuthContext = Depends(authorize(RequiresAuth())),
    db: DBSession = Depends(get_db),
):
    """Change password. Other sessions are signed out; this one stays."""
    revoked = await user_service.change_password(
        db, auth.user, body.current_password, body.new_password, keep_session_id=auth.session_id
    )
    log_auth_event(request, "auth.password.changed", user_id=str(auth.user.id), sessions_revoked=revoked)
    return MessageResponse(message="Password changed", sessions_revoked=revoked)


@router.put(
    "/me/preferences",
    response_model=ProfileResponse,
    summary="Merge own preferences",
)
async def update_preferences(
    body: PreferencesRequest,
    auth: AuthContext = Depends(authorize(RequiresAuth())),
    db: DBSession = Depends(get_db),
):
    user = await user_service.update_preferences(db, auth.user, body.preferences)
    return ProfileResponse.from_user(user)


@router.get(
    "/me/usage",
    response_model=UsageResponse,
    summary="Monthly quota usage",
)
async def get_usage(
    auth: AuthContext = Depends(authorize(RequiresAuth())),
    db: DBSession = Depends(get_db),
):
    user = await user_service.get_usage(db, auth.user)
    return _usage_response(user)


@router.post(
    "/me/usage/{kind}",
    response_model=UsageResponse,
    responses={429: {"model": ErrorResponse}},
    summary="Count one prediction or chat message",
)
async def record_usage(
    kind: UsageKind,
    auth: AuthContext = Depends(authorize(RequiresAuth())),
    db: DBSession = Depends(get_db),
):
    """
    Count one unit of usage. The prediction and chat features call this
    before serving a request and stop on 429.
    """
    if not await user_service.record_usage(db, auth.user, kind):
        raise QuotaExceededError()
    return _usage_response(auth.user)


def _usage_response(user: User) -> UsageResponse:
    prediction_limit, chat_limit = user.usage_limits()
    return UsageResponse(
        subscription_plan=user.subscription_plan.value,
        monthly_predictions=user.monthly_predictions,
        prediction_limit=prediction_limit,
        monthly_chat_messages=user.monthly_chat_messages,
        chat_message_limit=chat_limit,
        usage_period_start=user.usage_period_start,
        usage_period_resets_at=user_service.usage_period_resets_at(user),
    )


@router.get(
    "",
    response_model=UserListResponse,
    responses={403: {"model": ErrorResponse}},
    summary="List users (staff)",
)
async def list_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    auth: AuthContext = Depends(authorize(STAFF)),
    db: DBSession = Depends(get_db),
):
    users, total = await user_service.list_users(db, page=page, limit=limit)
    return UserListResponse(
        users=[ProfileResponse.from_user(u) for u in users],
        total=total,
        page=page,
        limit=limit,
    )


@router.get(
    "/stats",
    response_model=UserStatsResponse,
    responses={403: {"model": ErrorResponse}},
    summary="Account counts (staff)",
)
async def user_stats(
    auth: AuthContext = Depends(authorize(STAFF)),
    db: DBSession = Depends(get_db),
):
    return UserStatsResponse(**await user_service.get_user_stats(db))


@router.get(
    "/{user_id}",
    response_model=ProfileResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Get a user (staff)",
)
async def get_user(
    user_id: UUID,
    auth: AuthContext = Depends(authorize(STAFF)),
    db: DBSession = Depends(get_db),
):
    return ProfileResponse.from_user(await user_service.get_user(db, user_id))


async def _change_status(request: Request, db: DBSession, auth: AuthContext, user_id: UUID, new_status: UserStatus):
    user, revoked = await user_service.set_status(db, user_id, new_status)
    log_auth_event(
        request, "auth.user.status_changed",
        user_id=str(auth.user.id),
        target_user_id=str(user.id),
        status=new_status.value,
        sessions_revoked=revoked,
    )
    return ProfileResponse.from_user(user)


@router.post("/{user_id}/activate", response_model=ProfileResponse, summary="Activate a user (admin)")
async def activate_user(
    request: Request,
    user_id: UUID,
    auth: AuthContext = Depends(authorize(ADMIN_ONLY)),
    db: DBSession = Depends(get_db),
):
    return await _change_status(request, db, auth, user_id, UserStatus.ACTIVE)


@router.post("/{user_id}/suspend", response_model=ProfileResponse, summary="Suspend a user (admin)")
async def suspend_user(
    request: Request,
    user_id: UUID,
    auth: AuthContext = Depends(authorize(ADMIN_ONLY)),
    db: DBSession = Depends(get_db),
):
    return await _change_status(request, db, auth, user_id, UserStatus.SUSPENDED)


@router.post("/{user_id}/ban", response_model=ProfileResponse, summary="Ban a user (admin)")
async def ban_user(
    request: Request,
    user_id: UUID,
    auth: AuthContext = Depends(authorize(ADMIN_ONLY)),
    db: DBSession = Depends(get_db),
):
    return await _change_status(request, db, auth, user_id, UserStatus.BANNED)
