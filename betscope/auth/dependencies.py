"""
BetScope - Security Dependencies

FastAPI dependencies for authentication and authorization.

Usage:
    @router.get("/me")
    async def me(auth: AuthContext = Depends(authorize(RequiresAuth()))):
        ...

    @router.get("/users")
    async def list_users(auth: AuthContext = Depends(authorize(RequiresRole(Role.ADMIN)))):
        ...

Token resolution:
1. Extract the token (auth cookie, then Authorization header)
2. Validate JWT signature and expiry
3. Load the user; it must exist and be active
4. With AUTH_SESSION_CHECK, the session named by the sid claim must be active
5. Attach the user to request.state.user

Public routes treat any failure as anonymous; every other policy turns it
into a 401.
"""

from dataclasses import dataclass
from typing import Generator, Optional
from uuid import UUID

from fastapi import Depends, Request
from sqlmodel import Session as DBSession

from betscope.auth import sessions as session_service
from betscope.auth.cookies import extract_token
from betscope.auth.errors import UnauthorizedError
from betscope.auth.events import get_client_ip, log_auth_event
from betscope.auth.models import Session, User
from betscope.auth.tokens import InvalidTokenError, TokenPayload, verify_access_token
from betscope.config import settings
from betscope.gateway.policy import RoutePolicy, check_policy, requires_identity


@dataclass
class AuthContext:
    """Identity resolved for one request. All fields are None when anonymous."""
    user: Optional[User] = None
    claims: Optional[TokenPayload] = None
    session: Optional[Session] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def session_id(self) -> Optional[UUID]:
        """Current session; read from the sid claim when session checks are off."""
        if self.session is not None:
            return self.session.id
        if self.claims is not None and self.claims.sid:
            try:
                return UUID(self.claims.sid)
            except ValueError:
                return None
        return None


def get_db(request: Request) -> Generator[DBSession, None, None]:
    """Database session from app state, closed when the request ends."""
    db = request.app.state.db_session_factory()
    try:
        yield db
    finally:
        db.close()


async def _resolve(request: Request, db: DBSession, token: str) -> AuthContext:
    try:
        claims = verify_access_token(token)
    except InvalidTokenError:
        raise UnauthorizedError("Invalid or expired token")

    try:
        user_id = UUID(claims.sub)
    except ValueError:
        raise UnauthorizedError("Invalid or expired token")

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise UnauthorizedError("User not found or inactive")

    session = None
    if settings.AUTH_SESSION_CHECK and claims.sid:
        try:
            session_id = UUID(claims.sid)
        except ValueError:
            raise UnauthorizedError("Invalid session")
        session = await session_service.validate_session(
            db, session_id, user.id, ip_address=get_client_ip(request)
        )
        if session is None:
            raise UnauthorizedError("Session expired or revoked")

    return AuthContext(user=user, claims=claims, session=session)


async def authenticate_request(request: Request, db: DBSession, required: bool = True) -> AuthContext:
    """
    Resolve the identity behind a request.

    Args:
        request: Incoming request
        db: Database session
        required: Raise on a bad token instead of continuing anonymously

    Returns:
        AuthContext (anonymous when no token, or a bad token and not required)

    Raises:
        UnauthorizedError: Bad token, unknown or inactive user, dead session
    """
    token = extract_token(request)
    context = AuthContext()

    if token:
        try:
            context = await _resolve(request, db, token)
        except UnauthorizedError as e:
            log_auth_event(request, "auth.token.rejected", level="warning", reason=e.detail)
            if required:
                raise

    request.state.user = context.user
    request.state.auth = context
    return context


def authorize(policy: RoutePolicy):
    """
    Build the dependency that enforces `policy` before the handler runs.

    The returned dependency yields the AuthContext, so handlers can read the
    current user, claims and session from it.
    """
    async def dependency(request: Request, db: DBSession = Depends(get_db)) -> AuthContext:
        context = await authenticate_request(request, db, required=requires_identity(policy))
        check_policy(policy, context.user)
        return context

    dependency.policy = policy
    return dependency
