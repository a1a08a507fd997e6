"""
BetScope - Graph Endpoint

POST /graphql with {"operation": "<name>", "input": {...}} runs one named
operation. Operations mirror the REST surface and have the same cookie
side effects, but failures come back inside the body instead of as HTTP
status codes:

    {"data": {...}}
    {"data": null, "errors": [{"message": "...", "code": "unauthorized"}]}

Each operation is declared with its route policy, which is checked before
the handler runs.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field, ValidationError
from sqlmodel import Session as DBSession

from betscope.auth import service as auth_service
from betscope.auth.dependencies import AuthContext, authenticate_request, get_db
from betscope.auth.errors import AuthError
from betscope.auth.schemas import LoginRequest, RegisterRequest, UserResponse
from betscope.gateway.policy import Public, RequiresAuth, RoutePolicy, check_policy, requires_identity
from betscope.logging import get_logger
from betscope.users import service as user_service
from betscope.users.schemas import ChangePasswordRequest, ProfileResponse, UpdateProfileRequest


logger = get_logger(__name__)

router = APIRouter(tags=["graph"])


class GraphRequest(BaseModel):
    operation: str = Field(..., description="Operation name, e.g. login or me")
    input: Optional[Dict[str, Any]] = Field(default=None, description="Operation arguments")


class GraphError(BaseModel):
    message: str
    code: str


class GraphResponse(BaseModel):
    data: Optional[Dict[str, Any]] = None
    errors: Optional[List[GraphError]] = None


@dataclass
class GraphContext:
    request: Request
    response: Response
    db: DBSession
    auth: AuthContext


Handler = Callable[[GraphContext, Optional[BaseModel]], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class Operation:
    policy: RoutePolicy
    handler: Handler
    input_model: Optional[Type[BaseModel]] = None


def _auth_payload(user, issued, message: str) -> Dict[str, Any]:
    return {
        "user": UserResponse.from_user(user).model_dump(mode="json"),
        "accessToken": issued.access_token,
        "expiresIn": issued.expires_in,
        "message": message,
    }


async def _login(ctx: GraphContext, payload: LoginRequest) -> Dict[str, Any]:
    user, issued = await auth_service.login(ctx.db, ctx.request, payload.email, payload.password)
    auth_service.apply_credentials(ctx.response, issued)
    return _auth_payload(user, issued, "Login successful")


async def _register(ctx: GraphContext, payload: RegisterRequest) -> Dict[str, Any]:
    user, issued = await auth_service.register(ctx.db, ctx.request, payload)
    auth_service.apply_credentials(ctx.response, issued)
    return _auth_payload(user, issued, "Registration successful")


async def _logout(ctx: GraphContext, payload: None) -> Dict[str, Any]:
    revoked = await auth_service.logout(
        ctx.db, ctx.request, ctx.auth, refresh_secret=auth_service.read_refresh_secret(ctx.request)
    )
    auth_service.clear_credentials(ctx.response)
    return {"success": True, "sessionsRevoked": revoked}


async def _me(ctx: GraphContext, payload: None) -> Dict[str, Any]:
    return {"user": ProfileResponse.from_user(ctx.auth.user).model_dump(mode="json")}


async def _update_profile(ctx: GraphContext, payload: UpdateProfileRequest) -> Dict[str, Any]:
    user = await user_service.update_profile(ctx.db, ctx.auth.user, payload)
    return {"user": ProfileResponse.from_user(user).model_dump(mode="json")}


async def _change_password(ctx: GraphContext, payload: ChangePasswordRequest) -> Dict[str, Any]:
    revoked = await user_service.change_password(
        ctx.db,
        ctx.auth.user,
        payload.current_password,
        payload.new_password,
        keep_session_id=ctx.auth.session_id,
    )
    return {"success": True, "sessionsRevoked": revoked}


OPERATIONS: Dict[str, Operation] = {
    "login": Operation(Public(), _login, LoginRequest),
    "register": Operation(Public(), _register, RegisterRequest),
    "logout": Operation(Public(), _logout),
    "me": Operation(RequiresAuth(), _me),
    "updateProfile": Operation(RequiresAuth(), _update_profile, UpdateProfileRequest),
    "changePassword": Operation(RequiresAuth(), _change_password, ChangePasswordRequest),
}


def _failure(message: str, code: str) -> Dict[str, Any]:
    return {"data": None, "errors": [GraphError(message=message, code=code).model_dump()]}


@router.post("/graphql", responses={200: {"model": GraphResponse}}, summary="Run a graph operation")
async def execute(
    request: Request,
    response: Response,
    body: GraphRequest,
    db: DBSession = Depends(get_db),
):
    """
    Dispatch one operation. Always answers 200; check `errors`.
    """
    operation = OPERATIONS.get(body.operation)
    if operation is None:
        return _failure(f"Unknown operation: {body.operation}", "unknown_operation")

    try:
        auth = await authenticate_request(request, db, required=requires_identity(operation.policy))
        check_policy(operation.policy, auth.user)

        payload = None
        if operation.input_model is not None:
            payload = operation.input_model(**(body.input or {}))

        data = await operation.handler(GraphContext(request, response, db, auth), payload)
    except AuthError as e:
        logger.info("graph.operation_failed", operation=body.operation, code=e.error_code)
        return _failure(e.detail, e.error_code)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        field_path = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "Invalid input")
        return _failure(f"{field_path}: {message}" if field_path else message, "bad_user_input")

    return {"data": data}
