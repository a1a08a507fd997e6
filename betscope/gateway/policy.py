"""
BetScope - Route Policies

Every handler declares who may call it with one of three policies:

    Public()                          anyone, anonymous included
    RequiresAuth()                    any active, signed-in user
    RequiresRole(Role.ADMIN, ...)     signed-in user holding one of the roles

Policies are plain values. REST routes attach them through
betscope.auth.dependencies.authorize(); graph operations list them in
their operation table. Both are checked before the handler runs.

Security:
- Deny-by-default: RequiresRole with no matching role is 403
- No role inherits from another; list every allowed role
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Union

from betscope.auth.errors import ForbiddenError, UnauthorizedError
from betscope.auth.models import Role, User


@dataclass(frozen=True)
class Public:
    """No authentication required. Bad tokens are ignored."""


@dataclass(frozen=True)
class RequiresAuth:
    """Any authenticated user."""


@dataclass(frozen=True, init=False)
class RequiresRole:
    """Authenticated user whose role is one of `roles`."""
    roles: FrozenSet[Role] = field(default_factory=frozenset)

    def __init__(self, *roles: Role):
        if not roles:
            raise ValueError("RequiresRole needs at least one role")
        object.__setattr__(self, "roles", frozenset(roles))


RoutePolicy = Union[Public, RequiresAuth, RequiresRole]


def requires_identity(policy: RoutePolicy) -> bool:
    return not isinstance(policy, Public)


def check_policy(policy: RoutePolicy, user: Optional[User]) -> None:
    """
    Enforce a policy for the resolved user (None for anonymous).

    Raises:
        UnauthorizedError: Policy needs a user and there is none
        ForbiddenError: User lacks every role the policy accepts
    """
    if isinstance(policy, Public):
        return
    if user is None:
        raise UnauthorizedError()
    if isinstance(policy, RequiresRole) and user.role not in policy.roles:
        allowed = ", ".join(sorted(role.value for role in policy.roles))
        raise ForbiddenError(f"Requires role: {allowed}")
