"""
BetScope - Authentication Event Log

Every login, logout, refresh and lifecycle change is written as one
structured log line with a stable event name ("auth.login.success", ...).
"""

from typing import Optional

from starlette.requests import Request

from betscope.logging import get_logger


logger = get_logger("betscope.auth.events")


def get_client_ip(request: Request) -> str:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_user_agent(request: Request) -> str:
    """Extract user agent from request."""
    return request.headers.get("User-Agent", "unknown")[:512]


def log_auth_event(
    request: Optional[Request],
    event_type: str,
    user_id: Optional[str] = None,
    level: str = "info",
    **details,
) -> None:
    """
    Log an authentication event.

    Args:
        request: Current request, for client ip and user agent
        event_type: Dotted event name
        user_id: Acting or affected user, if known
        level: Log method to use (info, warning, error)
        **details: Extra fields; secret-looking keys are redacted by the logger
    """
    fields = dict(details)
    fields["user_id"] = user_id or "anonymous"
    if request is not None:
        fields["ip"] = get_client_ip(request)
        fields["user_agent"] = get_user_agent(request)[:256]

    getattr(logger, level)(event_type, **fields)
