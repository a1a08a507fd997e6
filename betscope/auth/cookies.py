"""
BetScope - Auth Cookie Policy

Decides how tokens travel to the browser. Every cookie is httpOnly and is
cleared with exactly the attributes it was set with, otherwise browsers
keep the old value. Cookies are Secure in production and whenever
SameSite is none. The OAuth state cookie is always SameSite=lax.
"""

from typing import Optional

from starlette.requests import Request
from starlette.responses import Response

from betscope.auth.durations import parse_duration
from betscope.config import settings


SAMESITE_VALUES = {"lax", "strict", "none"}

REFRESH_COOKIE_PATH = "/auth"
OAUTH_STATE_COOKIE_PATH = "/auth/google"
OAUTH_STATE_MAX_AGE = 600


def samesite_policy() -> str:
    """Configured SameSite value; anything outside the allow-list means lax."""
    value = (settings.AUTH_COOKIE_SAMESITE or "lax").strip().lower()
    return value if value in SAMESITE_VALUES else "lax"


def _cookie_attributes(path: str = "/", samesite: Optional[str] = None) -> dict:
    samesite = samesite or samesite_policy()
    return {
        "httponly": True,
        # Browsers drop SameSite=None cookies that are not Secure
        "secure": settings.is_production or samesite == "none",
        "samesite": samesite,
        "path": path,
        "domain": settings.AUTH_COOKIE_DOMAIN or None,
    }


def set_auth_cookie(response: Response, token: str) -> None:
    """Attach the signed access token; Max-Age follows JWT_EXPIRES_IN."""
    max_age = parse_duration(settings.JWT_EXPIRES_IN)
    response.set_cookie(
        settings.AUTH_COOKIE_NAME,
        token,
        max_age=int(max_age.total_seconds()),
        **_cookie_attributes(),
    )


def clear_auth_cookie(response: Response) -> None:
    """Expire the access token cookie. Safe to call when none was set."""
    response.delete_cookie(settings.AUTH_COOKIE_NAME, **_cookie_attributes())


def set_refresh_cookie(response: Response, secret: str) -> None:
    max_age = parse_duration(settings.REFRESH_TOKEN_EXPIRES_IN)
    response.set_cookie(
        settings.AUTH_REFRESH_COOKIE_NAME,
        secret,
        max_age=int(max_age.total_seconds()),
        **_cookie_attributes(REFRESH_COOKIE_PATH),
    )


def clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(settings.AUTH_REFRESH_COOKIE_NAME, **_cookie_attributes(REFRESH_COOKIE_PATH))


def _oauth_state_attributes() -> dict:
    # Google returns by cross-site top-level navigation; strict would withhold the cookie
    return _cookie_attributes(OAUTH_STATE_COOKIE_PATH, samesite="lax")


def set_oauth_state_cookie(response: Response, state: str) -> None:
    response.set_cookie(
        settings.OAUTH_STATE_COOKIE_NAME,
        state,
        max_age=OAUTH_STATE_MAX_AGE,
        **_oauth_state_attributes(),
    )


def clear_oauth_state_cookie(response: Response) -> None:
    response.delete_cookie(settings.OAUTH_STATE_COOKIE_NAME, **_oauth_state_attributes())


def extract_token(request: Request) -> Optional[str]:
    """
    Find the access token on a request.

    Priority:
        1. The auth cookie
        2. Authorization: Bearer <token>
        3. Authorization: <token> when it looks like a JWT (three segments)
    """
    token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if token:
        return token

    header = request.headers.get("Authorization")
    if not header:
        return None
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    if len(header.split(".")) == 3:
        return header.strip()
    return None
