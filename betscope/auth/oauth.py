"""
BetScope - Google Sign-In

Authorization-code flow against Google. The provider is built once at
startup and stored on app.state; missing credentials leave it disabled
(with a warning) instead of failing the boot.

The anti-forgery state travels in a short-lived httpOnly cookie and must
match the state Google echoes back to the callback.
"""

from typing import Optional
from urllib.parse import urlencode

import httpx

from betscope.auth.credentials import ExternalProfile
from betscope.auth.errors import ExternalIdentityError
from betscope.config import Settings
from betscope.logging import get_logger


logger = get_logger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_SCOPE = "openid email profile"

# Values shipped in example .env files
PLACEHOLDER_CREDENTIALS = {"", "dummy", "your-google-client-id", "your-google-client-secret"}


class GoogleOAuthProvider:
    """
    Google OAuth client.

    Args:
        client_id / client_secret: OAuth application credentials
        callback_url: Redirect URI registered with Google
        transport: Optional httpx transport (tests use httpx.MockTransport)
        timeout: Seconds allowed for each call to Google
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        callback_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.callback_url = callback_url
        self.transport = transport
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return (
            self.client_id not in PLACEHOLDER_CREDENTIALS
            and self.client_secret not in PLACEHOLDER_CREDENTIALS
        )

    def authorization_url(self, state: str) -> str:
        if not self.enabled:
            raise ExternalIdentityError("Google sign-in is not configured")
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.callback_url,
            "response_type": "code",
            "scope": GOOGLE_SCOPE,
            "state": state,
            "access_type": "online",
            "prompt": "select_account",
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> ExternalProfile:
        """
        Exchange an authorization code for the user's verified profile.

        Raises:
            ExternalIdentityError: Provider disabled, unreachable, or returned
                an unusable profile
        """
        if not self.enabled:
            raise ExternalIdentityError("Google sign-in is not configured")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=False, transport=self.transport
            ) as client:
                token_response = await client.post(
                    GOOGLE_TOKEN_URL,
                    data={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "code": code,
                        "redirect_uri": self.callback_url,
                        "grant_type": "authorization_code",
                    },
                    headers={"Accept": "application/json"},
                )
                token_response.raise_for_status()
                access_token = token_response.json().get("access_token")
                if not access_token:
                    logger.error("auth.oauth.no_access_token", provider="google")
                    raise ExternalIdentityError("Google did not return an access token")

                userinfo_response = await client.get(
                    GOOGLE_USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                userinfo_response.raise_for_status()
                userinfo = userinfo_response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "auth.oauth.exchange_http_error",
                provider="google",
                status_code=e.response.status_code,
            )
            raise ExternalIdentityError("Google sign-in failed") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("auth.oauth.exchange_error", provider="google", error=str(e))
            raise ExternalIdentityError("Google sign-in failed") from e

        return self._parse_userinfo(userinfo)

    @staticmethod
    def _parse_userinfo(userinfo: dict) -> ExternalProfile:
        if not isinstance(userinfo, dict) or not userinfo.get("id"):
            logger.error("auth.oauth.missing_uid", provider="google")
            raise ExternalIdentityError("Google profile has no id")
        if not userinfo.get("email"):
            logger.error("auth.oauth.missing_email", provider="google")
            raise ExternalIdentityError("Google profile has no email")
        if userinfo.get("verified_email") is False:
            raise ExternalIdentityError("Google email is not verified")

        return ExternalProfile(
            provider="google",
            provider_id=str(userinfo["id"]),
            email=userinfo["email"],
            email_verified=True,
            first_name=userinfo.get("given_name"),
            last_name=userinfo.get("family_name"),
            avatar=userinfo.get("picture"),
        )


def build_google_provider(config: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> GoogleOAuthProvider:
    """Build the provider from settings, warning when it will be disabled."""
    provider = GoogleOAuthProvider(
        client_id=config.GOOGLE_CLIENT_ID,
        client_secret=config.GOOGLE_CLIENT_SECRET,
        callback_url=config.GOOGLE_CALLBACK_URL,
        transport=transport,
    )
    if not provider.enabled:
        logger.warning("auth.oauth.not_configured", provider="google")
    return provider
