"""
BetScope - Google Sign-In Tests

The Google endpoints are mocked with httpx.MockTransport; see the
google_transport fixture in conftest.
"""

from urllib.parse import parse_qs, urlparse

import pytest
from sqlmodel import select

from betscope.auth.errors import ExternalIdentityError
from betscope.auth.models import User, UserStatus
from betscope.auth.oauth import GOOGLE_AUTH_URL, GoogleOAuthProvider
from betscope.config import settings


FRONTEND_CALLBACK = f"{settings.FRONTEND_URL.rstrip('/')}/auth/callback"


def _start(client) -> str:
    """Begin the flow and return the state Google would echo back."""
    response = client.get("/auth/google", follow_redirects=False)
    assert response.status_code == 307
    return parse_qs(urlparse(response.headers["location"]).query)["state"][0]


def _callback(client, code: str, state: str):
    return client.get(
        "/auth/google/callback",
        params={"code": code, "state": state},
        follow_redirects=False,
    )


class TestGoogleProvider:

    def test_placeholder_credentials_disable_provider(self):
        assert GoogleOAuthProvider("", "", "http://cb").enabled is False
        assert GoogleOAuthProvider("dummy", "dummy", "http://cb").enabled is False
        assert GoogleOAuthProvider("id", "secret", "http://cb").enabled is True

    def test_authorization_url(self):
        provider = GoogleOAuthProvider("client-123", "secret", "http://testserver/auth/google/callback")

        url = provider.authorization_url("xyz")
        query = parse_qs(urlparse(url).query)

        assert url.startswith(GOOGLE_AUTH_URL)
        assert query["client_id"] == ["client-123"]
        assert query["state"] == ["xyz"]
        assert query["redirect_uri"] == ["http://testserver/auth/google/callback"]
        assert "email" in query["scope"][0]

    @pytest.mark.asyncio
    async def test_exchange_code(self, google_transport):
        provider = GoogleOAuthProvider("id", "secret", "http://cb", transport=google_transport)

        profile = await provider.exchange_code("good-code")

        assert profile.provider == "google"
        assert profile.provider_id == "1234567890"
        assert profile.first_name == "Sam"

    @pytest.mark.asyncio
    async def test_exchange_bad_code(self, google_transport):
        provider = GoogleOAuthProvider("id", "secret", "http://cb", transport=google_transport)

        with pytest.raises(ExternalIdentityError):
            await provider.exchange_code("bad-code")

    @pytest.mark.asyncio
    async def test_unverified_email_rejected(self, google_transport, google_userinfo):
        google_userinfo["verified_email"] = False
        provider = GoogleOAuthProvider("id", "secret", "http://cb", transport=google_transport)

        with pytest.raises(ExternalIdentityError):
            await provider.exchange_code("good-code")


class TestGoogleStart:

    def test_disabled_provider_returns_503(self, client):
        response = client.get("/auth/google", follow_redirects=False)

        assert response.status_code == 503
        assert response.json()["error_code"] == "external_identity_unavailable"

    def test_redirect_sets_state_cookie(self, google_client):
        response = google_client.get("/auth/google", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"].startswith(GOOGLE_AUTH_URL)

        state_cookie = next(
            header for header in response.headers.get_list("set-cookie")
            if header.startswith(settings.OAUTH_STATE_COOKIE_NAME)
        )
        assert "HttpOnly" in state_cookie
        assert "Path=/auth/google" in state_cookie
        assert "Max-Age=600" in state_cookie

    def test_state_cookie_stays_lax_under_strict_policy(self, google_client, monkeypatch):
        monkeypatch.setattr(settings, "AUTH_COOKIE_SAMESITE", "strict")

        response = google_client.get("/auth/google", follow_redirects=False)

        state_cookie = next(
            header for header in response.headers.get_list("set-cookie")
            if header.startswith(settings.OAUTH_STATE_COOKIE_NAME)
        )
        assert "samesite=lax" in state_cookie.lower()
        assert "HttpOnly" in state_cookie
        assert "Path=/auth/google" in state_cookie

    def test_strict_policy_still_completes_sign_in(self, google_client, monkeypatch):
        monkeypatch.setattr(settings, "AUTH_COOKIE_SAMESITE", "strict")

        state = _start(google_client)
        response = _callback(google_client, "good-code", state)

        assert response.headers["location"] == FRONTEND_CALLBACK


class TestGoogleCallback:

    def test_new_user_created_and_signed_in(self, google_client, db_session):
        state = _start(google_client)

        response = _callback(google_client, "good-code", state)

        assert response.status_code == 307
        assert response.headers["location"] == FRONTEND_CALLBACK
        assert google_client.cookies.get(settings.AUTH_COOKIE_NAME)
        assert google_client.cookies.get(settings.AUTH_REFRESH_COOKIE_NAME)

        user = db_session.exec(select(User).where(User.email == "fan@gmail.com")).first()
        assert user is not None
        assert user.username == "google_1234567890"
        assert user.auth_provider == "google"
        assert user.email_verified is True
        assert user.first_name == "Sam"

        me = google_client.get("/auth/me")
        assert me.status_code == 200
        assert me.json()["email"] == "fan@gmail.com"

    def test_token_never_in_redirect(self, google_client):
        state = _start(google_client)

        response = _callback(google_client, "good-code", state)

        assert "token" not in response.headers["location"]

    def test_existing_user_matched_by_email(self, google_client, make_user, db_session):
        existing = make_user("fan@gmail.com", "samfan")
        state = _start(google_client)

        _callback(google_client, "good-code", state)

        users = db_session.exec(select(User).where(User.email == "fan@gmail.com")).all()
        assert len(users) == 1
        assert users[0].id == existing.id
        assert google_client.get("/auth/me").json()["username"] == "samfan"

    def test_username_collision_gets_suffix(self, google_client, make_user, db_session):
        make_user("someone@test.com", "google_1234567890")
        state = _start(google_client)

        _callback(google_client, "good-code", state)

        user = db_session.exec(select(User).where(User.email == "fan@gmail.com")).first()
        assert user.username != "google_1234567890"
        assert user.username.startswith("google_1234567890")

    def test_state_mismatch(self, google_client):
        _start(google_client)

        response = _callback(google_client, "good-code", "forged-state")

        assert response.status_code == 307
        assert response.headers["location"] == f"{FRONTEND_CALLBACK}?error=invalid_state"
        assert google_client.cookies.get(settings.AUTH_COOKIE_NAME) is None

    def test_missing_state_cookie(self, google_client):
        response = _callback(google_client, "good-code", "some-state")

        assert response.headers["location"] == f"{FRONTEND_CALLBACK}?error=invalid_state"

    def test_provider_error(self, google_client):
        state = _start(google_client)

        response = _callback(google_client, "bad-code", state)

        assert response.headers["location"] == f"{FRONTEND_CALLBACK}?error=provider_error"

    def test_user_denied_consent(self, google_client):
        _start(google_client)

        response = google_client.get(
            "/auth/google/callback",
            params={"error": "access_denied"},
            follow_redirects=False,
        )

        assert response.headers["location"] == f"{FRONTEND_CALLBACK}?error=access_denied"

    def test_suspended_user_not_signed_in(self, google_client, make_user):
        make_user("fan@gmail.com", "samfan", status=UserStatus.SUSPENDED)
        state = _start(google_client)

        response = _callback(google_client, "good-code", state)

        assert response.headers["location"] == f"{FRONTEND_CALLBACK}?error=unauthorized"
        assert google_client.cookies.get(settings.AUTH_COOKIE_NAME) is None
