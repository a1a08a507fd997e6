"""
BetScope - Test Configuration

Pytest fixtures for identity service testing.
Provides test database, client, user and OAuth fixtures.
"""

import os

# Must be set before betscope.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("NODE_ENV", "test")
os.environ.setdefault("LOG_JSON", "false")

from typing import Callable, Generator, Optional

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from betscope.app import app
from betscope.auth import password as password_module
from betscope.auth.database import get_session_factory
from betscope.auth.models import Role, User, UserStatus, utcnow
from betscope.auth.oauth import GOOGLE_TOKEN_URL, GOOGLE_USERINFO_URL, GoogleOAuthProvider
from betscope.auth.password import hash_password


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite:///:memory:"

# Fast hashes for tests
password_module.BCRYPT_WORK_FACTOR = 4

DEFAULT_PASSWORD = "Abcd1234!"


@pytest.fixture(scope="function")
def test_engine():
    """Create a fresh test database engine for each test."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Import models to register them
    from betscope.auth.models import Device, RefreshToken, Session as SessionRecord  # noqa: F401

    SQLModel.metadata.create_all(engine)

    yield engine

    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine) -> Generator[Session, None, None]:
    """Create a database session for testing."""
    with Session(test_engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture(scope="function")
def client(test_engine) -> Generator[TestClient, None, None]:
    """Create a test client bound to the test database. Google sign-in is disabled."""
    with TestClient(app) as c:
        # Lifespan has run; point the app at the test engine
        app.state.db_engine = test_engine
        app.state.db_session_factory = get_session_factory(test_engine)
        app.state.google_oauth = GoogleOAuthProvider("", "", "http://testserver/auth/google/callback")
        yield c


@pytest.fixture(scope="function")
def google_userinfo() -> dict:
    """Profile the mocked Google returns; tests may mutate it."""
    return {
        "id": "1234567890",
        "email": "Fan@Gmail.com",
        "verified_email": True,
        "given_name": "Sam",
        "family_name": "Fan",
        "picture": "https://example.com/avatar.png",
    }


@pytest.fixture(scope="function")
def google_transport(google_userinfo) -> httpx.MockTransport:
    """Mock of Google's token and userinfo endpoints. Accepts only code 'good-code'."""
    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == GOOGLE_TOKEN_URL:
            if b"code=good-code" not in request.content:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": "google-access", "token_type": "Bearer"})
        if str(request.url) == GOOGLE_USERINFO_URL:
            if request.headers.get("Authorization") != "Bearer google-access":
                return httpx.Response(401, json={"error": "unauthorized"})
            return httpx.Response(200, json=google_userinfo)
        return httpx.Response(404)

    return httpx.MockTransport(handler)


@pytest.fixture(scope="function")
def google_client(client, google_transport) -> TestClient:
    """Test client with Google sign-in enabled against the mock transport."""
    app.state.google_oauth = GoogleOAuthProvider(
        client_id="test-client-id",
        client_secret="test-client-secret",
        callback_url="http://testserver/auth/google/callback",
        transport=google_transport,
    )
    return client


@pytest.fixture(scope="function")
def make_user(db_session) -> Callable[..., User]:
    """Factory for persisted users."""
    def _make_user(
        email: str,
        username: Optional[str] = None,
        password: str = DEFAULT_PASSWORD,
        role: Role = Role.USER,
        status: UserStatus = UserStatus.ACTIVE,
    ) -> User:
        now = utcnow()
        user = User(
            email=email.lower(),
            username=(username or email.split("@")[0]).lower(),
            password_hash=hash_password(password),
            role=role,
            status=status,
            is_active=status == UserStatus.ACTIVE,
            usage_period_start=now,
            created_at=now,
            updated_at=now,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture(scope="function")
def test_user(make_user) -> User:
    """Create a regular user."""
    return make_user("fan@test.com", "fan")


@pytest.fixture(scope="function")
def test_admin(make_user) -> User:
    """Create an admin user."""
    return make_user("admin@test.com", "admin", role=Role.ADMIN)


@pytest.fixture(scope="function")
def test_moderator(make_user) -> User:
    """Create a moderator user."""
    return make_user("mod@test.com", "mod", role=Role.MODERATOR)


@pytest.fixture(scope="function")
def suspended_user(make_user) -> User:
    """Create a suspended user."""
    return make_user("suspended@test.com", "suspended", status=UserStatus.SUSPENDED)


def login_user(client: TestClient, email: str, password: str = DEFAULT_PASSWORD, headers: dict = None) -> Optional[dict]:
    """Helper function to login; the client keeps the cookies."""
    response = client.post(
        "/auth/login",
        json={"email": email, "password": password},
        headers=headers or {},
    )
    return response.json() if response.status_code == 200 else None


def bearer(access_token: str) -> dict:
    """Authorization header for header-based clients."""
    return {"Authorization": f"Bearer {access_token}"}
