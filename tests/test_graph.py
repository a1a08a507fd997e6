"""
BetScope - Graph Endpoint Tests

POST /graphql answers 200 for every outcome; failures are reported in
the `errors` list with a stable code.
"""

from betscope.config import settings
from tests.conftest import DEFAULT_PASSWORD, bearer


def run(client, operation: str, input: dict = None, headers: dict = None):
    body = {"operation": operation}
    if input is not None:
        body["input"] = input
    return client.post("/graphql", json=body, headers=headers or {})


def error_code(response) -> str:
    return response.json()["errors"][0]["code"]


class TestGraphAuthentication:

    def test_login(self, client, test_user):
        response = run(client, "login", {"email": "fan@test.com", "password": DEFAULT_PASSWORD})

        assert response.status_code == 200
        data = response.json()["data"]
        assert "errors" not in response.json()
        assert data["user"]["email"] == "fan@test.com"
        assert data["accessToken"]
        assert client.cookies.get(settings.AUTH_COOKIE_NAME) == data["accessToken"]

    def test_login_wrong_password(self, client, test_user):
        response = run(client, "login", {"email": "fan@test.com", "password": "Wrong1234!"})

        assert response.status_code == 200
        assert response.json()["data"] is None
        assert error_code(response) == "invalid_credentials"

    def test_me_after_login(self, client, test_user):
        run(client, "login", {"email": "fan@test.com", "password": DEFAULT_PASSWORD})

        response = run(client, "me")

        assert response.json()["data"]["user"]["username"] == "fan"

    def test_me_unauthenticated(self, client):
        response = run(client, "me")

        assert response.status_code == 200
        assert error_code(response) == "unauthorized"

    def test_me_with_invalid_token(self, client):
        response = run(client, "me", headers=bearer("a.b.c"))

        assert error_code(response) == "unauthorized"

    def test_logout(self, client, test_user):
        login = run(client, "login", {"email": "fan@test.com", "password": DEFAULT_PASSWORD}).json()["data"]

        response = run(client, "logout")

        assert response.json()["data"] == {"success": True, "sessionsRevoked": 1}
        assert client.cookies.get(settings.AUTH_COOKIE_NAME) is None
        assert error_code(run(client, "me", headers=bearer(login["accessToken"]))) == "unauthorized"

    def test_logout_anonymous(self, client):
        response = run(client, "logout")

        assert response.json()["data"]["success"] is True


class TestGraphRegistration:

    def test_register(self, client):
        response = run(client, "register", {
            "email": "New@Test.com",
            "username": "NewFan",
            "password": DEFAULT_PASSWORD,
        })

        data = response.json()["data"]
        assert data["user"]["email"] == "new@test.com"
        assert data["user"]["username"] == "newfan"

    def test_register_duplicate_email(self, client, test_user):
        response = run(client, "register", {
            "email": "fan@test.com",
            "username": "someoneelse",
            "password": DEFAULT_PASSWORD,
        })

        assert response.status_code == 200
        assert response.json()["data"] is None
        assert error_code(response) == "duplicate_account"

    def test_register_weak_password(self, client):
        response = run(client, "register", {
            "email": "weak@test.com",
            "username": "weak",
            "password": "short",
        })

        assert error_code(response) == "bad_user_input"
        assert "password" in response.json()["errors"][0]["message"]


class TestGraphProfile:

    def test_update_profile(self, client, test_user):
        run(client, "login", {"email": "fan@test.com", "password": DEFAULT_PASSWORD})

        response = run(client, "updateProfile", {"first_name": "Sam", "country": "DE"})

        user = response.json()["data"]["user"]
        assert user["first_name"] == "Sam"
        assert user["country"] == "DE"

    def test_update_profile_requires_auth(self, client):
        response = run(client, "updateProfile", {"first_name": "Sam"})

        assert error_code(response) == "unauthorized"

    def test_change_password(self, client, test_user):
        run(client, "login", {"email": "fan@test.com", "password": DEFAULT_PASSWORD})

        response = run(client, "changePassword", {
            "current_password": DEFAULT_PASSWORD,
            "new_password": "NewPass1234",
        })

        assert response.json()["data"]["success"] is True
        client.cookies.clear()
        relogin = run(client, "login", {"email": "fan@test.com", "password": "NewPass1234"})
        assert relogin.json()["data"]["user"]["email"] == "fan@test.com"

    def test_change_password_wrong_current(self, client, test_user):
        run(client, "login", {"email": "fan@test.com", "password": DEFAULT_PASSWORD})

        response = run(client, "changePassword", {
            "current_password": "Wrong1234!",
            "new_password": "NewPass1234",
        })

        assert error_code(response) == "invalid_credentials"


class TestGraphDispatch:

    def test_unknown_operation(self, client):
        response = run(client, "dropTables")

        assert response.status_code == 200
        assert error_code(response) == "unknown_operation"

    def test_missing_input(self, client):
        response = run(client, "login")

        assert error_code(response) == "bad_user_input"

    def test_malformed_envelope(self, client):
        response = client.post("/graphql", json={"input": {}})

        assert response.status_code == 422
