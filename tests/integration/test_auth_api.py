"""
Integration tests for the auth endpoints backed by the local user store.

Covers registration (including duplicates and validation), login with good
and bad credentials, and the protected ``/me`` identity endpoint.
"""

import pytest

from tests.helpers import auth_headers, create_test_token

pytestmark = pytest.mark.integration


def _register(client, username="alice", email="alice@example.com", password="StrongPass123!"):
    return client.post(
        "/api/auth/register",
        json={"username": username, "email": email, "password": password},
    )


class TestRegister:
    """Tests for POST /api/auth/register."""

    def test_register_creates_user(self, client):
        # Act
        response = _register(client)

        # Assert
        assert response.status_code == 201
        user = response.get_json()["user"]
        assert user["username"] == "alice"
        assert user["email"] == "alice@example.com"
        assert "password" not in user
        assert "password_hash" not in user

    def test_register_duplicate_username_conflicts(self, client, user_factory):
        """Test that an existing username yields 409 with the conflict envelope."""
        # Arrange
        user_factory(username="alice")

        # Act
        response = _register(client, email="other@example.com")

        # Assert
        assert response.status_code == 409
        assert response.get_json() == {
            "error": "conflict",
            "message": "Username already exists",
        }

    def test_register_duplicate_email_conflicts(self, client, user_factory):
        # Arrange
        user_factory(email="alice@example.com")

        # Act
        response = _register(client, username="someone_else")

        # Assert
        assert response.status_code == 409

    @pytest.mark.parametrize("missing", ["username", "email", "password"])
    def test_register_missing_field_is_bad_request(self, client, missing):
        # Arrange
        payload = {"username": "bob", "email": "bob@example.com", "password": "pw123456"}
        payload.pop(missing)

        # Act
        response = client.post("/api/auth/register", json=payload)

        # Assert
        assert response.status_code == 400
        assert response.get_json()["message"] == f"'{missing}' is required"

    def test_register_overlong_username_is_bad_request(self, client):
        # Act
        response = _register(client, username="x" * 81)

        # Assert
        assert response.status_code == 400

    def test_register_without_body_is_bad_request(self, client):
        # Act
        response = client.post("/api/auth/register")

        # Assert
        assert response.status_code == 400
        assert response.get_json()["error"] == "bad_request"


class TestLogin:
    """Tests for POST /api/auth/login."""

    def test_login_returns_token_and_user(self, client, user_factory):
        # Arrange
        user_factory(username="carol")

        # Act
        response = client.post(
            "/api/auth/login",
            json={"username": "carol", "password": "StrongPass123!"},
        )

        # Assert
        assert response.status_code == 200
        data = response.get_json()
        assert isinstance(data["token"], str) and data["token"].count(".") == 2
        assert data["user"]["username"] == "carol"

    @pytest.mark.parametrize(
        ("username", "password"),
        [("carol", "wrong-password"), ("nobody", "StrongPass123!")],
    )
    def test_login_bad_credentials_are_indistinguishable(
        self, client, user_factory, username, password
    ):
        """Test that wrong password and unknown user give the same 401."""
        # Arrange
        user_factory(username="carol")

        # Act
        response = client.post(
            "/api/auth/login", json={"username": username, "password": password}
        )

        # Assert
        assert response.status_code == 401
        assert response.get_json() == {
            "error": "unauthorized",
            "message": "Invalid username or password",
        }


class TestMe:
    """Tests for GET /api/auth/me."""

    def test_me_returns_identity_from_token(self, client, api_headers):
        # Act
        response = client.get("/api/auth/me", headers=api_headers)

        # Assert
        assert response.status_code == 200
        assert response.get_json() == {"user_id": 1, "username": "user_one"}

    def test_me_without_token_is_unauthorized(self, client):
        # Act
        response = client.get("/api/auth/me")

        # Assert
        assert response.status_code == 401
        assert response.get_json()["message"] == "Missing or invalid Authorization header"

    def test_me_with_expired_token_is_unauthorized(self, client):
        # Arrange
        headers = auth_headers(create_test_token(user_id=1, username="user_one", expired=True))

        # Act
        response = client.get("/api/auth/me", headers=headers)

        # Assert
        assert response.status_code == 401
        assert response.get_json()["message"] == "Invalid or expired token"


def test_register_login_then_use_token(client):
    """Test the whole flow: register, login, list tasks with and without the token."""
    # Arrange
    assert _register(client, username="dave", email="dave@example.com").status_code == 201
    login = client.post(
        "/api/auth/login", json={"username": "dave", "password": "StrongPass123!"}
    )
    token = login.get_json()["token"]

    # Act
    with_token = client.get("/api/tasks", headers=auth_headers(token))
    without_token = client.get("/api/tasks")

    # Assert
    assert with_token.status_code == 200
    assert with_token.get_json() == {"tasks": [], "count": 0}
    assert without_token.status_code == 401
