"""Test helpers: in-memory signing keys, token builders and stub collaborators."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from api_app.errors import Failure
from api_app.services import Identity, Rejected

DEFAULT_TEST_USER_ID = 1
DEFAULT_TEST_USERNAME = "test_user"


def _generate_rsa_key_pair() -> tuple[str, str]:
    """Generate an in-memory RSA private/public key pair as PEM strings."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")
    return private_pem, public_pem


# Generated once per test process.
TEST_PRIVATE_KEY, TEST_PUBLIC_KEY = _generate_rsa_key_pair()


def generate_throwaway_key_pair() -> tuple[str, str]:
    """Generate a fresh RSA key pair for negative-path tests."""
    return _generate_rsa_key_pair()


def create_test_token(
    user_id: int = DEFAULT_TEST_USER_ID,
    username: str = DEFAULT_TEST_USERNAME,
    private_key: str = TEST_PRIVATE_KEY,
    expired: bool = False,
) -> str:
    """Create a signed RS256 test token with the required claims."""
    now = datetime.now(timezone.utc)
    expiry_time = now - timedelta(hours=1) if expired else now + timedelta(hours=1)

    payload: dict[str, Any] = {
        "user_id": int(user_id),
        "username": str(username),
        "iat": int(now.timestamp()),
        "exp": int(expiry_time.timestamp()),
    }
    return jwt.encode(payload, private_key, algorithm="RS256")


def auth_headers(token: str) -> dict[str, str]:
    """Build JSON API headers with bearer token auth."""
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
        "Accept": "application/json",
    }


class StubAuthService:
    """
    Auth collaborator with a fixed token table.

    Tokens in *identities* verify to their identity, any other token is
    rejected.  When *failure* is set every verification returns it instead.
    Every token passed to ``verify_credential`` is recorded.
    """

    def __init__(
        self,
        identities: dict[str, Identity] | None = None,
        failure: Failure | None = None,
    ) -> None:
        self.identities = dict(identities or {})
        self.failure = failure
        self.verify_calls: list[str] = []

    def verify_credential(self, token: str) -> Identity | Rejected | Failure:
        self.verify_calls.append(token)
        if self.failure is not None:
            return self.failure
        identity = self.identities.get(token)
        if identity is None:
            return Rejected("unknown token")
        return identity

    def issue_credential(self, identity: Identity) -> str | Failure:
        return f"token-{identity.user_id}"

    def register(self, username: str, email: str, password: str) -> dict[str, Any] | Failure:
        return {"id": 1, "username": username, "email": email}

    def login(self, username: str, password: str) -> dict[str, Any] | Failure:
        return {"token": "token-1", "user": {"id": 1, "username": username}}


class RecordingTaskService:
    """Task collaborator that records every call and serves canned data."""

    def __init__(self, raise_on_list: bool = False) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.raise_on_list = raise_on_list

    def list_tasks(self, identity: Identity, filters: dict[str, str]):
        self.calls.append(("list_tasks", identity.user_id, dict(filters)))
        if self.raise_on_list:
            raise RuntimeError("postgres://admin:s3cret@db/tasks is unreachable")
        return [{"id": 1, "title": "Canned", "user_id": identity.user_id}]

    def get_task(self, identity: Identity, task_id: int):
        self.calls.append(("get_task", identity.user_id, task_id))
        return {"id": task_id, "title": "Canned", "user_id": identity.user_id}

    def create_task(self, identity: Identity, data: dict[str, Any]):
        self.calls.append(("create_task", identity.user_id, dict(data)))
        return {"id": 1, **data, "user_id": identity.user_id}

    def update_task(self, identity: Identity, task_id: int, data: dict[str, Any]):
        self.calls.append(("update_task", identity.user_id, task_id, dict(data)))
        return {"id": task_id, **data, "user_id": identity.user_id}

    def delete_task(self, identity: Identity, task_id: int):
        self.calls.append(("delete_task", identity.user_id, task_id))
        return None

    def update_status(self, identity: Identity, task_id: int, status: str):
        self.calls.append(("update_status", identity.user_id, task_id, status))
        return {"id": task_id, "status": status, "user_id": identity.user_id}
