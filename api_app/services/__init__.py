"""
Collaborator interfaces used by the pipeline and the resource handlers.

The pipeline never owns credential storage or task persistence.  It talks
to them through the narrow protocols below, and every operation returns
either its data or a :class:`~api_app.errors.Failure` value.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from ..errors import Failure


@dataclass(frozen=True)
class Identity:
    """Authenticated subject attached to a request by the auth guard."""

    user_id: int
    username: str

    def to_dict(self) -> dict[str, Any]:
        return {"user_id": self.user_id, "username": self.username}


@dataclass(frozen=True)
class Rejected:
    """Verification explicitly refused the credential."""

    reason: str


class CredentialVerifier(Protocol):
    def verify_credential(self, token: str) -> Identity | Rejected | Failure: ...


class AuthService(CredentialVerifier, Protocol):
    """Registration, login and credential handling."""

    def issue_credential(self, identity: Identity) -> str | Failure: ...

    def register(self, username: str, email: str, password: str) -> dict[str, Any] | Failure: ...

    def login(self, username: str, password: str) -> dict[str, Any] | Failure: ...


class TaskService(Protocol):
    """Task CRUD scoped to one identity."""

    def list_tasks(
        self, identity: Identity, filters: dict[str, str]
    ) -> list[dict[str, Any]] | Failure: ...

    def get_task(self, identity: Identity, task_id: int) -> dict[str, Any] | Failure: ...

    def create_task(self, identity: Identity, data: dict[str, Any]) -> dict[str, Any] | Failure: ...

    def update_task(
        self, identity: Identity, task_id: int, data: dict[str, Any]
    ) -> dict[str, Any] | Failure: ...

    def delete_task(self, identity: Identity, task_id: int) -> None | Failure: ...

    def update_status(
        self, identity: Identity, task_id: int, status: str
    ) -> dict[str, Any] | Failure: ...


@dataclass(frozen=True)
class Services:
    """The collaborators handlers are allowed to call."""

    auth: AuthService
    tasks: TaskService


__all__ = [
    "AuthService",
    "CredentialVerifier",
    "Identity",
    "Rejected",
    "Services",
    "TaskService",
]
