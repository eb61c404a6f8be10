"""
Database models backing the default collaborators.

``User`` stores credentials for the local auth collaborator; ``Task`` stores
per-user to-do items for the task collaborator.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from werkzeug.security import check_password_hash, generate_password_hash

from . import db


def _to_utc_iso(value: datetime | None) -> str | None:
    """
    Serialize a datetime to an ISO-8601 UTC string.

    SQLite returns naive datetimes even for timezone-aware columns; naive
    values are assumed to be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.isoformat()


class TaskStatus(str, Enum):
    """Enumeration of possible task statuses."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    """Enumeration of possible task priorities."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class User(db.Model):
    """
    Registered user of the local auth collaborator.

    Only a one-way password hash is persisted, and ``to_dict`` leaves it
    out so the result can go straight into an API response.
    """

    __tablename__ = "users"

    __table_args__ = (
        db.CheckConstraint("length(username) <= 80", name="ck_users_username_len"),
        db.CheckConstraint("length(email) <= 120", name="ck_users_email_len"),
    )

    id: int = db.Column(db.Integer, primary_key=True)
    username: str = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email: str = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash: str = db.Column(db.String(256), nullable=False)
    created_at: datetime = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "created_at": _to_utc_iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.username}>"


class Task(db.Model):
    """
    Task model representing a to-do item owned by one user.

    Attributes:
        id: Unique identifier for the task.
        user_id: Owner, taken from the authenticated identity.
        title: Short title describing the task.
        description: Detailed description of the task.
        status: Current status (pending, in_progress, completed).
        priority: Task priority level (low, medium, high).
        due_date: Optional deadline for the task.
        estimated_minutes: Optional effort estimate.
        created_at: Timestamp when the task was created.
        updated_at: Timestamp when the task was last modified.
    """

    __tablename__ = "tasks"

    id: int = db.Column(db.Integer, primary_key=True)
    user_id: int = db.Column(db.Integer, nullable=False, index=True)
    title: str = db.Column(db.String(200), nullable=False)
    description: str = db.Column(db.Text, nullable=True)
    status: str = db.Column(
        db.String(20),
        nullable=False,
        default=TaskStatus.PENDING.value,
    )
    priority: str = db.Column(
        db.String(20),
        nullable=False,
        default=TaskPriority.MEDIUM.value,
    )
    due_date: datetime | None = db.Column(db.DateTime(timezone=True), nullable=True)
    estimated_minutes: int | None = db.Column(db.Integer, nullable=True)
    created_at: datetime = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "due_date": _to_utc_iso(self.due_date),
            "estimated_minutes": self.estimated_minutes,
            "created_at": _to_utc_iso(self.created_at),
            "updated_at": _to_utc_iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Task {self.id}: {self.title}>"
