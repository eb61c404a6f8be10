"""
SQLAlchemy-backed task collaborator.

Every query is scoped to the identity's ``user_id`` so a user can never
read or modify another user's tasks; a foreign task looks exactly like a
missing one.  Payloads reaching this module have already been validated by
the task handlers.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from .. import db
from ..errors import Failure
from ..models import Task, TaskPriority, TaskStatus
from . import Identity

logger = logging.getLogger(__name__)

TASK_NOT_FOUND = "Task not found"
SORTABLE_FIELDS = {"created_at", "updated_at", "due_date", "priority", "status", "title"}


def ensure_utc(value: datetime) -> datetime:
    """Normalise a datetime to UTC, treating naive values as UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_due_date(date_string: str | None) -> datetime | None:
    """Parse an optional ISO-8601 string into a UTC datetime."""
    if not date_string:
        return None
    parsed = datetime.fromisoformat(date_string.replace("Z", "+00:00"))
    return ensure_utc(parsed)


def _store_unavailable(operation: str) -> Failure:
    db.session.rollback()
    logger.exception("Task store unavailable during %s", operation)
    return Failure.upstream_unavailable("Task store unavailable")


class SqlTaskService:
    """Task collaborator persisting to the application database."""

    def _user_task_query(self, identity: Identity):
        return select(Task).where(Task.user_id == identity.user_id)

    def _find(self, identity: Identity, task_id: int) -> Task | None:
        return db.session.scalar(self._user_task_query(identity).where(Task.id == task_id))

    def list_tasks(
        self, identity: Identity, filters: dict[str, str]
    ) -> list[dict[str, Any]] | Failure:
        stmt = self._user_task_query(identity)

        if filters.get("status"):
            stmt = stmt.where(Task.status == filters["status"])
        if filters.get("priority"):
            stmt = stmt.where(Task.priority == filters["priority"])

        sort_field = filters.get("sort") or "created_at"
        if sort_field not in SORTABLE_FIELDS:
            sort_field = "created_at"
        column = getattr(Task, sort_field)
        if filters.get("order", "desc") == "asc":
            stmt = stmt.order_by(column.asc(), Task.id.asc())
        else:
            stmt = stmt.order_by(column.desc(), Task.id.desc())

        try:
            tasks = db.session.scalars(stmt).all()
        except OperationalError:
            return _store_unavailable("list")
        return [task.to_dict() for task in tasks]

    def get_task(self, identity: Identity, task_id: int) -> dict[str, Any] | Failure:
        try:
            task = self._find(identity, task_id)
        except OperationalError:
            return _store_unavailable("get")
        if task is None:
            return Failure.not_found(TASK_NOT_FOUND)
        return task.to_dict()

    def create_task(self, identity: Identity, data: dict[str, Any]) -> dict[str, Any] | Failure:
        task = Task(
            user_id=identity.user_id,
            title=data["title"],
            description=data.get("description"),
            status=data.get("status", TaskStatus.PENDING.value),
            priority=data.get("priority", TaskPriority.MEDIUM.value),
            due_date=parse_due_date(data.get("due_date")),
            estimated_minutes=data.get("estimated_minutes"),
        )
        try:
            db.session.add(task)
            db.session.commit()
        except OperationalError:
            return _store_unavailable("create")

        logger.info("Created task id=%s for user_id=%s", task.id, identity.user_id)
        return task.to_dict()

    def update_task(
        self, identity: Identity, task_id: int, data: dict[str, Any]
    ) -> dict[str, Any] | Failure:
        try:
            task = self._find(identity, task_id)
            if task is None:
                return Failure.not_found(TASK_NOT_FOUND)

            if "title" in data:
                task.title = data["title"]
            if "description" in data:
                task.description = data["description"]
            if "status" in data:
                task.status = data["status"]
            if "priority" in data:
                task.priority = data["priority"]
            if "due_date" in data:
                task.due_date = parse_due_date(data["due_date"])
            if "estimated_minutes" in data:
                task.estimated_minutes = data["estimated_minutes"]

            db.session.commit()
        except OperationalError:
            return _store_unavailable("update")
        return task.to_dict()

    def delete_task(self, identity: Identity, task_id: int) -> None | Failure:
        try:
            task = self._find(identity, task_id)
            if task is None:
                return Failure.not_found(TASK_NOT_FOUND)
            db.session.delete(task)
            db.session.commit()
        except OperationalError:
            return _store_unavailable("delete")

        logger.info("Deleted task id=%s for user_id=%s", task_id, identity.user_id)
        return None

    def update_status(
        self, identity: Identity, task_id: int, status: str
    ) -> dict[str, Any] | Failure:
        try:
            task = self._find(identity, task_id)
            if task is None:
                return Failure.not_found(TASK_NOT_FOUND)
            task.status = status
            db.session.commit()
        except OperationalError:
            return _store_unavailable("status update")
        return task.to_dict()
