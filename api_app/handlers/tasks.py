"""
Task resource handlers.

Every route here is protected, so ``ctx.identity`` is always set by the
time a handler runs.  All lookups are scoped to that identity by the task
collaborator.

Endpoints (mounted under ``/api/tasks``):
    GET    /                 - List tasks (optional status/priority/sort/order)
    POST   /                 - Create a task
    GET    /<id>             - Retrieve a task
    PUT    /<id>             - Partial update of a task
    DELETE /<id>             - Delete a task
    PATCH  /<id>/status      - Update only the status
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from ..context import RequestContext
from ..errors import Failure
from ..models import TaskPriority, TaskStatus
from ..routing import HandlerResult, Success
from ..services import Identity, Services
from . import json_object_body

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200
MAX_ESTIMATED_MINUTES = 2**31 - 1
LIST_FILTERS = ("status", "priority", "sort", "order")


def validate_task_data(
    data: dict[str, Any], required_fields: list[str] | None = None
) -> Failure | None:
    """
    Validate an incoming task payload against business rules.

    Checks required fields, enum membership for status/priority, title
    length, ISO-8601 conformance for ``due_date``, and the allowed range for
    ``estimated_minutes``.

    Returns:
        A ``BAD_REQUEST`` failure describing the first problem, or ``None``.
    """
    if required_fields:
        for field in required_fields:
            value = data.get(field)
            if not value or (isinstance(value, str) and not value.strip()):
                return Failure.bad_request(f"'{field}' is required")

    if "title" in data:
        if not isinstance(data["title"], str) or not data["title"].strip():
            return Failure.bad_request("'title' must be a non-empty string")
        if len(data["title"]) > MAX_TITLE_LENGTH:
            return Failure.bad_request(f"Title must be {MAX_TITLE_LENGTH} characters or less")

    if "description" in data and data["description"] is not None:
        if not isinstance(data["description"], str):
            return Failure.bad_request("'description' must be a string")

    if "status" in data:
        valid_statuses = [s.value for s in TaskStatus]
        if data["status"] not in valid_statuses:
            return Failure.bad_request(f"Invalid status. Must be one of: {valid_statuses}")

    if "priority" in data:
        valid_priorities = [p.value for p in TaskPriority]
        if data["priority"] not in valid_priorities:
            return Failure.bad_request(f"Invalid priority. Must be one of: {valid_priorities}")

    if "due_date" in data and data["due_date"]:
        try:
            datetime.fromisoformat(data["due_date"].replace("Z", "+00:00"))
        except (ValueError, AttributeError):
            return Failure.bad_request(
                "Invalid due_date format. Use ISO format (YYYY-MM-DDTHH:MM:SS)"
            )

    if "estimated_minutes" in data and data["estimated_minutes"] is not None:
        value = data["estimated_minutes"]
        if (
            not isinstance(value, int)
            or isinstance(value, bool)
            or not 1 <= value <= MAX_ESTIMATED_MINUTES
        ):
            return Failure.bad_request("estimated_minutes must be a positive integer")

    return None


def _identity(ctx: RequestContext) -> Identity | Failure:
    if ctx.identity is None:
        # The route table always puts the guard first; reaching here is a wiring bug.
        logger.error("Task handler reached without identity for %s %s", ctx.method, ctx.path)
        return Failure.internal()
    return ctx.identity


def list_tasks(ctx: RequestContext, services: Services) -> HandlerResult:
    identity = _identity(ctx)
    if isinstance(identity, Failure):
        return identity

    filters = {key: ctx.query[key] for key in LIST_FILTERS if ctx.query.get(key)}
    tasks = services.tasks.list_tasks(identity, filters)
    if isinstance(tasks, Failure):
        return tasks
    return Success({"tasks": tasks, "count": len(tasks)})


def get_task(ctx: RequestContext, services: Services) -> HandlerResult:
    identity = _identity(ctx)
    if isinstance(identity, Failure):
        return identity

    task = services.tasks.get_task(identity, ctx.route_params["task_id"])
    if isinstance(task, Failure):
        return task
    return Success(task)


def create_task(ctx: RequestContext, services: Services) -> HandlerResult:
    """
    Create a task for the caller.

    Expects a JSON object with at least ``title``; optional fields are
    ``description``, ``status``, ``priority``, ``due_date`` and
    ``estimated_minutes``.
    """
    identity = _identity(ctx)
    if isinstance(identity, Failure):
        return identity

    data = json_object_body(ctx)
    if isinstance(data, Failure):
        return data

    invalid = validate_task_data(data, required_fields=["title"])
    if invalid:
        return invalid

    task = services.tasks.create_task(identity, data)
    if isinstance(task, Failure):
        return task
    return Success(task, status=201)


def update_task(ctx: RequestContext, services: Services) -> HandlerResult:
    """Only fields present in the body are modified, despite the PUT verb."""
    identity = _identity(ctx)
    if isinstance(identity, Failure):
        return identity

    data = json_object_body(ctx)
    if isinstance(data, Failure):
        return data

    invalid = validate_task_data(data)
    if invalid:
        return invalid

    task = services.tasks.update_task(identity, ctx.route_params["task_id"], data)
    if isinstance(task, Failure):
        return task
    return Success(task)


def delete_task(ctx: RequestContext, services: Services) -> HandlerResult:
    identity = _identity(ctx)
    if isinstance(identity, Failure):
        return identity

    outcome = services.tasks.delete_task(identity, ctx.route_params["task_id"])
    if isinstance(outcome, Failure):
        return outcome
    return Success({"message": "Task deleted successfully"})


def update_task_status(ctx: RequestContext, services: Services) -> HandlerResult:
    identity = _identity(ctx)
    if isinstance(identity, Failure):
        return identity

    data = json_object_body(ctx)
    if isinstance(data, Failure):
        return data
    if "status" not in data:
        return Failure.bad_request("'status' field is required")

    invalid = validate_task_data({"status": data["status"]})
    if invalid:
        return invalid

    task = services.tasks.update_status(identity, ctx.route_params["task_id"], data["status"])
    if isinstance(task, Failure):
        return task
    return Success(task)
