"""
Route declarations.

Three disjoint mounts: the liveness check at the root, the auth family
under ``/api/auth`` and the task family under ``/api/tasks``.  Every task
route is protected; in the auth family only ``/me`` is.
"""

from __future__ import annotations

from .handlers import auth, health, tasks
from .routing import Mount, route

# Largest id a 64-bit INTEGER column holds; larger ids never match.
MAX_TASK_ID = 2**63 - 1
TASK_ID = f"/<int(max={MAX_TASK_ID}):task_id>"


def build_mounts() -> tuple[Mount, ...]:
    return (
        Mount(
            "",
            (route("/health", ["GET"], health.health_check),),
        ),
        Mount(
            "/api/auth",
            (
                route("/register", ["POST"], auth.register),
                route("/login", ["POST"], auth.login),
                route("/me", ["GET"], auth.me, protected=True),
            ),
        ),
        Mount(
            "/api/tasks",
            (
                route("", ["GET"], tasks.list_tasks, protected=True),
                route("", ["POST"], tasks.create_task, protected=True),
                route(TASK_ID, ["GET"], tasks.get_task, protected=True),
                route(TASK_ID, ["PUT"], tasks.update_task, protected=True),
                route(TASK_ID, ["DELETE"], tasks.delete_task, protected=True),
                route(
                    TASK_ID + "/status",
                    ["PATCH"],
                    tasks.update_task_status,
                    protected=True,
                ),
            ),
        ),
    )
