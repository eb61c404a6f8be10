"""Liveness endpoint."""

from __future__ import annotations

from datetime import datetime, timezone

from ..context import RequestContext
from ..routing import Success
from ..services import Services


def health_check(ctx: RequestContext, services: Services) -> Success:
    """Report that the process is up; touches no collaborator."""
    return Success({"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()})
