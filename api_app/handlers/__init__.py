"""
Resource handlers.

Handlers take the request context and the collaborator bundle and return a
:class:`~api_app.routing.Success` or a :class:`~api_app.errors.Failure`.
They never build error responses themselves.
"""

from __future__ import annotations

from typing import Any

from ..context import RequestContext
from ..errors import Failure

BODY_REQUIRED = "Request body must be a JSON object"


def json_object_body(ctx: RequestContext) -> dict[str, Any] | Failure:
    """Return the parsed body when it is a non-empty JSON object."""
    if not isinstance(ctx.body, dict) or not ctx.body:
        return Failure.bad_request(BODY_REQUIRED)
    return ctx.body


def validate_required_fields(data: dict[str, Any], required_fields: list[str]) -> str | None:
    """
    Check that every field in *required_fields* is a non-blank string.

    Returns:
        An error message for the first missing or blank field, or ``None``.
    """
    for field in required_fields:
        value = data.get(field)
        if not isinstance(value, str) or not value.strip():
            return f"'{field}' is required"
    return None
