"""
Auth resource handlers.

Endpoints (mounted under ``/api/auth``):
    POST /register  -- Create a new user account.
    POST /login     -- Authenticate and receive a token.
    GET  /me        -- Identity behind the presented token (protected).
"""

from __future__ import annotations

from ..context import RequestContext
from ..errors import Failure
from ..routing import HandlerResult, Success
from ..services import Services
from . import json_object_body, validate_required_fields

MAX_USERNAME_LENGTH = 80
MAX_EMAIL_LENGTH = 120


def register(ctx: RequestContext, services: Services) -> HandlerResult:
    """
    Register a new user account.

    Expects ``username``, ``email`` and ``password``.

    Returns:
        201 with the created user, 400 on invalid input, 409 when the
        username or email is taken.
    """
    data = json_object_body(ctx)
    if isinstance(data, Failure):
        return data

    missing = validate_required_fields(data, ["username", "email", "password"])
    if missing:
        return Failure.bad_request(missing)

    username = data["username"].strip()
    email = data["email"].strip()
    if len(username) > MAX_USERNAME_LENGTH:
        return Failure.bad_request(f"username must be {MAX_USERNAME_LENGTH} characters or less")
    if len(email) > MAX_EMAIL_LENGTH:
        return Failure.bad_request(f"email must be {MAX_EMAIL_LENGTH} characters or less")

    user = services.auth.register(username, email, data["password"])
    if isinstance(user, Failure):
        return user
    return Success({"user": user}, status=201)


def login(ctx: RequestContext, services: Services) -> HandlerResult:
    """
    Authenticate a user and issue a token.

    Returns:
        200 with ``token`` and ``user``, 400 on missing fields, 401 on bad
        credentials.
    """
    data = json_object_body(ctx)
    if isinstance(data, Failure):
        return data

    missing = validate_required_fields(data, ["username", "password"])
    if missing:
        return Failure.bad_request(missing)

    result = services.auth.login(data["username"].strip(), data["password"])
    if isinstance(result, Failure):
        return result
    return Success(result)


def me(ctx: RequestContext, services: Services) -> HandlerResult:
    """Return the identity the auth guard resolved."""
    if ctx.identity is None:
        return Failure.unauthorized()
    return Success(ctx.identity.to_dict())
