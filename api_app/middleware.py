"""
Cross-cutting pipeline stages.

``RequestLogger`` observes every request/response pair, ``JsonBodyParser``
turns a declared JSON body into a Python value before any handler runs, and
``AuthGuard`` resolves the caller's identity on protected routes.
"""

from __future__ import annotations

import json
import logging
import re
import time

from flask import current_app

from .context import JsonResponse, RequestContext
from .errors import Failure, FailureKind
from .pipeline import CONTINUE, Fail, StageResult
from .services import CredentialVerifier, Identity, Rejected

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("api_app.access")

# RFC 6750 b64token (token68) alphabet.
BEARER_TOKEN_RE = re.compile(r"^[A-Za-z0-9\-._~+/]+=*$")
MISSING_CREDENTIAL = "Missing or invalid Authorization header"
INVALID_CREDENTIAL = "Invalid or expired token"


class RequestLogger:
    """
    Access logging stage.

    Always continues.  Once the response is committed it emits one record
    per request to ``api_app.access`` with method, path, status and
    duration as structured ``extra`` fields.
    """

    name = "logger"

    def __call__(self, ctx: RequestContext) -> StageResult:
        ctx.started_at = time.perf_counter()
        return CONTINUE

    def after_response(self, ctx: RequestContext, response: JsonResponse) -> None:
        duration_ms = (time.perf_counter() - ctx.started_at) * 1000
        access_logger.info(
            "%s %s -> %s (%.1fms)",
            ctx.method,
            ctx.path,
            response.status,
            duration_ms,
            extra={
                "request_id": ctx.request_id,
                "method": ctx.method,
                "path": ctx.path,
                "status": response.status,
                "duration_ms": round(duration_ms, 3),
            },
        )


class JsonBodyParser:
    """
    Parse JSON request bodies into ``ctx.body``.

    A declared length over the limit is refused whatever the content type.
    Only bodies declared as JSON are decoded, through the application's JSON
    provider.  An empty body leaves ``ctx.body`` as ``None``; handlers that
    need a body reject that themselves.  Like the usual strict JSON
    middleware, the top-level value must be an object or an array.
    """

    name = "body_parser"

    def __init__(self, max_bytes: int = 100 * 1024) -> None:
        self.max_bytes = max_bytes

    def _too_large(self) -> Fail:
        return Fail(
            Failure(
                FailureKind.PAYLOAD_TOO_LARGE,
                detail=f"Limit is {self.max_bytes} bytes",
            )
        )

    def __call__(self, ctx: RequestContext) -> StageResult:
        ctx.body = None
        if ctx.content_length is not None and ctx.content_length > self.max_bytes:
            return self._too_large()
        if not ctx.is_json:
            return CONTINUE
        if len(ctx.raw_body) > self.max_bytes:
            return self._too_large()
        if not ctx.raw_body.strip():
            return CONTINUE

        try:
            parsed = current_app.json.loads(ctx.raw_body)
        except UnicodeDecodeError as exc:
            return Fail(Failure.bad_request("Malformed JSON body", f"Invalid UTF-8: {exc.reason}"))
        except json.JSONDecodeError as exc:
            return Fail(
                Failure.bad_request(
                    "Malformed JSON body",
                    f"{exc.msg} at line {exc.lineno} column {exc.colno}",
                )
            )

        if not isinstance(parsed, (dict, list)):
            return Fail(
                Failure.bad_request(
                    "Malformed JSON body", "Top-level value must be an object or array"
                )
            )

        ctx.body = parsed
        return CONTINUE


class AuthGuard:
    """
    Resolve the bearer credential to an :class:`Identity`.

    Malformed or missing credentials are refused before the verifier is
    called.  The verifier is called exactly once; its failures (for example
    an unreachable auth service) are passed on unchanged.
    """

    name = "auth_guard"

    def __init__(self, verifier: CredentialVerifier) -> None:
        self._verifier = verifier

    @staticmethod
    def extract_bearer_token(ctx: RequestContext) -> str | None:
        auth_header = ctx.headers.get("Authorization", "")
        scheme, _, token = auth_header.partition(" ")
        if scheme.lower() != "bearer":
            return None
        token = token.strip()
        if not token or not BEARER_TOKEN_RE.match(token):
            return None
        return token

    def __call__(self, ctx: RequestContext) -> StageResult:
        token = self.extract_bearer_token(ctx)
        if token is None:
            return Fail(Failure.unauthorized(MISSING_CREDENTIAL))

        outcome = self._verifier.verify_credential(token)
        if isinstance(outcome, Failure):
            return Fail(outcome)
        if isinstance(outcome, Rejected):
            logger.info("Credential rejected for %s %s: %s", ctx.method, ctx.path, outcome.reason)
            return Fail(Failure.unauthorized(INVALID_CREDENTIAL))
        if not isinstance(outcome, Identity):
            logger.error("Verifier returned %r instead of an identity", outcome)
            return Fail(Failure.internal())

        ctx.identity = outcome
        return CONTINUE
