"""
Failure taxonomy and the error normalizer.

Every component reports problems as :class:`Failure` values instead of
building its own error response.  The :class:`ErrorNormalizer` is the single
place that turns a failure into an HTTP status and the uniform JSON error
envelope::

    {"error": "<kind>", "message": "<human readable>", "detail": "<optional>"}

The kind-to-status table is fixed and never varies by route.  Internal
failures always carry a generic message so stack traces and internal
identifiers never reach the client.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from werkzeug.exceptions import HTTPException

from .context import JsonResponse

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    """Enumeration of failure classifications understood by the normalizer."""

    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    CONFLICT = "conflict"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    INTERNAL = "internal"


STATUS_BY_KIND: Mapping[FailureKind, int] = MappingProxyType(
    {
        FailureKind.BAD_REQUEST: 400,
        FailureKind.UNAUTHORIZED: 401,
        FailureKind.NOT_FOUND: 404,
        FailureKind.METHOD_NOT_ALLOWED: 405,
        FailureKind.CONFLICT: 409,
        FailureKind.PAYLOAD_TOO_LARGE: 413,
        FailureKind.UPSTREAM_UNAVAILABLE: 502,
        FailureKind.INTERNAL: 500,
    }
)

DEFAULT_MESSAGES: Mapping[FailureKind, str] = MappingProxyType(
    {
        FailureKind.BAD_REQUEST: "Bad request",
        FailureKind.UNAUTHORIZED: "Unauthorized",
        FailureKind.NOT_FOUND: "Resource not found",
        FailureKind.METHOD_NOT_ALLOWED: "Method not allowed",
        FailureKind.CONFLICT: "Conflict",
        FailureKind.PAYLOAD_TOO_LARGE: "Request body too large",
        FailureKind.UPSTREAM_UNAVAILABLE: "Upstream service unavailable",
        FailureKind.INTERNAL: "Internal server error",
    }
)

_KIND_BY_STATUS = {status: kind for kind, status in STATUS_BY_KIND.items()}


@dataclass(frozen=True)
class Failure:
    """
    A classified failure flowing towards the error normalizer.

    Attributes:
        kind: Classification that decides the HTTP status.
        message: Client-facing summary.  Falls back to the kind's default.
        detail: Optional extra context (e.g. a JSON parse error position).
        headers: Response headers the failure requires (``Allow`` on 405).
    """

    kind: FailureKind
    message: str | None = None
    detail: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def status(self) -> int:
        return STATUS_BY_KIND.get(self.kind, 500)

    @classmethod
    def bad_request(cls, message: str | None = None, detail: str | None = None) -> Failure:
        return cls(FailureKind.BAD_REQUEST, message, detail)

    @classmethod
    def unauthorized(cls, message: str | None = None) -> Failure:
        return cls(FailureKind.UNAUTHORIZED, message)

    @classmethod
    def not_found(cls, message: str | None = None) -> Failure:
        return cls(FailureKind.NOT_FOUND, message)

    @classmethod
    def method_not_allowed(cls, allowed: list[str]) -> Failure:
        allow = ", ".join(sorted(allowed))
        return cls(
            FailureKind.METHOD_NOT_ALLOWED,
            detail=f"Allowed methods: {allow}",
            headers={"Allow": allow},
        )

    @classmethod
    def conflict(cls, message: str | None = None) -> Failure:
        return cls(FailureKind.CONFLICT, message)

    @classmethod
    def upstream_unavailable(cls, message: str | None = None) -> Failure:
        return cls(FailureKind.UPSTREAM_UNAVAILABLE, message)

    @classmethod
    def internal(cls) -> Failure:
        return cls(FailureKind.INTERNAL)


class ErrorNormalizer:
    """Terminal stage turning failures and stray exceptions into JSON responses."""

    def to_response(self, failure: Failure) -> JsonResponse:
        """
        Render *failure* as the uniform JSON error envelope.

        Internal failures are stripped down to the generic message so that
        nothing about the cause leaks to the client.
        """
        kind = failure.kind if failure.kind in STATUS_BY_KIND else FailureKind.INTERNAL
        payload: dict[str, Any] = {"error": kind.value}

        if kind is FailureKind.INTERNAL:
            payload["message"] = DEFAULT_MESSAGES[kind]
        else:
            payload["message"] = failure.message or DEFAULT_MESSAGES[kind]
            if failure.detail:
                payload["detail"] = failure.detail

        return JsonResponse(
            status=STATUS_BY_KIND[kind],
            payload=payload,
            headers=dict(failure.headers),
        )

    def from_exception(self, exc: BaseException) -> Failure:
        """Log an unexpected exception with its traceback and classify it as internal."""
        logger.exception("Unhandled exception: %r", exc, exc_info=exc)
        return Failure.internal()

    def from_http_exception(self, exc: HTTPException) -> Failure:
        """
        Classify a Werkzeug HTTP exception raised by the transport layer.

        Statuses without a dedicated kind collapse to ``INTERNAL`` when they
        are server errors and to ``BAD_REQUEST`` otherwise.
        """
        status = exc.code or 500
        kind = _KIND_BY_STATUS.get(status)
        if kind is None:
            kind = FailureKind.INTERNAL if status >= 500 else FailureKind.BAD_REQUEST

        valid_methods = getattr(exc, "valid_methods", None)
        if kind is FailureKind.METHOD_NOT_ALLOWED and valid_methods:
            return Failure.method_not_allowed(list(valid_methods))
        return Failure(kind)
