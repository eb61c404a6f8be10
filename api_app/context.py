"""
Per-request context and the write-once JSON response.

A :class:`RequestContext` is built from the Flask request at the start of
the pipeline and owned by that one request: stages read the captured
method, path, headers and raw body, and write their results (parsed body,
resolved identity, matched route) into it.  The response can be committed
exactly once.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from werkzeug.datastructures import Headers, MultiDict

if TYPE_CHECKING:
    from flask import Request

    from .routing import RouteEntry
    from .services import Identity


class ResponseAlreadyCommitted(RuntimeError):
    """Raised when something tries to write a second response for one request."""


@dataclass(frozen=True)
class JsonResponse:
    """Status, JSON payload and extra headers of a finished request."""

    status: int
    payload: Any = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class RequestContext:
    """
    Mutable state for a single request as it moves through the pipeline.

    Attributes:
        method: Upper-case HTTP method.
        path: Request path without query string.
        headers: Case-insensitive request headers.
        raw_body: Undecoded request body; left empty unless the body is
            declared as JSON and within the configured size limit.
        is_json: Whether the declared content type is JSON.
        content_length: Declared ``Content-Length``, ``None`` when absent.
        query: Query-string arguments.
        request_id: Correlation id (``X-Request-ID`` or a fresh one).
        started_at: Monotonic timestamp taken when the context was built.
        body: Parsed JSON body, ``None`` when absent.
        identity: Identity resolved by the auth guard.
        route: Matched route entry.
        route_params: Values captured from the path (e.g. ``task_id``).
        state: Free-form bag for stages that need to share anything else.
    """

    method: str
    path: str
    headers: Headers = field(default_factory=Headers)
    raw_body: bytes = b""
    is_json: bool = False
    content_length: int | None = None
    query: MultiDict = field(default_factory=MultiDict)
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: float = field(default_factory=time.perf_counter)
    body: Any = None
    identity: Identity | None = None
    route: RouteEntry | None = None
    route_params: dict[str, Any] = field(default_factory=dict)
    state: dict[str, Any] = field(default_factory=dict)
    _response: JsonResponse | None = field(default=None, init=False, repr=False)

    @classmethod
    def from_flask(cls, request: Request) -> RequestContext:
        """
        Capture everything the pipeline needs from the active Flask request.

        The body stream is only read for JSON requests whose declared length
        fits ``MAX_CONTENT_LENGTH``; undeclared lengths are capped by
        Werkzeug while reading.
        """
        limit = request.max_content_length
        declared = request.content_length
        oversized = limit is not None and declared is not None and declared > limit
        read_body = request.is_json and not oversized
        return cls(
            method=request.method.upper(),
            path=request.path,
            headers=Headers(request.headers),
            raw_body=request.get_data(cache=True) if read_body else b"",
            is_json=request.is_json,
            content_length=declared,
            query=MultiDict(request.args),
            request_id=request.headers.get("X-Request-ID") or uuid.uuid4().hex,
        )

    @property
    def committed(self) -> bool:
        return self._response is not None

    @property
    def response(self) -> JsonResponse | None:
        return self._response

    def commit(self, response: JsonResponse) -> None:
        """Record the final response; a request gets exactly one."""
        if self._response is not None:
            raise ResponseAlreadyCommitted(
                f"Response already committed for {self.method} {self.path}"
            )
        self._response = response
