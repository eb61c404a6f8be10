"""
Flask glue between the WSGI transport and the request pipeline.

A single catch-all view hands every request to the pipeline; Flask's own
routing only decides that the request reaches it.  Transport-level HTTP
errors and anything that escapes the view are rendered through the same
error normalizer, so every non-2xx response has the same JSON shape.
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response, jsonify, request
from werkzeug.exceptions import HTTPException

from .context import JsonResponse, RequestContext
from .dependencies import get_dependencies

logger = logging.getLogger(__name__)

pipeline_bp = Blueprint("pipeline", __name__)

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def render(api_response: JsonResponse) -> Response:
    """Turn a committed :class:`JsonResponse` into a Flask response."""
    if api_response.status == 204 or api_response.payload is None:
        response = Response(status=api_response.status)
    else:
        response = jsonify(api_response.payload)
        response.status_code = api_response.status
    for name, value in api_response.headers.items():
        response.headers[name] = value
    return response


@pipeline_bp.route(
    "/", defaults={"path": ""}, methods=ALL_METHODS, provide_automatic_options=False
)
@pipeline_bp.route("/<path:path>", methods=ALL_METHODS, provide_automatic_options=False)
def dispatch(path: str) -> Response:
    """Run the current request through the pipeline."""
    deps = get_dependencies()
    ctx = RequestContext.from_flask(request)
    return render(deps.pipeline.handle(ctx))


@pipeline_bp.app_errorhandler(HTTPException)
def handle_http_exception(exc: HTTPException) -> Response:
    """Render transport-level errors (e.g. an unrouted HTTP method) as JSON."""
    normalizer = get_dependencies().normalizer
    return render(normalizer.to_response(normalizer.from_http_exception(exc)))


@pipeline_bp.app_errorhandler(Exception)
def handle_unexpected_exception(exc: Exception) -> Response:
    """Last resort: anything raised outside the pipeline becomes a generic 500."""
    normalizer = get_dependencies().normalizer
    return render(normalizer.to_response(normalizer.from_exception(exc)))
