"""
Immutable dependency bundle built once per application.

``create_app`` assembles collaborators, the route table and the pipeline
into an :class:`AppDependencies` and stores it on the Flask app.  Nothing
here is a module-level singleton, so tests can build as many independent
applications as they like.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from flask import Flask, current_app

from .errors import ErrorNormalizer
from .middleware import AuthGuard, JsonBodyParser, RequestLogger
from .pipeline import Pipeline
from .routing import Mount, RouteTable, RouterStage
from .services import Services

EXTENSION_KEY = "api_app"


@dataclass(frozen=True)
class AppDependencies:
    settings: dict[str, Any]
    services: Services
    route_table: RouteTable
    normalizer: ErrorNormalizer
    pipeline: Pipeline


def build_dependencies(
    settings: dict[str, Any],
    services: Services,
    mounts: tuple[Mount, ...],
) -> AppDependencies:
    """
    Wire the pipeline: logger, body parser, router (guard per protected route).
    """
    normalizer = ErrorNormalizer()
    guard = AuthGuard(services.auth)
    route_table = RouteTable(mounts, guard=guard, services=services)
    pipeline = Pipeline(
        stages=(
            RequestLogger(),
            JsonBodyParser(max_bytes=int(settings.get("MAX_JSON_BODY_BYTES", 100 * 1024))),
            RouterStage(route_table),
        ),
        normalizer=normalizer,
    )
    return AppDependencies(
        settings=settings,
        services=services,
        route_table=route_table,
        normalizer=normalizer,
        pipeline=pipeline,
    )


def get_dependencies(app: Flask | None = None) -> AppDependencies:
    """Return the bundle of *app*, or of the current app when omitted."""
    target = app if app is not None else current_app
    return target.extensions[EXTENSION_KEY]
