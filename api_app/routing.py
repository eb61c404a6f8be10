"""
Router and dispatch.

Routes are declared as :class:`RouteEntry` objects grouped under a
:class:`Mount` prefix and compiled once into a :class:`RouteTable` backed by
a Werkzeug ``Map``.  The table is never mutated after construction, so
concurrent requests read it without locking.

Each entry's chain is fixed at build time: protected entries run the auth
guard before their handler, public entries run the handler alone.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Union

from werkzeug.exceptions import MethodNotAllowed, NotFound
from werkzeug.routing import Map, RequestRedirect, Rule

from .context import JsonResponse, RequestContext
from .errors import Failure
from .pipeline import Fail, Respond, Stage, StageResult, run_stages
from .services import Services

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Success:
    """Successful handler outcome."""

    payload: Any
    status: int = 200


HandlerResult = Union[Success, Failure]
Handler = Callable[[RequestContext, Services], HandlerResult]


@dataclass(frozen=True)
class RouteEntry:
    """Static mapping from (methods, path rule) to a handler."""

    name: str
    rule: str
    methods: frozenset[str]
    handler: Handler
    protected: bool = False


@dataclass(frozen=True)
class Mount:
    """A group of routes sharing a path prefix (``""`` for the root)."""

    prefix: str
    routes: tuple[RouteEntry, ...]


def route(
    rule: str,
    methods: Iterable[str],
    handler: Handler,
    *,
    name: str | None = None,
    protected: bool = False,
) -> RouteEntry:
    """Shorthand for declaring a :class:`RouteEntry`."""
    return RouteEntry(
        name=name or handler.__name__,
        rule=rule,
        methods=frozenset(m.upper() for m in methods),
        handler=handler,
        protected=protected,
    )


@dataclass(frozen=True)
class RouteMatch:
    entry: RouteEntry
    params: dict[str, Any] = field(default_factory=dict)
    chain: tuple[Stage, ...] = ()


class HandlerStage:
    """Last stage of a route chain: calls the handler and wraps its outcome."""

    def __init__(self, handler: Handler, services: Services) -> None:
        self.name = f"handler:{getattr(handler, '__name__', 'handler')}"
        self._handler = handler
        self._services = services

    def __call__(self, ctx: RequestContext) -> StageResult:
        result = self._handler(ctx, self._services)
        if isinstance(result, Success):
            return Respond(JsonResponse(status=result.status, payload=result.payload))
        if isinstance(result, Failure):
            return Fail(result)

        logger.error("Handler %s returned %r instead of a handler result", self.name, result)
        return Fail(Failure.internal())


class RouteTable:
    """
    Read-only compiled route table.

    Raises:
        ValueError: At construction, if two entries claim the same
            method and path rule, or two entries share a name in a mount.
    """

    def __init__(self, mounts: Iterable[Mount], *, guard: Stage, services: Services) -> None:
        rules: list[Rule] = []
        entries: dict[str, RouteEntry] = {}
        chains: dict[str, tuple[Stage, ...]] = {}
        claimed: set[tuple[str, str]] = set()

        for mount in mounts:
            prefix = mount.prefix.rstrip("/")
            for entry in mount.routes:
                endpoint = f"{prefix or '/'}:{entry.name}"
                if endpoint in entries:
                    raise ValueError(f"Duplicate route name {entry.name!r} under {mount.prefix!r}")

                full_rule = prefix + entry.rule
                for method in entry.methods:
                    if (method, full_rule) in claimed:
                        raise ValueError(f"Duplicate route for {method} {full_rule}")
                    claimed.add((method, full_rule))

                handler_stage = HandlerStage(entry.handler, services)
                chains[endpoint] = (guard, handler_stage) if entry.protected else (handler_stage,)
                entries[endpoint] = entry
                rules.append(Rule(full_rule, endpoint=endpoint, methods=sorted(entry.methods)))

        self._map = Map(
            rules,
            strict_slashes=False,
            merge_slashes=False,
            redirect_defaults=False,
        )
        self._entries = MappingProxyType(entries)
        self._chains = MappingProxyType(chains)

    @property
    def entries(self) -> tuple[RouteEntry, ...]:
        return tuple(self._entries.values())

    def match(self, method: str, path: str) -> RouteMatch | Failure:
        """
        Find the unique entry for *method* and *path*.

        Returns:
            A :class:`RouteMatch`, or a ``NOT_FOUND`` failure when no rule
            matches the path, or ``METHOD_NOT_ALLOWED`` (with ``Allow``)
            when the path matches under other methods only.
        """
        adapter = self._map.bind("localhost")
        try:
            endpoint, params = adapter.match(path_info=path, method=method.upper())
        except MethodNotAllowed as exc:
            return Failure.method_not_allowed(list(exc.valid_methods or []))
        except (NotFound, RequestRedirect):
            return Failure.not_found()

        return RouteMatch(
            entry=self._entries[endpoint],
            params=dict(params),
            chain=self._chains[endpoint],
        )


class RouterStage:
    """Resolve the route, then run its fixed chain (guard and/or handler)."""

    name = "router"

    def __init__(self, table: RouteTable) -> None:
        self._table = table

    def __call__(self, ctx: RequestContext) -> StageResult:
        match = self._table.match(ctx.method, ctx.path)
        if isinstance(match, Failure):
            return Fail(match)

        ctx.route = match.entry
        ctx.route_params = match.params
        return run_stages(match.chain, ctx)
