"""
Middleware chain engine.

A stage is any callable with a ``name`` that takes the request context and
returns exactly one of three outcomes:

* :data:`CONTINUE` -- pass control to the next stage,
* :class:`Respond` -- terminate with a response,
* :class:`Fail` -- terminate with a :class:`~api_app.errors.Failure`.

:func:`run_stages` executes a sequence of stages in declared order and stops
at the first terminating outcome.  :class:`Pipeline` drives the top-level
chain, commits exactly one response per request and then lets observers
(the request logger) see the committed response.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, Union, runtime_checkable

from .context import JsonResponse, RequestContext
from .errors import ErrorNormalizer, Failure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Continue:
    """Hand the request to the next stage."""


@dataclass(frozen=True)
class Respond:
    """Stop the chain and send *response*."""

    response: JsonResponse


@dataclass(frozen=True)
class Fail:
    """Stop the chain and hand *failure* to the error normalizer."""

    failure: Failure


CONTINUE = Continue()

StageResult = Union[Continue, Respond, Fail]


class Stage(Protocol):
    """One link of the middleware chain."""

    name: str

    def __call__(self, ctx: RequestContext) -> StageResult: ...


@runtime_checkable
class ResponseObserver(Protocol):
    """Stage that wants to see the committed response (side effects only)."""

    def after_response(self, ctx: RequestContext, response: JsonResponse) -> None: ...


def run_stages(stages: Sequence[Stage], ctx: RequestContext) -> StageResult:
    """
    Run *stages* in order until one responds or fails.

    Unexpected exceptions and malformed stage results are converted into an
    internal failure here, so nothing escapes the chain unclassified.

    Returns:
        The terminating ``Respond``/``Fail``, or ``CONTINUE`` when every
        stage passed control onwards.
    """
    ran: list[Stage] = ctx.state.setdefault("stages_run", [])
    for stage in stages:
        ran.append(stage)
        try:
            result = stage(ctx)
        except Exception:
            logger.exception("Stage %s raised for %s %s", stage.name, ctx.method, ctx.path)
            return Fail(Failure.internal())

        if isinstance(result, Continue):
            continue
        if isinstance(result, (Respond, Fail)):
            return result

        logger.error("Stage %s returned %r instead of a stage result", stage.name, result)
        return Fail(Failure.internal())
    return CONTINUE


class Pipeline:
    """
    The request-handling pipeline: ordered stages plus the error normalizer.

    Built once at startup; holds no per-request state, so one instance
    serves concurrent requests.
    """

    def __init__(self, stages: Sequence[Stage], normalizer: ErrorNormalizer) -> None:
        self._stages = tuple(stages)
        self._normalizer = normalizer

    @property
    def stages(self) -> tuple[Stage, ...]:
        return self._stages

    def handle(self, ctx: RequestContext) -> JsonResponse:
        """Run the chain for *ctx* and return the single committed response."""
        outcome = run_stages(self._stages, ctx)

        if isinstance(outcome, Respond):
            response = outcome.response
        elif isinstance(outcome, Fail):
            response = self._normalizer.to_response(outcome.failure)
        else:
            # Nothing answered: same as an unmatched route.
            response = self._normalizer.to_response(Failure.not_found())

        ctx.commit(response)
        self._notify(ctx, response)
        return response

    def _notify(self, ctx: RequestContext, response: JsonResponse) -> None:
        for stage in reversed(ctx.state.get("stages_run", [])):
            if not isinstance(stage, ResponseObserver):
                continue
            try:
                stage.after_response(ctx, response)
            except Exception:
                logger.exception("Observer %s failed after response", stage.name)
