"""
Dispatcher

Executes call_operation: resolve the route, validate the arguments,
invoke the handler under a timeout and the owning module's concurrency
bound, and capture the result as an invocation outcome. Nothing raised by
a handler escapes dispatch().
"""

import asyncio
import inspect
import time
from typing import Any, Optional

from toolbroker import config
from toolbroker.catalog.errors import UnknownCategory, UnknownOperation
from toolbroker.catalog.registry import IntegrationRegistry, Route
from toolbroker.catalog.schema import Violation, kind_of
from toolbroker.logger import info, error, debug
from toolbroker.metrics import UNKNOWN_LABEL, BrokerMetrics

from .envelope import sanitize_error
from .outcome import (
    HandlerFailure,
    InvocationRequest,
    Success,
    UnknownRoute,
    ValidationFailure,
)

_UNSET = object()


class Dispatcher:
    """
    Routes invocation requests to integration handlers.

    No retries are attempted; only an integration knows whether its
    operations are idempotent.
    """

    def __init__(
        self,
        registry: IntegrationRegistry,
        timeout: Any = _UNSET,
        metrics: BrokerMetrics = None,
    ):
        self.registry = registry
        self.timeout = config.dispatch_timeout_seconds() if timeout is _UNSET else timeout
        self.metrics = metrics

    async def dispatch(self, request: InvocationRequest, timeout: Any = _UNSET):
        """Dispatch one request and return its outcome. Never raises for handler errors."""
        category, name = request.category, request.name

        try:
            route = self.registry.route(category, name)
        except UnknownCategory:
            self._record(UNKNOWN_LABEL, "unknown_route")
            return UnknownRoute(category, name, "category", self.registry.categories())
        except UnknownOperation:
            self._record(category, "unknown_route")
            return UnknownRoute(category, name, "operation")

        violations = self.validate(route, request.args)
        if violations:
            debug("Arguments rejected", category=category, operation=name,
                  violations=len(violations))
            self._record(category, "validation_failure")
            return ValidationFailure.of(violations, category, name)

        limit = self.timeout if timeout is _UNSET else timeout
        info(f"Dispatching operation: {category}/{name}",
             category=category, operation=name, params=sorted(request.args))

        if self.metrics:
            self.metrics.dispatch_in_flight.inc(category=category)
        started = time.monotonic()
        try:
            outcome = await self._invoke(route, request.args, limit)
        except asyncio.TimeoutError:
            # only wait_for raises here; handler errors are already outcomes
            outcome = HandlerFailure(TimeoutError(f"no result after {limit:g}s"), category, name,
                                     timed_out=True, secrets=route.module.secrets)
        finally:
            if self.metrics:
                self.metrics.dispatch_in_flight.dec(category=category)

        if isinstance(outcome, HandlerFailure):
            error(f"Operation {category}/{name} {'timed out' if outcome.timed_out else 'failed'}",
                  category=category,
                  operation=name,
                  error_type=type(outcome.error).__name__,
                  reason=sanitize_error(outcome.error, outcome.secrets))
            self._record(category, "handler_failure", started)
        else:
            debug(f"Operation {category}/{name} succeeded", category=category, operation=name)
            self._record(category, "success", started)
        return outcome

    def validate(self, route: Route, args: Any) -> list[Violation]:
        """All violations of the route's parameter schema by ``args``."""
        if not isinstance(args, dict):
            return [Violation("", "object", kind_of(args), "type")]
        return route.descriptor.parameter_schema.validate(args)

    async def _invoke(self, route: Route, args: dict, timeout: Optional[float]):
        call = self._guarded(route, args)
        if timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout)

    async def _guarded(self, route: Route, args: dict):
        """Run the handler; anything it raises becomes a HandlerFailure."""
        descriptor = route.descriptor
        try:
            return Success(await self._call(route, args))
        except Exception as e:
            return HandlerFailure(e, descriptor.category, descriptor.name, secrets=route.module.secrets)

    async def _call(self, route: Route, args: dict):
        limiter = route.module.limiter
        if limiter is None:
            return await self._run_handler(route, args)
        async with limiter:
            return await self._run_handler(route, args)

    @staticmethod
    async def _run_handler(route: Route, args: dict):
        # shallow copy per call; handlers may mutate their args
        result = route.handler(dict(args), route.module.context)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _record(self, category: str, outcome: str, started: float = None) -> None:
        if not self.metrics:
            return
        duration = time.monotonic() - started if started is not None else 0
        self.metrics.record_dispatch(category, outcome, duration)
