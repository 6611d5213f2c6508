"""
Tests for toolbroker/broker/dispatcher.py - routing, validation and handler isolation.
"""
import asyncio
from unittest.mock import patch

import pytest

from toolbroker.broker import (
    Dispatcher,
    HandlerFailure,
    InvocationRequest,
    Success,
    UnknownRoute,
    ValidationFailure,
)
from toolbroker.metrics import UNKNOWN_LABEL, BrokerMetrics

from conftest import make_module, make_registry

OPEN_SCHEMA = {"type": "object"}


def _definition(name):
    return {"name": name, "description": f"{name} operation", "inputSchema": OPEN_SCHEMA}


def _registry(handlers, category="lab", **kwargs):
    module = make_module(category, [_definition(n) for n in handlers], handlers, **kwargs)
    return make_registry(module)


class TestRouting:
    """Outcomes that never reach a handler."""

    @pytest.mark.asyncio
    async def test_unknown_category(self, billing_registry):
        outcome = await Dispatcher(billing_registry).dispatch(
            InvocationRequest("shipping", "createInvoice", {"customerId": "cus_1"})
        )

        assert isinstance(outcome, UnknownRoute)
        assert outcome.missing == "category"
        assert outcome.available == ("billing",)

    @pytest.mark.asyncio
    async def test_unknown_operation(self, billing_registry):
        outcome = await Dispatcher(billing_registry).dispatch(
            InvocationRequest("billing", "deleteInvoice", {})
        )

        assert isinstance(outcome, UnknownRoute)
        assert outcome.missing == "operation"

    @pytest.mark.asyncio
    async def test_validation_failure_does_not_invoke_handler(self, billing_registry, billing_calls):
        outcome = await Dispatcher(billing_registry).dispatch(
            InvocationRequest("billing", "createInvoice", {"amount": "ten"})
        )

        assert isinstance(outcome, ValidationFailure)
        assert {(v.path, v.reason) for v in outcome.violations} == {
            ("customerId", "missing"),
            ("amount", "type"),
        }
        assert billing_calls == []

    @pytest.mark.asyncio
    async def test_non_object_arguments(self, billing_registry):
        outcome = await Dispatcher(billing_registry).dispatch(
            InvocationRequest("billing", "listInvoices", ["draft"])
        )

        assert isinstance(outcome, ValidationFailure)
        assert outcome.violations[0].expected == "object"


class TestInvocation:
    """Handler execution and failure capture."""

    @pytest.mark.asyncio
    async def test_async_handler_success(self, billing_registry, billing_calls):
        outcome = await Dispatcher(billing_registry).dispatch(
            InvocationRequest("billing", "createInvoice", {"customerId": "cus_1"})
        )

        assert isinstance(outcome, Success)
        assert outcome.value["customerId"] == "cus_1"
        assert billing_calls[0][2] == {"account": "acct_test"}

    @pytest.mark.asyncio
    async def test_sync_handler_success(self, billing_registry):
        outcome = await Dispatcher(billing_registry).dispatch(
            InvocationRequest("billing", "listInvoices", {"status": "paid"})
        )

        assert isinstance(outcome, Success)
        assert outcome.value == [{"id": "in_1", "status": "paid"}]

    @pytest.mark.asyncio
    async def test_handler_gets_its_own_copy_of_args(self):
        def mutate(args, ctx):
            args["touched"] = True
            return args

        args = {"value": 1}
        outcome = await Dispatcher(_registry({"mutate": mutate})).dispatch(
            InvocationRequest("lab", "mutate", args)
        )

        assert outcome.value == {"value": 1, "touched": True}
        assert args == {"value": 1}

    @pytest.mark.asyncio
    async def test_sync_raise_is_captured(self):
        def explode(args, ctx):
            raise ValueError("bad input")

        outcome = await Dispatcher(_registry({"explode": explode})).dispatch(
            InvocationRequest("lab", "explode", {})
        )

        assert isinstance(outcome, HandlerFailure)
        assert isinstance(outcome.error, ValueError)
        assert not outcome.timed_out

    @pytest.mark.asyncio
    async def test_async_rejection_is_captured(self, billing_registry):
        outcome = await Dispatcher(billing_registry).dispatch(
            InvocationRequest("billing", "refundPayment", {"paymentId": "pay_1"})
        )

        assert isinstance(outcome, HandlerFailure)
        assert str(outcome.error) == "card processor rejected refund"

    @pytest.mark.asyncio
    async def test_hung_handler_times_out(self):
        async def hang(args, ctx):
            await asyncio.Event().wait()

        dispatcher = Dispatcher(_registry({"hang": hang}), timeout=0.05)
        outcome = await dispatcher.dispatch(InvocationRequest("lab", "hang", {}))

        assert isinstance(outcome, HandlerFailure)
        assert outcome.timed_out
        assert isinstance(outcome.error, TimeoutError)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timeout", [None, 30])
    async def test_handler_raised_timeout_is_an_ordinary_failure(self, timeout):
        async def upstream(args, ctx):
            raise TimeoutError("read timed out from upstream")

        dispatcher = Dispatcher(_registry({"upstream": upstream}), timeout=timeout)
        outcome = await dispatcher.dispatch(InvocationRequest("lab", "upstream", {}))

        assert isinstance(outcome, HandlerFailure)
        assert not outcome.timed_out
        assert str(outcome.error) == "read timed out from upstream"

    @pytest.mark.asyncio
    async def test_failure_log_is_sanitized(self):
        def leak(args, ctx):
            raise RuntimeError("auth failed for key sk_live_4242424242")

        dispatcher = Dispatcher(_registry({"leak": leak}, secrets=("sk_live_4242424242",)))
        with patch("toolbroker.broker.dispatcher.error") as log_error:
            outcome = await dispatcher.dispatch(InvocationRequest("lab", "leak", {}))

        assert isinstance(outcome, HandlerFailure)
        logged = repr(log_error.call_args)
        assert "sk_live_4242424242" not in logged
        assert log_error.call_args.kwargs["error_type"] == "RuntimeError"

    @pytest.mark.asyncio
    async def test_per_call_timeout_overrides_default(self):
        async def slow(args, ctx):
            await asyncio.sleep(0.2)
            return "done"

        dispatcher = Dispatcher(_registry({"slow": slow}), timeout=0.01)
        outcome = await dispatcher.dispatch(InvocationRequest("lab", "slow", {}), timeout=None)

        assert outcome == Success("done")

    @pytest.mark.asyncio
    async def test_hung_handler_does_not_block_other_calls(self):
        async def hang(args, ctx):
            await asyncio.Event().wait()

        def quick(args, ctx):
            return "ok"

        dispatcher = Dispatcher(_registry({"hang": hang, "quick": quick}, max_concurrency=None), timeout=0.5)

        hung = asyncio.create_task(dispatcher.dispatch(InvocationRequest("lab", "hang", {})))
        quick_outcome = await asyncio.wait_for(
            dispatcher.dispatch(InvocationRequest("lab", "quick", {})), 0.2
        )

        assert quick_outcome == Success("ok")
        assert isinstance(await hung, HandlerFailure)

    @pytest.mark.asyncio
    async def test_module_concurrency_bound(self):
        running = 0
        peak = 0

        async def work(args, ctx):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.02)
            running -= 1
            return args["n"]

        dispatcher = Dispatcher(_registry({"work": work}, max_concurrency=2), timeout=None)
        outcomes = await asyncio.gather(*[
            dispatcher.dispatch(InvocationRequest("lab", "work", {"n": n})) for n in range(6)
        ])

        assert [o.value for o in outcomes] == list(range(6))
        assert peak == 2


class TestMetrics:
    """Dispatch metrics."""

    @pytest.mark.asyncio
    async def test_outcomes_are_counted(self, billing_registry):
        metrics = BrokerMetrics()
        dispatcher = Dispatcher(billing_registry, metrics=metrics)

        await dispatcher.dispatch(InvocationRequest("billing", "createInvoice", {"customerId": "c"}))
        await dispatcher.dispatch(InvocationRequest("billing", "createInvoice", {}))
        await dispatcher.dispatch(InvocationRequest("billing", "refundPayment", {"paymentId": "p"}))
        await dispatcher.dispatch(InvocationRequest("shipping", "x", {}))

        assert metrics.dispatch_total.get() == 4
        assert metrics.dispatch_total.get(category="billing", outcome="success") == 1
        assert metrics.dispatch_total.get(category="billing", outcome="validation_failure") == 1
        assert metrics.dispatch_total.get(category="billing", outcome="handler_failure") == 1
        assert metrics.dispatch_total.get(category=UNKNOWN_LABEL, outcome="unknown_route") == 1
        assert metrics.dispatch_in_flight.get() == 0

    @pytest.mark.asyncio
    async def test_unknown_categories_share_one_label(self, billing_registry):
        metrics = BrokerMetrics()
        dispatcher = Dispatcher(billing_registry, metrics=metrics)

        for category in ("shipping", "fax", 'x"\ny'):
            await dispatcher.dispatch(InvocationRequest(category, "x", {}))

        assert metrics.dispatch_total.get(category=UNKNOWN_LABEL, outcome="unknown_route") == 3
        assert {dict(key)["category"] for key in metrics.dispatch_total.get_labelled()} == {UNKNOWN_LABEL}

    @pytest.mark.asyncio
    async def test_unknown_operation_keeps_known_category(self, billing_registry):
        metrics = BrokerMetrics()

        await Dispatcher(billing_registry, metrics=metrics).dispatch(InvocationRequest("billing", "voidInvoice", {}))

        assert metrics.dispatch_total.get(category="billing", outcome="unknown_route") == 1
