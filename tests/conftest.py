"""
Shared test fixtures for the toolkit broker tests.
"""
import os
import tempfile

import pytest

# Keep test log files out of the repository before any toolbroker import
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="toolbroker-logs-"))
os.environ.setdefault("HEALTH_PORT", "0")

from toolbroker.catalog import IntegrationModule, IntegrationRegistry, OperationDescriptor  # noqa: E402


CREATE_INVOICE = {
    "name": "createInvoice",
    "description": "Create a draft invoice for a customer",
    "inputSchema": {
        "type": "object",
        "properties": {
            "customerId": {"type": "string", "description": "Customer identifier"},
            "amount": {"type": "number", "description": "Amount in the account currency"},
        },
        "required": ["customerId"],
    },
    "subcategory": "invoices",
}

LIST_INVOICES = {
    "name": "listInvoices",
    "description": "List invoices, newest first",
    "inputSchema": {
        "type": "object",
        "properties": {
            "status": {"type": "string", "enum": ["draft", "open", "paid"]},
        },
    },
    "subcategory": "invoices",
}

REFUND_PAYMENT = {
    "name": "refundPayment",
    "description": "Refund a captured payment",
    "inputSchema": {
        "type": "object",
        "properties": {"paymentId": {"type": "string"}},
        "required": ["paymentId"],
    },
    "subcategory": "payments",
}


def make_module(category, definitions, handlers, **kwargs):
    """IntegrationModule from tool definition dicts."""
    return IntegrationModule(
        category=category,
        operations=[OperationDescriptor.from_tool_definition(category, d) for d in definitions],
        handlers=dict(handlers),
        **kwargs,
    )


def make_registry(*modules, freeze=True):
    registry = IntegrationRegistry()
    for module in modules:
        registry.register(module)
    return registry.freeze() if freeze else registry


# ============ Fixtures ============

@pytest.fixture
def billing_calls():
    """Arguments every billing handler was invoked with."""
    return []


@pytest.fixture
def billing_module(billing_calls):
    """The sample billing integration: one async, one sync, one failing handler."""

    async def create_invoice(args, ctx):
        billing_calls.append(("createInvoice", args, ctx))
        return {"id": "in_1", "customerId": args["customerId"], "status": "draft"}

    def list_invoices(args, ctx):
        billing_calls.append(("listInvoices", args, ctx))
        return [{"id": "in_1", "status": args.get("status") or "draft"}]

    async def refund_payment(args, ctx):
        raise RuntimeError("card processor rejected refund")

    return make_module(
        "billing",
        [CREATE_INVOICE, LIST_INVOICES, REFUND_PAYMENT],
        {
            "createInvoice": create_invoice,
            "listInvoices": list_invoices,
            "refundPayment": refund_payment,
        },
        context={"account": "acct_test"},
    )


@pytest.fixture
def registry_factory():
    """Build a frozen registry from modules."""
    return make_registry


@pytest.fixture
def billing_registry(billing_module):
    return make_registry(billing_module)
