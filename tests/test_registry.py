"""
Tests for toolbroker/catalog/registry.py - composition, routing, search and health.
"""
import pytest

from toolbroker.catalog import (
    DuplicateCategory,
    DuplicateOperationName,
    HandlerMismatch,
    IntegrationRegistry,
    RegistryFrozen,
    UnknownCategory,
    UnknownOperation,
)

from conftest import CREATE_INVOICE, LIST_INVOICES, make_module, make_registry


def _noop(args, ctx):
    return None


def _module(category, *names):
    definitions = [{"name": n, "description": f"{n} operation", "inputSchema": {"type": "object"}} for n in names]
    return make_module(category, definitions, {n: _noop for n in names})


class TestComposition:
    """Startup registration checks."""

    def test_duplicate_category_is_rejected(self):
        registry = IntegrationRegistry()
        registry.register(_module("billing", "a"))

        with pytest.raises(DuplicateCategory) as exc_info:
            registry.register(_module("billing", "b"))

        assert exc_info.value.category == "billing"

    def test_duplicate_operation_name_is_rejected(self):
        module = make_module(
            "billing",
            [CREATE_INVOICE, CREATE_INVOICE],
            {"createInvoice": _noop},
        )

        with pytest.raises(DuplicateOperationName):
            IntegrationRegistry().register(module)

    def test_same_name_in_two_categories_is_allowed(self):
        registry = make_registry(_module("billing", "create"), _module("shipping", "create"))

        assert registry.has_operation("billing", "create")
        assert registry.has_operation("shipping", "create")
        assert registry.total_operations() == 2

    def test_missing_handler_is_rejected(self):
        module = make_module("billing", [CREATE_INVOICE, LIST_INVOICES], {"createInvoice": _noop})

        with pytest.raises(HandlerMismatch) as exc_info:
            IntegrationRegistry().register(module)

        assert exc_info.value.missing_handlers == ("listInvoices",)

    def test_orphaned_handler_is_rejected(self):
        module = make_module("billing", [CREATE_INVOICE], {"createInvoice": _noop, "voidInvoice": _noop})

        with pytest.raises(HandlerMismatch) as exc_info:
            IntegrationRegistry().register(module)

        assert exc_info.value.orphaned_handlers == ("voidInvoice",)

    def test_register_after_freeze_is_rejected(self):
        registry = make_registry(_module("billing", "a"))

        with pytest.raises(RegistryFrozen):
            registry.register(_module("shipping", "b"))

    def test_freeze_is_idempotent(self):
        registry = make_registry(_module("billing", "a"))

        assert registry.freeze() is registry
        assert registry.frozen


class TestRouting:
    """Enumeration order and route resolution."""

    def test_categories_are_sorted(self):
        registry = make_registry(_module("twilio", "a"), _module("billing", "a"), _module("resend", "a"))

        assert registry.categories() == ("billing", "resend", "twilio")

    def test_operations_are_sorted_by_name(self):
        registry = make_registry(_module("billing", "void", "create", "list"))

        assert [d.name for d in registry.operations_in("billing")] == ["create", "list", "void"]

    def test_resolve_returns_registered_handler(self, billing_registry, billing_module):
        handler = billing_registry.resolve("billing", "createInvoice")

        assert handler is billing_module.handlers["createInvoice"]

    def test_unknown_category(self, billing_registry):
        with pytest.raises(UnknownCategory) as exc_info:
            billing_registry.resolve("shipping", "createInvoice")

        assert str(exc_info.value) == "Unknown category: shipping"

    def test_unknown_operation(self, billing_registry):
        with pytest.raises(UnknownOperation):
            billing_registry.resolve("billing", "deleteInvoice")

    def test_unhashable_category_is_unknown(self, billing_registry):
        with pytest.raises(UnknownCategory):
            billing_registry.module(["billing"])

    def test_route_lookup_is_case_sensitive(self, billing_registry):
        with pytest.raises(UnknownCategory):
            billing_registry.resolve("Billing", "createInvoice")
        with pytest.raises(UnknownOperation):
            billing_registry.resolve("billing", "createinvoice")

    def test_subcategories(self, billing_registry):
        assert billing_registry.subcategories("billing") == ("invoices", "payments")


class TestSearch:
    """Keyword search over names, descriptions and parameters."""

    def test_ranks_by_number_of_matching_terms(self, billing_registry):
        hits = billing_registry.search("refund payment")

        assert hits[0].descriptor.name == "refundPayment"
        assert hits[0].score == 2

    def test_matches_parameter_enum_values(self, billing_registry):
        hits = billing_registry.search("paid")

        assert [hit.descriptor.name for hit in hits] == ["listInvoices"]
        assert hits[0].matched == ("schema",)

    def test_blank_query_returns_nothing(self, billing_registry):
        assert billing_registry.search("   ") == []

    def test_limit_and_category_filter(self, billing_module):
        registry = make_registry(billing_module, _module("shipping", "createInvoice"))

        assert len(registry.search("invoice", limit=1)) == 1
        hits = registry.search("invoice", category="shipping")
        assert [hit.category for hit in hits] == ["shipping"]

    def test_search_hit_to_dict(self, billing_registry):
        data = billing_registry.search("customer")[0].to_dict()

        assert data["category"] == "billing"
        assert data["name"] == "createInvoice"


class TestHealthReport:
    """Catalog health report."""

    def test_counts_valid_operations(self, billing_registry):
        report = billing_registry.health_report()

        assert report["total"] == 3
        assert report["valid"] == 3
        assert report["invalid_count"] == 0
        assert report["categories"] == {"billing": 3}

    def test_flags_bad_names_and_missing_descriptions(self):
        module = make_module(
            "billing",
            [
                {"name": "has space", "description": "x"},
                {"name": "undescribed", "description": ""},
            ],
            {"has space": _noop, "undescribed": _noop},
        )

        report = make_registry(module).health_report()

        assert report["invalid_count"] == 2
        reasons = {item["name"]: item["reason"] for item in report["sample_invalid"]}
        assert reasons["undescribed"] == "missing or invalid description"
        assert "doesn't match" in reasons["has space"]
