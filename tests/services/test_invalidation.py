"""Tests for the invalidation dispatcher and its relationship table."""

import pytest

from quotesync.services.cache import QueryKeys
from quotesync.services.invalidation import (
    INVALIDATION_RULES,
    InvalidationDispatcher,
    InvalidationTarget,
    Scope,
    normalize_mutation_type,
)

ORDER_LISTS = [QueryKeys.orders.list(), QueryKeys.orders.list({"status": "PENDING"})]
QUOTATION_LISTS = [QueryKeys.quotations.list(), QueryKeys.quotations.list({"customerId": "C1"})]


@pytest.fixture
def seeded(cache):
    for key in [
        *ORDER_LISTS,
        *QUOTATION_LISTS,
        QueryKeys.quotations.list({"customerId": "C2"}),
        QueryKeys.quotations.detail("Q1"),
        QueryKeys.quotations.detail("Q2"),
        QueryKeys.quotations.analytics(),
        QueryKeys.orders.detail("O1"),
        QueryKeys.customers.detail("C1"),
        QueryKeys.customers.list(),
        QueryKeys.analytics.dashboard(),
        QueryKeys.analytics.performance(),
        QueryKeys.products.list(),
    ]:
        cache.set(key, {"seed": True})
    return cache


def _keys(*keys) -> set[str]:
    return {key.key for key in keys}


class TestDispatcher:
    """Test what each mutation marks stale."""

    def test_order_create_from_quotation(self, seeded, dispatcher) -> None:
        invalidated = dispatcher.on_mutation_settled(
            "orders.create",
            resource_id="O2",
            related_ids={"quotationId": "Q1"},
        )

        expected = _keys(
            *ORDER_LISTS,
            *QUOTATION_LISTS,
            QueryKeys.quotations.list({"customerId": "C2"}),
            QueryKeys.quotations.detail("Q1"),
            QueryKeys.analytics.dashboard(),
            QueryKeys.analytics.performance(),
        )
        assert invalidated == expected
        assert not seeded.is_stale(QueryKeys.quotations.detail("Q2"))
        assert not seeded.is_stale(QueryKeys.orders.detail("O1"))
        assert not seeded.is_stale(QueryKeys.products.list())

    def test_customer_update_touches_only_that_customers_quotations(self, seeded, dispatcher) -> None:
        invalidated = dispatcher.on_mutation_settled("customers.update", resource_id="C1")

        assert QueryKeys.quotations.list({"customerId": "C1"}).key in invalidated
        assert QueryKeys.quotations.list({"customerId": "C2"}).key not in invalidated
        assert QueryKeys.customers.detail("C1").key in invalidated
        assert QueryKeys.customers.list().key in invalidated

    def test_order_status_change(self, seeded, dispatcher) -> None:
        invalidated = dispatcher.on_mutation_settled("orders.status", resource_id="O1")

        assert QueryKeys.orders.detail("O1").key in invalidated
        assert _keys(*ORDER_LISTS) <= invalidated
        assert QueryKeys.quotations.detail("Q1").key not in invalidated

    def test_missing_ids_skip_targeted_entries(self, seeded, dispatcher) -> None:
        invalidated = dispatcher.on_mutation_settled("orders.create")

        assert QueryKeys.quotations.detail("Q1").key not in invalidated
        assert _keys(*ORDER_LISTS) <= invalidated

    def test_mutation_type_is_case_insensitive(self, seeded, dispatcher) -> None:
        assert dispatcher.on_mutation_settled("Orders.CREATE") == dispatcher.on_mutation_settled(
            "orders.create",
        )
        assert normalize_mutation_type(" Quotations.Approve ") == "quotations.approve"

    def test_unknown_mutation_uses_resource_fallback(self, seeded, dispatcher) -> None:
        invalidated = dispatcher.on_mutation_settled("products.archive", resource_id="P1")

        assert QueryKeys.products.list().key in invalidated
        assert QueryKeys.analytics.dashboard().key in invalidated

    def test_custom_rules(self, seeded) -> None:
        dispatcher = InvalidationDispatcher(
            seeded,
            {"orders.note": (InvalidationTarget("orders", "detail", Scope.SELF),)},
        )

        assert dispatcher.on_mutation_settled("orders.note", resource_id="O1") == {
            QueryKeys.orders.detail("O1").key,
        }

    def test_repeated_dispatch_is_idempotent(self, seeded, dispatcher) -> None:
        first = dispatcher.on_mutation_settled("quotations.approve", resource_id="Q1")
        second = dispatcher.on_mutation_settled("quotations.approve", resource_id="Q1")

        assert first == second


def test_every_rule_targets_known_scopes() -> None:
    for targets in INVALIDATION_RULES.values():
        for target in targets:
            if target.scope in (Scope.RELATED, Scope.PARAMS):
                assert target.related_key
