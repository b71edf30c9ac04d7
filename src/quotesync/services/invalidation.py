"""Mapping from settled mutations to the cache entries they make stale.

``INVALIDATION_RULES`` is the relationship table between resources: creating
an order, for example, changes the order lists, the quotation it was
converted from, the quotation lists and every analytics aggregate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from quotesync.services.cache.keys import (
    CacheKey,
    KeyMatcher,
    operation,
    params_match,
    resource,
)
from quotesync.services.cache.store import CacheStore

logger = logging.getLogger(__name__)


class Scope(str, Enum):
    """Which entries of a target operation are affected."""

    ALL = "all"
    SELF = "self"
    RELATED = "related"
    PARAMS = "params"


@dataclass(frozen=True)
class InvalidationTarget:
    """One group of cache entries affected by a mutation.

    Attributes:
        resource: Resource type of the entries
        operation: Operation of the entries; None selects the whole resource
        scope: ALL entries of the operation, the mutated id (SELF), the id
            named ``related_key`` in ``related_ids`` (RELATED), or entries
            whose parameter ``related_key`` equals the mutated id (PARAMS)
        related_key: Name used by RELATED and PARAMS scopes
    """

    resource: str
    operation: str | None = None
    scope: Scope = Scope.ALL
    related_key: str | None = None

    def resolve(
        self,
        resource_id: str | None,
        related_ids: Mapping[str, Any],
    ) -> KeyMatcher | None:
        """Turn the target into a cache matcher; None when an id is missing."""
        if self.scope == Scope.ALL:
            if self.operation is None:
                return resource(self.resource)
            return operation(self.resource, self.operation)

        op = self.operation or "detail"
        if self.scope == Scope.SELF:
            return CacheKey(self.resource, op, resource_id) if resource_id else None

        if self.related_key is None:
            return None

        if self.scope == Scope.RELATED:
            related = related_ids.get(self.related_key)
            return CacheKey(self.resource, op, related) if related else None

        if resource_id is None:
            return None
        return params_match(self.resource, op, **{self.related_key: resource_id})


def _detail(name: str) -> InvalidationTarget:
    return InvalidationTarget(name, "detail", Scope.SELF)


def _lists(name: str) -> InvalidationTarget:
    return InvalidationTarget(name, "list")


ANALYTICS = InvalidationTarget("analytics")
QUOTATION_ANALYTICS = InvalidationTarget("quotations", "analytics")

_ORDER_CHANGE = (_detail("orders"), _lists("orders"), ANALYTICS)
_QUOTATION_DECISION = (_detail("quotations"), _lists("quotations"), QUOTATION_ANALYTICS, ANALYTICS)

INVALIDATION_RULES: dict[str, tuple[InvalidationTarget, ...]] = {
    # Customers
    "customers.create": (_lists("customers"), ANALYTICS),
    "customers.update": (
        _detail("customers"),
        _lists("customers"),
        InvalidationTarget("quotations", "list", Scope.PARAMS, "customerId"),
        ANALYTICS,
    ),
    "customers.delete": (_detail("customers"), _lists("customers"), ANALYTICS),
    "customers.interaction": (
        _detail("customers"),
        InvalidationTarget("customers", "interactions", Scope.SELF),
    ),
    "customers.credit_limit": (_detail("customers"), _lists("customers")),
    "customers.import": (InvalidationTarget("customers"), ANALYTICS),
    # Products
    "products.create": (_lists("products"),),
    "products.update": (_detail("products"), _lists("products")),
    "products.delete": (_detail("products"), _lists("products")),
    "products.stock": (_detail("products"), _lists("products")),
    "products.images": (_detail("products"),),
    "categories.create": (InvalidationTarget("products", "categories"),),
    "categories.update": (InvalidationTarget("products", "categories"),),
    "categories.delete": (InvalidationTarget("products", "categories"),),
    # Quotations
    "quotations.create": (_lists("quotations"), QUOTATION_ANALYTICS, ANALYTICS),
    "quotations.update": (_detail("quotations"), _lists("quotations"), QUOTATION_ANALYTICS),
    "quotations.delete": (_detail("quotations"), _lists("quotations"), QUOTATION_ANALYTICS),
    "quotations.duplicate": (_lists("quotations"),),
    "quotations.send": (_detail("quotations"), _lists("quotations")),
    "quotations.approve": _QUOTATION_DECISION,
    "quotations.reject": _QUOTATION_DECISION,
    "quotations.convert": (
        _detail("quotations"),
        _lists("quotations"),
        QUOTATION_ANALYTICS,
        _lists("orders"),
        ANALYTICS,
    ),
    # Orders
    "orders.create": (
        _lists("orders"),
        InvalidationTarget("quotations", "detail", Scope.RELATED, "quotationId"),
        _lists("quotations"),
        ANALYTICS,
    ),
    "orders.update": _ORDER_CHANGE,
    "orders.status": _ORDER_CHANGE,
    "orders.payment": _ORDER_CHANGE,
    "orders.cancel": _ORDER_CHANGE,
    "orders.refund": _ORDER_CHANGE,
}


# Payload fields that name related entities
RELATION_FIELDS = ("quotationId", "customerId", "orderId", "productId")


def related_ids_from(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Related-entity ids named in a mutation payload, e.g. ``{"quotationId": "Q1"}``."""
    return {name: payload[name] for name in RELATION_FIELDS if payload.get(name)}


def normalize_mutation_type(mutation_type: str) -> str:
    """``"Orders.CREATE"`` -> ``"orders.create"``."""
    return mutation_type.strip().lower()


def fallback_targets(resource_name: str) -> tuple[InvalidationTarget, ...]:
    """Targets for mutation types missing from the table."""
    return (_detail(resource_name), _lists(resource_name), ANALYTICS)


class InvalidationDispatcher:
    """Marks the cache entries affected by a settled mutation as stale."""

    def __init__(
        self,
        cache: CacheStore,
        rules: Mapping[str, tuple[InvalidationTarget, ...]] | None = None,
    ) -> None:
        self._cache = cache
        self._rules = dict(INVALIDATION_RULES if rules is None else rules)

    def targets_for(self, mutation_type: str) -> tuple[InvalidationTarget, ...]:
        key = normalize_mutation_type(mutation_type)
        if key in self._rules:
            return self._rules[key]
        resource_name = key.partition(".")[0]
        logger.debug("No invalidation rule for %s, using resource fallback", key)
        return fallback_targets(resource_name)

    def on_mutation_settled(
        self,
        mutation_type: str,
        resource_id: str | None = None,
        related_ids: Mapping[str, Any] | None = None,
    ) -> set[str]:
        """Invalidate everything ``mutation_type`` affects.

        Args:
            mutation_type: ``"<resource>.<action>"``, e.g. ``"orders.create"``
            resource_id: Id of the mutated entity, when known
            related_ids: Ids of related entities, e.g. ``{"quotationId": "Q1"}``

        Returns:
            Keys of the entries that were marked stale
        """
        related = related_ids or {}
        invalidated: set[str] = set()
        for target in self.targets_for(mutation_type):
            matcher = target.resolve(resource_id, related)
            if matcher is None:
                continue
            invalidated.update(self._cache.invalidate(matcher))

        logger.debug(
            "Mutation %s invalidated %d cache entries",
            mutation_type,
            len(invalidated),
        )
        return invalidated


__all__ = [
    "INVALIDATION_RULES",
    "RELATION_FIELDS",
    "InvalidationDispatcher",
    "InvalidationTarget",
    "Scope",
    "fallback_targets",
    "normalize_mutation_type",
    "related_ids_from",
]
