"""Canonical cache keys and key predicates.

A key is ``<resource>/<operation>[/<params>]``. Mapping parameters are
serialized as JSON with sorted keys, so ``{"b": 1, "a": 2}`` and
``{"a": 2, "b": 1}`` produce the same key; scalar parameters (usually an
id) are used as-is. Examples::

    quotations/detail/Q1
    orders/list/{"page":1,"status":"PENDING"}
    analytics/performance
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Union

import orjson

from quotesync.shared.constants import Cache
from quotesync.shared.errors import DomainError, ErrorCode, ErrorContext

GLOB_CHARS = frozenset("*?[")


def _normalize_params(params: Any) -> Any:
    if isinstance(params, Mapping):
        cleaned = {str(k): v for k, v in params.items() if v is not None}
        return cleaned or None
    return params


def encode_params(params: Any) -> str | None:
    """Serialize parameters to their canonical string form."""
    params = _normalize_params(params)
    if params is None:
        return None
    if isinstance(params, (Mapping, list, tuple)):
        try:
            return orjson.dumps(params, option=orjson.OPT_SORT_KEYS).decode("utf-8")
        except TypeError as e:
            raise DomainError(
                ErrorCode.CACHE_ERROR,
                f"Cache key parameters are not JSON-serializable: {e!s}",
                ErrorContext(operation="encode_params"),
                e,
            ) from e
    return str(params)


def decode_params(raw: str | None) -> Any:
    """Inverse of ``encode_params`` for keys read back as strings."""
    if raw is None:
        return None
    if raw[:1] in ("{", "["):
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError:
            return raw
    return raw


@dataclass(frozen=True)
class CacheKey:
    """Structured cache key. ``str(key)`` is the canonical form."""

    resource: str
    operation: str
    params: Any = field(default=None, compare=False, hash=False)
    key: str = field(default="", init=False)

    def __post_init__(self) -> None:
        if not self.resource or not self.operation:
            raise DomainError(
                ErrorCode.CACHE_ERROR,
                "Cache keys need a resource and an operation",
                ErrorContext(operation="cache_key", resource=self.resource or None),
            )
        params = _normalize_params(self.params)
        object.__setattr__(self, "params", params)
        parts = [self.resource, self.operation]
        encoded = encode_params(params)
        if encoded is not None:
            parts.append(encoded)
        object.__setattr__(self, "key", Cache.KEY_SEPARATOR.join(parts))

    def __str__(self) -> str:
        return self.key

    @classmethod
    def parse(cls, raw: str) -> CacheKey:
        """Rebuild a CacheKey from its canonical string."""
        parts = raw.split(Cache.KEY_SEPARATOR, 2)
        if len(parts) < 2:
            raise DomainError(
                ErrorCode.CACHE_ERROR,
                f"Malformed cache key: {raw}",
                ErrorContext(operation="cache_key_parse", resource=raw),
            )
        params = decode_params(parts[2]) if len(parts) == 3 else None
        return cls(parts[0], parts[1], params)


KeyLike = Union[CacheKey, str]
KeyPredicate = Callable[[CacheKey], bool]
KeyMatcher = Union[CacheKey, str, KeyPredicate]


def to_cache_key(key: KeyLike) -> CacheKey:
    if isinstance(key, CacheKey):
        return key
    return CacheKey.parse(key)


def is_glob(pattern: str) -> bool:
    return any(ch in GLOB_CHARS for ch in pattern)


def glob_match(key: str, pattern: str) -> bool:
    """``fnmatch`` where ``a/b/*`` also matches the bare ``a/b``."""
    if pattern.endswith("/*") and key == pattern[:-2]:
        return True
    return fnmatch.fnmatchcase(key, pattern)


def prefix(value: str) -> KeyPredicate:
    """Keys whose canonical string starts with ``value``."""
    return lambda key: key.key.startswith(value)


def resource(name: str) -> KeyPredicate:
    """Every key of one resource type."""
    return lambda key: key.resource == name


def operation(resource_name: str, operation_name: str) -> KeyPredicate:
    """Every key of one resource operation, whatever its parameters."""
    return lambda key: key.resource == resource_name and key.operation == operation_name


def params_match(resource_name: str, operation_name: str, **filters: Any) -> KeyPredicate:
    """Keys of one operation whose mapping parameters contain ``filters``.

    ``params_match("quotations", "list", customerId="C1")`` matches the
    quotation lists filtered by customer C1, and nothing else.
    """

    def predicate(key: CacheKey) -> bool:
        if key.resource != resource_name or key.operation != operation_name:
            return False
        if not isinstance(key.params, Mapping):
            return False
        return all(key.params.get(name) == value for name, value in filters.items())

    return predicate


class QueryKeys:
    """Key factory for the API's resources."""

    class auth:
        @staticmethod
        def current_user() -> CacheKey:
            return CacheKey("auth", "currentUser")

    class customers:
        @staticmethod
        def list(filters: Mapping[str, Any] | None = None) -> CacheKey:
            return CacheKey("customers", "list", filters)

        @staticmethod
        def detail(customer_id: str) -> CacheKey:
            return CacheKey("customers", "detail", customer_id)

        @staticmethod
        def analytics(customer_id: str) -> CacheKey:
            return CacheKey("customers", "analytics", customer_id)

        @staticmethod
        def interactions(customer_id: str) -> CacheKey:
            return CacheKey("customers", "interactions", customer_id)

        @staticmethod
        def search(query: str) -> CacheKey:
            return CacheKey("customers", "search", {"q": query})

    class products:
        @staticmethod
        def list(filters: Mapping[str, Any] | None = None) -> CacheKey:
            return CacheKey("products", "list", filters)

        @staticmethod
        def detail(product_id: str) -> CacheKey:
            return CacheKey("products", "detail", product_id)

        @staticmethod
        def categories() -> CacheKey:
            return CacheKey("products", "categories")

        @staticmethod
        def search(query: str, filters: Mapping[str, Any] | None = None) -> CacheKey:
            return CacheKey("products", "search", {"q": query, **(filters or {})})

        @staticmethod
        def pricing_rules(product_id: str, customer_id: str | None = None) -> CacheKey:
            return CacheKey(
                "products",
                "pricingRules",
                {"productId": product_id, "customerId": customer_id},
            )

    class quotations:
        @staticmethod
        def list(filters: Mapping[str, Any] | None = None) -> CacheKey:
            return CacheKey("quotations", "list", filters)

        @staticmethod
        def detail(quotation_id: str) -> CacheKey:
            return CacheKey("quotations", "detail", quotation_id)

        @staticmethod
        def analytics(filters: Mapping[str, Any] | None = None) -> CacheKey:
            return CacheKey("quotations", "analytics", filters)

        @staticmethod
        def public(token: str) -> CacheKey:
            return CacheKey("quotations", "public", token)

    class orders:
        @staticmethod
        def list(filters: Mapping[str, Any] | None = None) -> CacheKey:
            return CacheKey("orders", "list", filters)

        @staticmethod
        def detail(order_id: str) -> CacheKey:
            return CacheKey("orders", "detail", order_id)

    class analytics:
        @staticmethod
        def dashboard(filters: Mapping[str, Any] | None = None) -> CacheKey:
            return CacheKey("analytics", "dashboard", filters)

        @staticmethod
        def business(filters: Mapping[str, Any] | None = None) -> CacheKey:
            return CacheKey("analytics", "business", filters)

        @staticmethod
        def sales(date_range: Mapping[str, Any] | None = None) -> CacheKey:
            return CacheKey("analytics", "sales", date_range)

        @staticmethod
        def conversion(filters: Mapping[str, Any] | None = None) -> CacheKey:
            return CacheKey("analytics", "conversion", filters)

        @staticmethod
        def performance() -> CacheKey:
            return CacheKey("analytics", "performance")


__all__ = [
    "CacheKey",
    "KeyLike",
    "KeyMatcher",
    "KeyPredicate",
    "QueryKeys",
    "decode_params",
    "encode_params",
    "glob_match",
    "is_glob",
    "operation",
    "params_match",
    "prefix",
    "resource",
    "to_cache_key",
]
