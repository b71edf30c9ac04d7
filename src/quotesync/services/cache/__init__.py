"""Query cache: canonical keys and the cache store."""

from .keys import CacheKey, QueryKeys, params_match, to_cache_key
from .store import CacheEntry, CacheSnapshot, CacheStore, QueryStatus

__all__ = [
    "CacheEntry",
    "CacheKey",
    "CacheSnapshot",
    "CacheStore",
    "QueryKeys",
    "QueryStatus",
    "params_match",
    "to_cache_key",
]
