"""
Cache Configuration Constants

Freshness windows for cached queries, in milliseconds.
"""

from .system import BASE_MINUTE_MS


class Cache:
    """Cache defaults."""

    STALE_TIME_MS = 5 * BASE_MINUTE_MS
    GC_TIME_MS = 10 * BASE_MINUTE_MS
    MAX_ENTRIES = 500

    KEY_SEPARATOR = "/"


class StaleTimes:
    """Per-query freshness windows."""

    LIST = 2 * BASE_MINUTE_MS
    DETAIL = 5 * BASE_MINUTE_MS
    SEARCH = 1 * BASE_MINUTE_MS
    ANALYTICS = 2 * BASE_MINUTE_MS
    CATEGORIES = 30 * BASE_MINUTE_MS
