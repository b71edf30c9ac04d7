"""Cache configuration model.

This module contains the cache configuration model for query freshness,
garbage collection of unobserved entries, and the entry bound.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from quotesync.shared.constants import Cache


class CacheSettings(BaseModel):
    """Cache configuration."""

    stale_time_ms: int = Field(
        default=Cache.STALE_TIME_MS,
        ge=0,
        description="Default freshness window of a cached query",
    )
    gc_time_ms: int = Field(
        default=Cache.GC_TIME_MS,
        gt=0,
        description="Age after which unobserved entries are swept",
    )
    max_entries: int = Field(
        default=Cache.MAX_ENTRIES,
        gt=0,
        description="Maximum number of cached queries",
    )


__all__ = [
    "CacheSettings",
]
