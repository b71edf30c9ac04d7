"""In-memory query cache with freshness tracking, deduplicated fetches and
targeted invalidation.

Every change to an entry happens in a single synchronous step; the only
suspension points are inside fetcher calls, and a fetch result is dropped
if the entry was written after the fetch was issued.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
import weakref
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

import orjson

from quotesync.services.cache.keys import (
    CacheKey,
    KeyLike,
    KeyMatcher,
    glob_match,
    is_glob,
    to_cache_key,
)
from quotesync.shared.constants import Cache
from quotesync.shared.errors import ErrorCode, ErrorContext, QueryCancelledError

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]
Observer = Callable[["CacheEntry"], None]
Clock = Callable[[], int]


def _now_ms() -> int:
    return int(time.time() * 1000)


class QueryStatus(str, Enum):
    """Lifecycle state of a cached query."""

    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class CacheEntry:
    """State of one cached query.

    ``fetched_at`` is the time the data was last confirmed by the server
    (or set directly); optimistic patches leave it untouched but bump
    ``updated_at`` and ``version``.
    """

    key: str
    cache_key: CacheKey
    stale_after_ms: int
    data: Any = None
    has_data: bool = False
    fetched_at: int | None = None
    status: QueryStatus = QueryStatus.IDLE
    error: BaseException | None = None
    is_invalidated: bool = False
    observer_count: int = 0
    updated_at: int = 0
    version: int = 0
    fetcher: Fetcher | None = field(default=None, repr=False, compare=False)


@dataclass(frozen=True)
class CacheSnapshot:
    """Deep copy of an entry's data taken before a speculative write."""

    key: str
    existed: bool
    data: Any = None
    fetched_at: int | None = None
    status: QueryStatus = QueryStatus.IDLE
    is_invalidated: bool = False
    stale_after_ms: int = Cache.STALE_TIME_MS


class CacheStore:
    """Keyed, TTL-aware store of server-derived data.

    Args:
        stale_time_ms: Default freshness window of an entry
        gc_time_ms: Age after which ``sweep`` drops unobserved entries
        max_entries: LRU bound; observed or loading entries are never evicted
        clock: Millisecond clock, replaceable in tests
    """

    def __init__(
        self,
        stale_time_ms: int = Cache.STALE_TIME_MS,
        gc_time_ms: int = Cache.GC_TIME_MS,
        max_entries: int = Cache.MAX_ENTRIES,
        clock: Clock = _now_ms,
    ) -> None:
        self.stale_time_ms = stale_time_ms
        self.gc_time_ms = gc_time_ms
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._observers: dict[str, list[Observer]] = {}
        self._inflight: dict[str, asyncio.Task[Any]] = {}
        self._superseded: weakref.WeakSet[asyncio.Task[Any]] = weakref.WeakSet()
        self._version = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        if isinstance(key, (CacheKey, str)):
            return to_cache_key(key).key in self._entries
        return False

    def keys(self) -> list[str]:
        return list(self._entries)

    # Reads

    def get_entry(self, key: KeyLike) -> CacheEntry | None:
        return self._entries.get(to_cache_key(key).key)

    def get(self, key: KeyLike) -> Any:
        """Cached data for ``key`` (possibly stale), or None."""
        entry = self.get_entry(key)
        if entry is None:
            return None
        self._entries.move_to_end(entry.key)
        return entry.data

    def is_stale(self, key: KeyLike) -> bool:
        entry = self.get_entry(key)
        return entry is None or self._entry_is_stale(entry)

    def _entry_is_stale(self, entry: CacheEntry) -> bool:
        if entry.is_invalidated or not entry.has_data or entry.fetched_at is None:
            return True
        return self._clock() - entry.fetched_at >= entry.stale_after_ms

    def is_fetching(self, key: KeyLike) -> bool:
        return to_cache_key(key).key in self._inflight

    # Writes

    def set(self, key: KeyLike, data: Any, stale_after_ms: int | None = None) -> CacheEntry:
        """Store server-confirmed data; the entry becomes fresh."""
        entry = self._ensure_entry(to_cache_key(key), stale_after_ms)
        now = self._clock()
        entry.data = data
        entry.has_data = True
        entry.fetched_at = now
        entry.status = QueryStatus.SUCCESS
        entry.error = None
        entry.is_invalidated = False
        self._mark_written(entry, now)
        self._notify(entry)
        return entry

    def patch(self, key: KeyLike, update_fn: Callable[[Any], Any]) -> Any:
        """Replace the entry's data with ``update_fn(copy_of_data)``.

        Entries without data are left alone and None is returned.
        """
        entry = self.get_entry(key)
        if entry is None or not entry.has_data:
            return None
        new_data = update_fn(copy.deepcopy(entry.data))
        entry.data = new_data
        self._mark_written(entry, self._clock())
        self._notify(entry)
        return new_data

    def remove(self, key: KeyLike) -> bool:
        """Drop an entry and cancel its fetch. Observers stay registered."""
        cache_key = to_cache_key(key)
        self.cancel(cache_key)
        entry = self._entries.pop(cache_key.key, None)
        return entry is not None

    def clear(self) -> None:
        """Drop every entry and cancel every in-flight fetch."""
        for key in list(self._inflight):
            self.cancel(key)
        self._entries.clear()
        logger.debug("Cache cleared")

    # Invalidation

    def match(self, target: KeyMatcher) -> list[str]:
        """Keys of the entries selected by ``target``.

        ``target`` is an exact key, a glob pattern such as ``orders/list/*``,
        or a predicate called with each entry's CacheKey.
        """
        if isinstance(target, CacheKey):
            return [target.key] if target.key in self._entries else []
        if isinstance(target, str):
            if target in self._entries:
                return [target]
            if is_glob(target):
                return [key for key in self._entries if glob_match(key, target)]
            return []
        return [key for key, entry in self._entries.items() if target(entry.cache_key)]

    def invalidate(self, target: KeyMatcher) -> list[str]:
        """Mark matching entries stale without deleting their data.

        In-flight fetches of matched keys are superseded and cancelled.
        Observed entries with a known fetcher are refetched in the
        background; the rest refetch on their next read.

        Returns:
            The matched keys
        """
        matched = self.match(target)
        for key in matched:
            entry = self._entries[key]
            self._supersede(key)
            entry.is_invalidated = True
            self._notify(entry)
            if entry.observer_count > 0 and entry.fetcher is not None:
                self._refetch_in_background(entry)

        if matched:
            logger.debug("Invalidated %d cache entries", len(matched))
        return matched

    def _supersede(self, key: str) -> None:
        task = self._inflight.get(key)
        if task is not None:
            self._superseded.add(task)
        self.cancel(key)

    def _refetch_in_background(self, entry: CacheEntry) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        assert entry.fetcher is not None
        self._start_fetch(entry, entry.fetcher)

    # Fetching

    async def fetch(
        self,
        key: KeyLike,
        fetcher: Fetcher,
        stale_after_ms: int | None = None,
        force: bool = False,
    ) -> Any:
        """Return fresh data for ``key``, calling ``fetcher`` when needed.

        Concurrent callers for one key share a single fetcher call. When an
        invalidation supersedes that call, waiting callers move on to the
        fetch that replaces it.

        Raises:
            QueryCancelledError: If the shared fetch was cancelled through
                ``cancel``, ``remove``, ``clear`` or the last unsubscribe
            Exception: Whatever ``fetcher`` raised
        """
        cache_key = to_cache_key(key)
        entry = self._ensure_entry(cache_key, stale_after_ms)
        entry.fetcher = fetcher

        if not force and not self._entry_is_stale(entry):
            self._entries.move_to_end(entry.key)
            return entry.data

        while True:
            task = self._inflight.get(entry.key)
            if task is None:
                task = self._start_fetch(entry, fetcher)

            try:
                return await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
                if task not in self._superseded:
                    raise QueryCancelledError(
                        ErrorCode.QUERY_CANCELLED,
                        f"Fetch of {entry.key} was cancelled",
                        ErrorContext(operation="cache_fetch", resource=entry.key),
                    ) from None
                logger.debug("Fetch of %s was superseded, fetching again", entry.key)

    def _start_fetch(self, entry: CacheEntry, fetcher: Fetcher) -> asyncio.Task[Any]:
        issued_version = self._version
        entry.status = QueryStatus.LOADING
        self._notify(entry)

        task = asyncio.get_running_loop().create_task(
            self._run_fetch(entry.key, fetcher, issued_version),
        )
        self._inflight[entry.key] = task
        task.add_done_callback(lambda done, key=entry.key: self._fetch_done(key, done))
        return task

    async def _run_fetch(self, key: str, fetcher: Fetcher, issued_version: int) -> Any:
        try:
            data = await fetcher()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            entry = self._entries.get(key)
            if entry is not None and entry.version <= issued_version:
                entry.status = QueryStatus.ERROR
                entry.error = e
                self._notify(entry)
            raise

        entry = self._entries.get(key)
        if entry is None:
            return data
        if entry.version > issued_version:
            logger.debug("Discarding fetch result for %s: entry was written meanwhile", key)
            if entry.status == QueryStatus.LOADING:
                entry.status = QueryStatus.SUCCESS if entry.has_data else QueryStatus.IDLE
                self._notify(entry)
            return entry.data

        now = self._clock()
        entry.data = data
        entry.has_data = True
        entry.fetched_at = now
        entry.status = QueryStatus.SUCCESS
        entry.error = None
        entry.is_invalidated = False
        self._mark_written(entry, now)
        self._notify(entry)
        return data

    def _fetch_done(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Fetch of %s failed: %s", key, task.exception())

    def cancel(self, key: KeyLike) -> bool:
        """Cancel the in-flight fetch of ``key``, if any."""
        cache_key = to_cache_key(key)
        task = self._inflight.pop(cache_key.key, None)
        if task is None:
            return False
        task.cancel()
        entry = self._entries.get(cache_key.key)
        if entry is not None and entry.status == QueryStatus.LOADING:
            entry.status = QueryStatus.SUCCESS if entry.has_data else QueryStatus.IDLE
            self._notify(entry)
        logger.debug("Cancelled fetch of %s", cache_key.key)
        return True

    # Observers

    def subscribe(self, key: KeyLike, callback: Observer) -> Callable[[], None]:
        """Observe ``key``; ``callback`` gets the entry on every change.

        Returns:
            Unsubscribe function. When the last observer leaves, the
            in-flight fetch of the key is cancelled.
        """
        cache_key = to_cache_key(key)
        entry = self._ensure_entry(cache_key, None)
        entry.observer_count += 1
        self._observers.setdefault(entry.key, []).append(callback)
        subscribed = True

        def unsubscribe() -> None:
            nonlocal subscribed
            if not subscribed:
                return
            subscribed = False
            callbacks = self._observers.get(cache_key.key, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._observers.pop(cache_key.key, None)
            current = self._entries.get(cache_key.key)
            if current is not None:
                current.observer_count = max(0, current.observer_count - 1)
                if current.observer_count == 0:
                    self.cancel(cache_key)

        return unsubscribe

    def _notify(self, entry: CacheEntry) -> None:
        for callback in list(self._observers.get(entry.key, ())):
            callback(entry)

    # Snapshots

    def snapshot(self, key: KeyLike) -> CacheSnapshot:
        """Deep-copy the current state of ``key`` for a later ``restore``."""
        cache_key = to_cache_key(key)
        entry = self._entries.get(cache_key.key)
        if entry is None or not entry.has_data:
            return CacheSnapshot(key=cache_key.key, existed=False)
        return CacheSnapshot(
            key=entry.key,
            existed=True,
            data=copy.deepcopy(entry.data),
            fetched_at=entry.fetched_at,
            status=entry.status,
            is_invalidated=entry.is_invalidated,
            stale_after_ms=entry.stale_after_ms,
        )

    def restore(self, snapshot: CacheSnapshot) -> None:
        """Put back the state captured by ``snapshot``.

        Restoring the same snapshot again yields the same state.
        """
        entry = self._entries.get(snapshot.key)
        if not snapshot.existed:
            if entry is None:
                return
            if entry.observer_count == 0 and snapshot.key not in self._inflight:
                del self._entries[snapshot.key]
                return
            entry.data = None
            entry.has_data = False
            entry.fetched_at = None
            entry.status = QueryStatus.IDLE
            self._mark_written(entry, self._clock())
            self._notify(entry)
            return

        if entry is None:
            entry = self._ensure_entry(CacheKey.parse(snapshot.key), snapshot.stale_after_ms)
        entry.data = copy.deepcopy(snapshot.data)
        entry.has_data = True
        entry.fetched_at = snapshot.fetched_at
        entry.status = snapshot.status
        entry.is_invalidated = snapshot.is_invalidated
        entry.stale_after_ms = snapshot.stale_after_ms
        self._mark_written(entry, self._clock())
        self._notify(entry)

    # Maintenance

    def sweep(self, max_age_ms: int | None = None) -> list[str]:
        """Remove unobserved, idle entries not written for ``max_age_ms``."""
        max_age = self.gc_time_ms if max_age_ms is None else max_age_ms
        now = self._clock()
        removed = [
            key
            for key, entry in self._entries.items()
            if entry.observer_count == 0
            and key not in self._inflight
            and now - entry.updated_at > max_age
        ]
        for key in removed:
            del self._entries[key]
        if removed:
            logger.info("Swept %d unused cache entries", len(removed))
        return removed

    def stats(self) -> dict[str, int]:
        """Entry counts by state and the approximate serialized size."""
        entries = list(self._entries.values())
        size = 0
        for entry in entries:
            if entry.has_data:
                size += len(orjson.dumps(entry.data, default=str))
        return {
            "total": len(entries),
            "active": sum(1 for e in entries if e.observer_count > 0),
            "stale": sum(1 for e in entries if self._entry_is_stale(e)),
            "error": sum(1 for e in entries if e.status == QueryStatus.ERROR),
            "loading": sum(1 for e in entries if e.status == QueryStatus.LOADING),
            "size_bytes": size,
        }

    # Internals

    def _ensure_entry(self, cache_key: CacheKey, stale_after_ms: int | None) -> CacheEntry:
        entry = self._entries.get(cache_key.key)
        if entry is None:
            entry = CacheEntry(
                key=cache_key.key,
                cache_key=cache_key,
                stale_after_ms=self.stale_time_ms if stale_after_ms is None else stale_after_ms,
                updated_at=self._clock(),
            )
            self._entries[cache_key.key] = entry
            self._evict(keep=cache_key.key)
        elif stale_after_ms is not None:
            entry.stale_after_ms = stale_after_ms
        self._entries.move_to_end(cache_key.key)
        return entry

    def _mark_written(self, entry: CacheEntry, now: int) -> None:
        self._version += 1
        entry.version = self._version
        entry.updated_at = now
        self._entries.move_to_end(entry.key)

    def _evict(self, keep: str) -> None:
        if len(self._entries) <= self.max_entries:
            return
        for key in list(self._entries):
            if len(self._entries) <= self.max_entries:
                break
            entry = self._entries[key]
            if key == keep or entry.observer_count > 0 or key in self._inflight:
                continue
            del self._entries[key]
            logger.debug("Evicted least recently used cache entry %s", key)


__all__ = [
    "CacheEntry",
    "CacheSnapshot",
    "CacheStore",
    "Fetcher",
    "Observer",
    "QueryStatus",
]
