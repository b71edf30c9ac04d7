"""Optimistic mutations: speculative cache writes with exact rollback.

The engine snapshots and patches the cache synchronously before the server
call, then either settles the mutation (and hands it to the invalidation
dispatcher) or restores every snapshot and re-raises.

The list helpers build update functions for paginated collections shaped
like ``{"data": [...], "total": n}`` (plain lists are accepted too).
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Literal, Mapping, Tuple, Union

from quotesync.services.cache.keys import KeyLike, to_cache_key
from quotesync.services.cache.store import CacheSnapshot, CacheStore
from quotesync.services.invalidation import InvalidationDispatcher
from quotesync.shared.errors import ApiError
from quotesync.shared.logging import log_operation_error, log_operation_success

logger = logging.getLogger(__name__)

UpdateFn = Callable[[Any], Any]
OptimisticUpdate = Tuple[KeyLike, UpdateFn]
Position = Union[Literal["start", "end"], int]


@dataclass
class PendingMutation:
    """Snapshots of one optimistic write, kept until it settles."""

    id: str
    target_keys: list[str] = field(default_factory=list)
    snapshots: list[CacheSnapshot] = field(default_factory=list)
    cache: CacheStore | None = field(default=None, repr=False)
    settled: bool = False

    def rollback(self) -> None:
        """Restore every snapshot, newest first, and settle. Later calls do nothing."""
        if self.settled or self.cache is None:
            return
        for snapshot in reversed(self.snapshots):
            self.cache.restore(snapshot)
        self.snapshots = []
        self.settled = True
        logger.debug("Rolled back optimistic mutation %s", self.id)

    def settle(self) -> None:
        """Discard the snapshots; the optimistic data stays."""
        self.snapshots = []
        self.settled = True


@dataclass(frozen=True)
class SettledMutation:
    """Result of a confirmed mutation."""

    id: str
    result: Any
    invalidated: frozenset[str] = frozenset()


class OptimisticMutationEngine:
    """Applies, confirms and rolls back optimistic cache writes."""

    def __init__(self, cache: CacheStore, dispatcher: InvalidationDispatcher) -> None:
        self._cache = cache
        self._dispatcher = dispatcher

    def perform_optimistic_update(self, key: KeyLike, update_fn: UpdateFn) -> PendingMutation:
        """Cancel the key's fetch, snapshot it and apply ``update_fn``."""
        return self.perform_batch([(key, update_fn)])

    def perform_batch(self, updates: Iterable[OptimisticUpdate]) -> PendingMutation:
        """Apply several updates as one unit.

        If any update function raises, the updates already applied are
        rolled back before the error propagates.
        """
        mutation = PendingMutation(id=uuid.uuid4().hex, cache=self._cache)
        try:
            for key, update_fn in updates:
                cache_key = to_cache_key(key)
                self._cache.cancel(cache_key)
                mutation.snapshots.append(self._cache.snapshot(cache_key))
                mutation.target_keys.append(cache_key.key)
                self._cache.patch(cache_key, update_fn)
        except Exception:
            mutation.rollback()
            raise
        return mutation

    async def mutate(
        self,
        mutation_type: str,
        mutation_fn: Callable[[], Awaitable[Any]],
        optimistic: Iterable[OptimisticUpdate] = (),
        resource_id: str | None = None,
        related_ids: Mapping[str, Any] | None = None,
    ) -> SettledMutation:
        """Run ``mutation_fn`` with optimistic cache updates.

        Args:
            mutation_type: ``"<resource>.<action>"`` used for invalidation
            mutation_fn: Performs the server call
            optimistic: ``(key, update_fn)`` pairs applied before the call
            resource_id: Id of the mutated entity
            related_ids: Ids of related entities for invalidation

        Returns:
            The settled mutation with the server result

        Raises:
            Exception: Whatever ``mutation_fn`` raised, after rollback
        """
        pending = self.perform_batch(optimistic)
        start = time.perf_counter()
        try:
            result = await mutation_fn()
        except (Exception, asyncio.CancelledError) as e:
            pending.rollback()
            if isinstance(e, ApiError):
                log_operation_error(
                    logger,
                    e,
                    operation=mutation_type,
                    context={"mutation_id": pending.id},
                    level=logging.WARNING,
                )
            else:
                logger.warning("Mutation %s aborted: %r", mutation_type, e)
            raise

        pending.settle()
        invalidated = self._dispatcher.on_mutation_settled(
            mutation_type,
            resource_id=resource_id,
            related_ids=related_ids,
        )
        log_operation_success(
            logger,
            mutation_type,
            (time.perf_counter() - start) * 1000,
            {"invalidated": len(invalidated)},
        )
        return SettledMutation(pending.id, result, frozenset(invalidated))


def _items_of(data: Any) -> list[Any] | None:
    if isinstance(data, list):
        return data
    if isinstance(data, Mapping) and isinstance(data.get("data"), list):
        return data["data"]
    return None


def _with_items(data: Any, items: list[Any], total_delta: int) -> Any:
    if isinstance(data, list):
        return items
    updated = dict(data)
    updated["data"] = items
    if isinstance(data.get("total"), int):
        updated["total"] = max(0, data["total"] + total_delta)
    return updated


def insert_into_list(item: Any, position: Position = "start") -> UpdateFn:
    """Update function adding ``item`` at the start, end or an index."""

    def update(data: Any) -> Any:
        items = _items_of(data)
        if items is None:
            return data
        if position == "start":
            new_items = [item, *items]
        elif position == "end":
            new_items = [*items, item]
        else:
            new_items = list(items)
            new_items.insert(position, item)
        return _with_items(data, new_items, 1)

    return update


def patch_in_list(item_id: Any, changes: Mapping[str, Any], id_field: str = "id") -> UpdateFn:
    """Update function merging ``changes`` into the item with ``item_id``."""

    def update(data: Any) -> Any:
        items = _items_of(data)
        if items is None:
            return data
        new_items = [
            {**entry, **changes} if isinstance(entry, Mapping) and entry.get(id_field) == item_id else entry
            for entry in items
        ]
        return _with_items(data, new_items, 0)

    return update


def remove_from_list(item_id: Any, id_field: str = "id") -> UpdateFn:
    """Update function dropping the item with ``item_id``."""

    def update(data: Any) -> Any:
        items = _items_of(data)
        if items is None:
            return data
        new_items = [
            entry for entry in items if not (isinstance(entry, Mapping) and entry.get(id_field) == item_id)
        ]
        return _with_items(data, new_items, len(new_items) - len(items))

    return update


def merge_fields(changes: Mapping[str, Any]) -> UpdateFn:
    """Update function merging ``changes`` into a detail entry."""

    def update(data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        return {**data, **changes}

    return update


def update_status(status: str, status_field: str = "status") -> UpdateFn:
    """Update function setting an entity's status."""
    return merge_fields({status_field: status})


def increment_counter(counter_field: str, amount: int = 1) -> UpdateFn:
    """Update function adding ``amount`` to a numeric field."""

    def update(data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        current = data.get(counter_field) or 0
        return {**data, counter_field: current + amount}

    return update


def decrement_counter(counter_field: str, amount: int = 1) -> UpdateFn:
    """Update function subtracting ``amount``; never goes below zero."""

    def update(data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        current = data.get(counter_field) or 0
        return {**data, counter_field: max(0, current - amount)}

    return update


__all__ = [
    "OptimisticMutationEngine",
    "OptimisticUpdate",
    "PendingMutation",
    "SettledMutation",
    "UpdateFn",
    "decrement_counter",
    "increment_counter",
    "insert_into_list",
    "merge_fields",
    "patch_in_list",
    "remove_from_list",
    "update_status",
]
