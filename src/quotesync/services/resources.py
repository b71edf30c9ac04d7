"""Per-resource API client routed through the cache, the optimistic engine
and the offline queue.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Mapping

from quotesync.services.cache.keys import CacheKey, operation
from quotesync.services.cache.store import CacheStore
from quotesync.services.connectivity import ConnectivityMonitor
from quotesync.services.invalidation import related_ids_from
from quotesync.services.offline_queue import ActionType, OfflineQueue
from quotesync.services.optimistic import (
    OptimisticMutationEngine,
    OptimisticUpdate,
    insert_into_list,
    merge_fields,
    patch_in_list,
    remove_from_list,
    update_status,
)
from quotesync.services.transport.client import Transport
from quotesync.services.transport.models import RequestOptions
from quotesync.shared.constants import StaleTimes
from quotesync.shared.errors import NetworkError, RequestTimeoutError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MutationResult:
    """Outcome of a mutation: applied now, or queued for later."""

    data: Any = None
    queued: bool = False
    action_id: str | None = None
    invalidated: frozenset[str] = frozenset()


@dataclass(frozen=True)
class OfflineIntent:
    """How to replay a mutation through the offline queue."""

    action_type: ActionType
    resource: str
    payload: dict[str, Any]


async def execute_mutation(
    engine: OptimisticMutationEngine,
    queue: OfflineQueue,
    connectivity: ConnectivityMonitor,
    mutation_type: str,
    mutation_fn: Callable[[], Awaitable[Any]],
    optimistic: Iterable[OptimisticUpdate] = (),
    resource_id: str | None = None,
    related_ids: Mapping[str, Any] | None = None,
    offline: OfflineIntent | None = None,
) -> MutationResult:
    """Run a mutation, handing it to the offline queue when disconnected.

    When the device is known to be offline, queueable mutations go straight
    to the queue without touching the cache. When a request fails without a
    response, the optimistic write is rolled back and the mutation queued.
    Timeouts and server errors are raised, since the server may have
    applied them.
    """
    if offline is not None and not connectivity.is_online:
        action = queue.enqueue(offline.action_type, offline.resource, offline.payload)
        return MutationResult(queued=True, action_id=action.id)

    try:
        settled = await engine.mutate(
            mutation_type,
            mutation_fn,
            optimistic=optimistic,
            resource_id=resource_id,
            related_ids=related_ids,
        )
    except NetworkError as e:
        if offline is None or isinstance(e, RequestTimeoutError):
            raise
        connectivity.report_offline()
        action = queue.enqueue(offline.action_type, offline.resource, offline.payload)
        logger.info("%s queued after a network failure", mutation_type)
        return MutationResult(queued=True, action_id=action.id)

    return MutationResult(data=settled.result, invalidated=settled.invalidated)


class ResourceClient:
    """CRUD and actions for one REST resource, e.g. ``orders``.

    Reads go through the cache; writes patch every cached list and the
    detail optimistically and invalidate related data when confirmed.
    """

    def __init__(
        self,
        name: str,
        transport: Transport,
        cache: CacheStore,
        engine: OptimisticMutationEngine,
        queue: OfflineQueue,
        connectivity: ConnectivityMonitor,
        list_stale_ms: int = StaleTimes.LIST,
        detail_stale_ms: int = StaleTimes.DETAIL,
    ) -> None:
        self.name = name
        self._transport = transport
        self._cache = cache
        self._engine = engine
        self._queue = queue
        self._connectivity = connectivity
        self.list_stale_ms = list_stale_ms
        self.detail_stale_ms = detail_stale_ms

    def list_key(self, filters: Mapping[str, Any] | None = None) -> CacheKey:
        return CacheKey(self.name, "list", filters)

    def detail_key(self, resource_id: str) -> CacheKey:
        return CacheKey(self.name, "detail", resource_id)

    def _cached_list_keys(self) -> list[str]:
        return self._cache.match(operation(self.name, "list"))

    async def list(self, filters: Mapping[str, Any] | None = None, force: bool = False) -> Any:
        """Fetch a (possibly filtered) page of the resource."""

        async def fetcher() -> Any:
            response = await self._transport.get(f"/{self.name}", RequestOptions(params=filters))
            return response.data

        return await self._cache.fetch(self.list_key(filters), fetcher, self.list_stale_ms, force)

    async def detail(self, resource_id: str, force: bool = False) -> Any:
        """Fetch one entity."""

        async def fetcher() -> Any:
            response = await self._transport.get(f"/{self.name}/{resource_id}")
            return response.data

        return await self._cache.fetch(self.detail_key(resource_id), fetcher, self.detail_stale_ms, force)

    async def create(self, payload: Mapping[str, Any], optimistic: bool = True) -> MutationResult:
        """Create an entity; a placeholder is shown in cached lists until confirmed."""
        body = dict(payload)
        updates: list[OptimisticUpdate] = []
        if optimistic:
            placeholder = {**body, "id": f"temp-{uuid.uuid4().hex[:8]}"}
            updates = [(key, insert_into_list(placeholder)) for key in self._cached_list_keys()]

        async def send() -> Any:
            response = await self._transport.post(f"/{self.name}", body)
            return response.data

        return await execute_mutation(
            self._engine,
            self._queue,
            self._connectivity,
            f"{self.name}.create",
            send,
            optimistic=updates,
            related_ids=related_ids_from(body),
            offline=OfflineIntent(ActionType.CREATE, self.name, body),
        )

    async def update(
        self,
        resource_id: str,
        changes: Mapping[str, Any],
        optimistic: bool = True,
    ) -> MutationResult:
        """Update an entity, patching its detail and list rows optimistically."""
        body = dict(changes)
        updates: list[OptimisticUpdate] = []
        if optimistic:
            updates = [(self.detail_key(resource_id), merge_fields(body))]
            updates += [(key, patch_in_list(resource_id, body)) for key in self._cached_list_keys()]

        async def send() -> Any:
            response = await self._transport.put(f"/{self.name}/{resource_id}", body)
            return response.data

        return await execute_mutation(
            self._engine,
            self._queue,
            self._connectivity,
            f"{self.name}.update",
            send,
            optimistic=updates,
            resource_id=resource_id,
            related_ids=related_ids_from(body),
            offline=OfflineIntent(ActionType.UPDATE, self.name, {**body, "id": resource_id}),
        )

    async def delete(self, resource_id: str, optimistic: bool = True) -> MutationResult:
        """Delete an entity, removing it from cached lists optimistically."""
        updates: list[OptimisticUpdate] = []
        if optimistic:
            updates = [(key, remove_from_list(resource_id)) for key in self._cached_list_keys()]

        async def send() -> Any:
            response = await self._transport.delete(f"/{self.name}/{resource_id}")
            return response.data

        return await execute_mutation(
            self._engine,
            self._queue,
            self._connectivity,
            f"{self.name}.delete",
            send,
            optimistic=updates,
            resource_id=resource_id,
            offline=OfflineIntent(ActionType.DELETE, self.name, {"id": resource_id}),
        )

    async def action(
        self,
        resource_id: str,
        action: str,
        body: Mapping[str, Any] | None = None,
        optimistic_status: str | None = None,
        related_ids: Mapping[str, Any] | None = None,
    ) -> MutationResult:
        """``POST /<resource>/<id>/<action>``, e.g. a quotation's ``send``.

        Actions are not queued offline; a failure always surfaces.
        """
        updates: list[OptimisticUpdate] = []
        if optimistic_status is not None:
            updates = [(self.detail_key(resource_id), update_status(optimistic_status))]
            updates += [
                (key, patch_in_list(resource_id, {"status": optimistic_status}))
                for key in self._cached_list_keys()
            ]

        async def send() -> Any:
            response = await self._transport.post(f"/{self.name}/{resource_id}/{action}", body)
            return response.data

        return await execute_mutation(
            self._engine,
            self._queue,
            self._connectivity,
            f"{self.name}.{action}",
            send,
            optimistic=updates,
            resource_id=resource_id,
            related_ids=related_ids,
        )


__all__ = [
    "MutationResult",
    "OfflineIntent",
    "ResourceClient",
    "execute_mutation",
]
