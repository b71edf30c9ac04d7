"""SyncClient: the application-facing facade of the sync layer.

One instance owns one credential store, transport, cache, dispatcher,
optimistic engine and offline queue. Nothing here is module-global; build
clients through ``quotesync.containers.Container`` or directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Mapping

from quotesync.services.cache.keys import KeyLike
from quotesync.services.cache.store import CacheStore
from quotesync.services.connectivity import ConnectivityMonitor
from quotesync.services.credentials import CredentialPair, CredentialStore
from quotesync.services.invalidation import InvalidationDispatcher
from quotesync.services.offline_queue import ActionType, DrainReport, OfflineQueue
from quotesync.services.optimistic import OptimisticMutationEngine, OptimisticUpdate
from quotesync.services.resources import (
    MutationResult,
    OfflineIntent,
    ResourceClient,
    execute_mutation,
)
from quotesync.services.transport.client import Transport
from quotesync.services.transport.models import RequestOptions
from quotesync.shared.constants import StaleTimes

logger = logging.getLogger(__name__)

OFFLINE_MESSAGE = "You are offline. Changes will be synced when connection is restored."

# List freshness per resource where it differs from the default
LIST_STALE_TIMES: dict[str, int] = {
    "orders": StaleTimes.LIST,
    "analytics": StaleTimes.ANALYTICS,
}


@dataclass(frozen=True)
class SyncStatus:
    """Connectivity indicator for the UI."""

    online: bool
    pending: int
    message: str | None

    @property
    def show_indicator(self) -> bool:
        return not self.online or self.pending > 0


class SyncClient:
    """Facade over the sync components.

    Lifecycle: ``init()`` once at start-up, ``logout()`` to drop the
    session, ``aclose()`` at shutdown.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        transport: Transport,
        cache: CacheStore,
        dispatcher: InvalidationDispatcher,
        engine: OptimisticMutationEngine,
        queue: OfflineQueue,
        connectivity: ConnectivityMonitor,
    ) -> None:
        self.credentials = credentials
        self.transport = transport
        self.cache = cache
        self.dispatcher = dispatcher
        self.engine = engine
        self.queue = queue
        self.connectivity = connectivity
        self._resources: dict[str, ResourceClient] = {}
        self._unsubscribe_session = transport.on_session_invalidated(self._on_session_invalidated)
        self._initialized = False

    def init(self) -> None:
        """Load persisted credentials and queued offline actions."""
        self.credentials.init()
        pending = self.queue.load()
        self._initialized = True
        logger.info(
            "Sync client ready (authenticated=%s, pending=%d)",
            self.credentials.is_authenticated,
            pending,
        )

    def login(self, pair: CredentialPair) -> None:
        """Seed credentials issued by the auth flow."""
        self.credentials.set(pair)

    async def logout(self) -> None:
        """Forget credentials and every cached query."""
        self.credentials.clear()
        self.cache.clear()
        logger.info("Logged out")

    def _on_session_invalidated(self) -> None:
        logger.warning("Session expired; clearing cached data")
        self.cache.clear()

    async def query(
        self,
        key: KeyLike,
        path: str,
        params: Mapping[str, Any] | None = None,
        stale_after_ms: int | None = None,
        force: bool = False,
    ) -> Any:
        """Read ``GET path`` through the cache under ``key``."""

        async def fetcher() -> Any:
            response = await self.transport.get(path, RequestOptions(params=params))
            return response.data

        return await self.cache.fetch(key, fetcher, stale_after_ms, force)

    async def mutate(
        self,
        mutation_type: str,
        mutation_fn: Callable[[], Awaitable[Any]],
        optimistic: Iterable[OptimisticUpdate] = (),
        resource_id: str | None = None,
        related_ids: Mapping[str, Any] | None = None,
        offline: OfflineIntent | None = None,
    ) -> MutationResult:
        """Run an arbitrary mutation with optimistic updates and offline fallback."""
        return await execute_mutation(
            self.engine,
            self.queue,
            self.connectivity,
            mutation_type,
            mutation_fn,
            optimistic=optimistic,
            resource_id=resource_id,
            related_ids=related_ids,
            offline=offline,
        )

    def resource(self, name: str) -> ResourceClient:
        """Client for one REST resource, e.g. ``client.resource("orders")``."""
        if name not in self._resources:
            self._resources[name] = ResourceClient(
                name,
                self.transport,
                self.cache,
                self.engine,
                self.queue,
                self.connectivity,
                list_stale_ms=LIST_STALE_TIMES.get(name, StaleTimes.LIST),
                detail_stale_ms=StaleTimes.DETAIL,
            )
        return self._resources[name]

    def enqueue_offline(
        self,
        action_type: ActionType | str,
        resource: str,
        payload: dict[str, Any] | None = None,
    ) -> str:
        return self.queue.enqueue(action_type, resource, payload).id

    async def sync(self) -> DrainReport:
        """Replay queued offline actions now."""
        return await self.queue.drain()

    def status(self) -> SyncStatus:
        pending = len(self.queue)
        if not self.connectivity.is_online:
            message: str | None = OFFLINE_MESSAGE
        elif pending > 0:
            message = f"Syncing {pending} pending changes..."
        else:
            message = None
        return SyncStatus(online=self.connectivity.is_online, pending=pending, message=message)

    def sweep(self, max_age_ms: int | None = None) -> list[str]:
        return self.cache.sweep(max_age_ms)

    async def aclose(self) -> None:
        """Cancel fetches, detach listeners and close the HTTP session."""
        self._unsubscribe_session()
        self.queue.close()
        self.cache.clear()
        await self.transport.close()

    async def __aenter__(self) -> SyncClient:
        if not self._initialized:
            self.init()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


__all__ = [
    "OFFLINE_MESSAGE",
    "SyncClient",
    "SyncStatus",
]
