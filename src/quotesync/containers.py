"""Dependency Injection container for quotesync.

This module wires the sync components with dependency-injector. Runtime
state lives in singletons scoped to one container instance, so separate
containers (for example in tests) never share credentials or cache.

The container manages:
- Settings (Singleton)
- Durable storage, credentials and connectivity (Singleton)
- Transport with its retry policy (Singleton)
- Cache store, invalidation dispatcher and optimistic engine (Singleton)
- Offline queue and the SyncClient facade (Singleton)
"""

from __future__ import annotations

from pathlib import Path

from dependency_injector import containers, providers

from quotesync.client import SyncClient
from quotesync.config.loader import load_settings
from quotesync.config.models.settings import Settings
from quotesync.services.cache.store import CacheStore
from quotesync.services.connectivity import ConnectivityMonitor
from quotesync.services.credentials import CredentialStore
from quotesync.services.invalidation import InvalidationDispatcher
from quotesync.services.offline_queue import OfflineQueue
from quotesync.services.optimistic import OptimisticMutationEngine
from quotesync.services.storage import DurableStorage, JsonFileStorage, MemoryStorage
from quotesync.services.transport.client import Transport
from quotesync.services.transport.retry import RetryPolicy


def create_storage(config: Settings) -> DurableStorage:
    """File storage under the configured directory, or memory when unset."""
    if not config.storage.directory:
        return MemoryStorage()
    return JsonFileStorage(Path(config.storage.directory).expanduser())


class Container(containers.DeclarativeContainer):
    """Dependency Injection container for quotesync services.

    Example:
        >>> container = Container()
        >>> client = container.sync_client()
        >>> client.init()
        >>> orders = await client.resource("orders").list({"page": 1})
    """

    # Configuration
    config = providers.Singleton(load_settings)

    # Local state
    storage = providers.Singleton(create_storage, config=config)

    credentials = providers.Singleton(
        CredentialStore,
        storage=storage,
        access_token_key=providers.Callable(lambda config: config.storage.access_token_key, config=config),
        refresh_token_key=providers.Callable(lambda config: config.storage.refresh_token_key, config=config),
    )

    connectivity = providers.Singleton(ConnectivityMonitor)

    # Transport
    retry_policy = providers.Singleton(
        RetryPolicy,
        base_delay_ms=providers.Callable(lambda config: config.retry.base_delay_ms, config=config),
        max_delay_ms=providers.Callable(lambda config: config.retry.max_delay_ms, config=config),
        max_retries=providers.Callable(lambda config: config.retry.max_retries, config=config),
    )

    transport = providers.Singleton(
        Transport,
        credentials=credentials,
        base_url=providers.Callable(lambda config: config.api.base_url, config=config),
        timeout=providers.Callable(lambda config: config.api.timeout, config=config),
        retry_policy=retry_policy,
        connectivity=connectivity,
        refresh_path=providers.Callable(lambda config: config.api.refresh_path, config=config),
    )

    # Cache
    cache = providers.Singleton(
        CacheStore,
        stale_time_ms=providers.Callable(lambda config: config.cache.stale_time_ms, config=config),
        gc_time_ms=providers.Callable(lambda config: config.cache.gc_time_ms, config=config),
        max_entries=providers.Callable(lambda config: config.cache.max_entries, config=config),
    )

    dispatcher = providers.Singleton(InvalidationDispatcher, cache=cache)

    engine = providers.Singleton(OptimisticMutationEngine, cache=cache, dispatcher=dispatcher)

    # Offline queue
    queue = providers.Singleton(
        OfflineQueue,
        storage=storage,
        transport=transport,
        dispatcher=dispatcher,
        connectivity=connectivity,
        max_retries=providers.Callable(lambda config: config.queue.max_retries, config=config),
        storage_key=providers.Callable(lambda config: config.queue.storage_key, config=config),
        auto_drain=providers.Callable(lambda config: config.queue.auto_drain, config=config),
    )

    # Facade
    sync_client = providers.Singleton(
        SyncClient,
        credentials=credentials,
        transport=transport,
        cache=cache,
        dispatcher=dispatcher,
        engine=engine,
        queue=queue,
        connectivity=connectivity,
    )


def create_container(settings: Settings | None = None) -> Container:
    """Build a container, optionally with explicit settings."""
    container = Container()
    if settings is not None:
        container.config.override(providers.Object(settings))
    return container


__all__ = [
    "Container",
    "create_container",
    "create_storage",
]
