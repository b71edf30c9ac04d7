"""
Pytest configuration and shared fixtures for quotesync tests.

This module provides the in-memory building blocks (storage, credentials,
fake HTTP session, cache, dispatcher, engine, queue) wired the same way the
container wires them.
"""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock

import pytest

from quotesync.client import SyncClient
from quotesync.services.cache.store import CacheStore
from quotesync.services.connectivity import ConnectivityMonitor
from quotesync.services.credentials import CredentialPair, CredentialStore
from quotesync.services.invalidation import InvalidationDispatcher
from quotesync.services.offline_queue import OfflineQueue
from quotesync.services.optimistic import OptimisticMutationEngine
from quotesync.services.storage import MemoryStorage
from quotesync.services.transport.client import Transport
from quotesync.services.transport.retry import RetryPolicy
from tests.helpers import BASE_URL, FakeSession, ManualClock


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo handler setup done by CLI runs so caplog keeps working."""
    yield
    package_logger = logging.getLogger("quotesync")
    package_logger.handlers.clear()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def credentials(storage: MemoryStorage) -> CredentialStore:
    store = CredentialStore(storage)
    store.set(CredentialPair("access-1", "refresh-1"))
    return store


@pytest.fixture
def sleep_mock() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def retry_policy(sleep_mock: AsyncMock) -> RetryPolicy:
    return RetryPolicy(sleep=sleep_mock)


@pytest.fixture
def connectivity() -> ConnectivityMonitor:
    return ConnectivityMonitor()


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def transport(
    credentials: CredentialStore,
    retry_policy: RetryPolicy,
    connectivity: ConnectivityMonitor,
    session: FakeSession,
) -> Transport:
    return Transport(
        credentials,
        base_url=BASE_URL,
        retry_policy=retry_policy,
        connectivity=connectivity,
        session=session,  # type: ignore[arg-type]
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def cache(clock: ManualClock) -> CacheStore:
    return CacheStore(clock=clock)


@pytest.fixture
def dispatcher(cache: CacheStore) -> InvalidationDispatcher:
    return InvalidationDispatcher(cache)


@pytest.fixture
def engine(cache: CacheStore, dispatcher: InvalidationDispatcher) -> OptimisticMutationEngine:
    return OptimisticMutationEngine(cache, dispatcher)


@pytest.fixture
def queue(
    storage: MemoryStorage,
    transport: Transport,
    dispatcher: InvalidationDispatcher,
    connectivity: ConnectivityMonitor,
) -> OfflineQueue:
    return OfflineQueue(storage, transport, dispatcher, connectivity)


@pytest.fixture
def sync_client(
    credentials: CredentialStore,
    transport: Transport,
    cache: CacheStore,
    dispatcher: InvalidationDispatcher,
    engine: OptimisticMutationEngine,
    queue: OfflineQueue,
    connectivity: ConnectivityMonitor,
) -> SyncClient:
    return SyncClient(credentials, transport, cache, dispatcher, engine, queue, connectivity)
