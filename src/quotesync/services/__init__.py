"""quotesync services: storage, credentials, transport, cache, optimistic
mutations, invalidation and the offline queue."""

from .connectivity import ConnectivityMonitor
from .credentials import CredentialPair, CredentialStore
from .invalidation import INVALIDATION_RULES, InvalidationDispatcher
from .offline_queue import ActionType, DrainReport, OfflineAction, OfflineQueue
from .optimistic import OptimisticMutationEngine, PendingMutation
from .resources import MutationResult, ResourceClient
from .storage import DurableStorage, JsonFileStorage, MemoryStorage

__all__ = [
    "INVALIDATION_RULES",
    "ActionType",
    "ConnectivityMonitor",
    "CredentialPair",
    "CredentialStore",
    "DrainReport",
    "DurableStorage",
    "InvalidationDispatcher",
    "JsonFileStorage",
    "MemoryStorage",
    "MutationResult",
    "OfflineAction",
    "OfflineQueue",
    "OptimisticMutationEngine",
    "PendingMutation",
    "ResourceClient",
]
