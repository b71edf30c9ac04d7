"""quotesync: client-side data synchronization for the quotation and order API.

Cache with optimistic mutation, bounded retry, single-flight credential
refresh and a durable offline action queue.
"""

__version__ = "0.1.0"

from quotesync.client import SyncClient, SyncStatus
from quotesync.containers import Container, create_container

__all__ = [
    "Container",
    "SyncClient",
    "SyncStatus",
    "__version__",
    "create_container",
]
