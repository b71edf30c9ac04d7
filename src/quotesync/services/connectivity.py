"""Online/offline state of the device.

The transport reports every outcome here; listeners (the offline queue)
are told about transitions only.
"""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]


class ConnectivityMonitor:
    """Tracks whether the API is reachable."""

    def __init__(self, online: bool = True) -> None:
        self._online = online
        self._listeners: list[ConnectivityListener] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Register a transition listener; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def report_online(self) -> None:
        self._set(True)

    def report_offline(self) -> None:
        self._set(False)

    def _set(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for listener in list(self._listeners):
            listener(online)


__all__ = [
    "ConnectivityListener",
    "ConnectivityMonitor",
]
