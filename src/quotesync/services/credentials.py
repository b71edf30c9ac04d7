"""Credential store for the current access/refresh token pair."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from quotesync.services.storage import DurableStorage
from quotesync.shared.constants import StorageKeys

logger = logging.getLogger(__name__)


def _mask(token: str | None) -> str:
    if not token:
        return "None"
    return f"{token[:4]}***"


@dataclass(frozen=True)
class CredentialPair:
    """Access and refresh token issued by the API."""

    access_token: str
    refresh_token: str

    def __repr__(self) -> str:
        return (
            f"CredentialPair(access_token={_mask(self.access_token)}, "
            f"refresh_token={_mask(self.refresh_token)})"
        )


class CredentialStore:
    """Holds one logical copy of the token pair and mirrors it to storage.

    The application seeds it once (``init`` on start-up, ``set`` at login);
    afterwards only the refresh coordinator writes to it.
    """

    def __init__(
        self,
        storage: DurableStorage,
        access_token_key: str = StorageKeys.ACCESS_TOKEN,
        refresh_token_key: str = StorageKeys.REFRESH_TOKEN,
    ) -> None:
        self._storage = storage
        self._access_key = access_token_key
        self._refresh_key = refresh_token_key
        self._access_token: str | None = None
        self._refresh_token: str | None = None

    def init(self) -> None:
        """Load persisted tokens. Both keys are absent on first run."""
        self._access_token = self._storage.get(self._access_key)
        self._refresh_token = self._storage.get(self._refresh_key)
        logger.debug("Credential store loaded (authenticated=%s)", self.is_authenticated)

    @property
    def access_token(self) -> str | None:
        return self._access_token

    @property
    def refresh_token(self) -> str | None:
        return self._refresh_token

    @property
    def pair(self) -> CredentialPair | None:
        if self._access_token is None or self._refresh_token is None:
            return None
        return CredentialPair(self._access_token, self._refresh_token)

    @property
    def is_authenticated(self) -> bool:
        return self._access_token is not None

    def set(self, pair: CredentialPair) -> None:
        """Replace both tokens and persist them."""
        self._storage.set(self._access_key, pair.access_token)
        self._storage.set(self._refresh_key, pair.refresh_token)
        self._access_token = pair.access_token
        self._refresh_token = pair.refresh_token

    def clear(self) -> None:
        """Forget both tokens in memory and in storage."""
        self._access_token = None
        self._refresh_token = None
        self._storage.remove(self._access_key)
        self._storage.remove(self._refresh_key)
        logger.info("Credentials cleared")

    def __repr__(self) -> str:
        return (
            f"CredentialStore(access_token={_mask(self._access_token)}, "
            f"refresh_token={_mask(self._refresh_token)})"
        )


__all__ = [
    "CredentialPair",
    "CredentialStore",
]
