"""Single-flight credential refresh.

However many requests fail with 401 at once, exactly one refresh call is
made. The first caller performs it; the others wait on futures that are
resolved in the order they were queued.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable

from quotesync.services.credentials import CredentialPair, CredentialStore
from quotesync.shared.errors import AuthenticationError, ErrorCode, ErrorContext
from quotesync.shared.logging import log_operation_error

logger = logging.getLogger(__name__)

RefreshCall = Callable[[str], Awaitable[CredentialPair]]
SessionListener = Callable[[], None]


class RefreshCoordinator:
    """Coordinates token refresh between concurrent requests.

    Args:
        credentials: Store holding the token pair
        refresh_call: Exchanges a refresh token for a new pair
    """

    def __init__(self, credentials: CredentialStore, refresh_call: RefreshCall) -> None:
        self._credentials = credentials
        self._refresh_call = refresh_call
        self.is_refreshing = False
        self._waiters: deque[asyncio.Future[str]] = deque()
        self._listeners: list[SessionListener] = []

    @property
    def waiter_count(self) -> int:
        return len(self._waiters)

    def on_session_invalidated(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener fired once per failed refresh."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def get_fresh_token(self, stale_token: str | None) -> str:
        """Return an access token newer than ``stale_token``.

        If another refresh already replaced the token the request was sent
        with, the current token is returned without refreshing again.

        Raises:
            AuthenticationError: With ``SESSION_EXPIRED`` if refreshing fails
        """
        current = self._credentials.access_token
        if current is not None and current != stale_token:
            return current

        if self.is_refreshing:
            waiter: asyncio.Future[str] = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            return await waiter

        return await self._refresh()

    async def _refresh(self) -> str:
        self.is_refreshing = True
        logger.info("Refreshing access token")
        try:
            refresh_token = self._credentials.refresh_token
            if not refresh_token:
                raise AuthenticationError(
                    "No refresh token available",
                    code=ErrorCode.NO_REFRESH_TOKEN,
                    context=ErrorContext(operation="token_refresh"),
                )
            pair = await self._refresh_call(refresh_token)
        except asyncio.CancelledError:
            self._fail_waiters(
                AuthenticationError(
                    "Token refresh was cancelled",
                    context=ErrorContext(operation="token_refresh"),
                ),
            )
            self.is_refreshing = False
            raise
        except Exception as e:
            error = AuthenticationError(
                "Session expired: token refresh failed",
                code=ErrorCode.SESSION_EXPIRED,
                context=ErrorContext(operation="token_refresh"),
                original_error=e,
            )
            log_operation_error(logger, error, level=logging.WARNING)
            self._credentials.clear()
            self._fail_waiters(error)
            self.is_refreshing = False
            self._emit_session_invalidated()
            raise error from e

        self._credentials.set(pair)
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(pair.access_token)
        self.is_refreshing = False
        logger.info("Access token refreshed")
        return pair.access_token

    def _fail_waiters(self, error: AuthenticationError) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(error)

    def _emit_session_invalidated(self) -> None:
        for listener in list(self._listeners):
            listener()


__all__ = [
    "RefreshCall",
    "RefreshCoordinator",
    "SessionListener",
]
