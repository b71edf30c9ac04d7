"""Bounded exponential-backoff retry for transport calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from quotesync.services.transport.classification import is_retryable
from quotesync.shared.constants import RetryConfig
from quotesync.shared.errors import ApiError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


class RetryPolicy:
    """Retries classified-retryable failures with exponential backoff.

    The delay before retry ``n`` (0-based) is
    ``min(base_delay_ms * 2**n, max_delay_ms)``. With the defaults a failing
    call is attempted four times, waiting 1s, 2s and 4s in between.

    Args:
        base_delay_ms: Delay before the first retry
        max_delay_ms: Cap of a single delay
        max_retries: Retries after the initial attempt
        sleep: Awaitable sleep, replaceable in tests
    """

    def __init__(
        self,
        base_delay_ms: int = RetryConfig.BASE_DELAY_MS,
        max_delay_ms: int = RetryConfig.MAX_DELAY_MS,
        max_retries: int = RetryConfig.MAX_RETRIES,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.max_retries = max_retries
        self._sleep = sleep

    def delay_for(self, retry_number: int) -> float:
        """Delay in seconds before the given retry."""
        delay_ms = min(self.base_delay_ms * (2**retry_number), self.max_delay_ms)
        return delay_ms / 1000

    async def execute(
        self,
        method: str,
        operation: Callable[[], Awaitable[T]],
        *,
        enabled: bool = True,
    ) -> T:
        """Run ``operation``, retrying retryable ApiErrors.

        Non-retryable errors and the error of the last attempt propagate
        unchanged.
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except ApiError as e:
                if not enabled or attempt >= self.max_retries or not is_retryable(e, method):
                    raise

                delay = self.delay_for(attempt)
                logger.warning(
                    "%s failed with %s (attempt %d/%d), retrying in %.1fs",
                    method,
                    e.kind,
                    attempt + 1,
                    self.max_retries + 1,
                    delay,
                )
                attempt += 1
                await self._sleep(delay)


__all__ = [
    "RetryPolicy",
    "SleepFunc",
]
