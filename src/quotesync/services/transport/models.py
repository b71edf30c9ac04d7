"""Transport data models: request options, responses and rate limits."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Mapping

from quotesync.shared.constants import Headers


def _header_int(headers: Mapping[str, str], name: str) -> int | None:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class RateLimitInfo:
    """Values of the ``X-RateLimit-*`` response headers.

    ``reset`` is whatever the server sends (epoch seconds); the transport
    only records it.
    """

    limit: int | None = None
    remaining: int | None = None
    reset: int | None = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> RateLimitInfo | None:
        """Parse the rate limit headers; None when none are present."""
        info = cls(
            limit=_header_int(headers, Headers.RATE_LIMIT_LIMIT),
            remaining=_header_int(headers, Headers.RATE_LIMIT_REMAINING),
            reset=_header_int(headers, Headers.RATE_LIMIT_RESET),
        )
        if info.limit is None and info.remaining is None and info.reset is None:
            return None
        return info


@dataclass(frozen=True)
class ApiResponse:
    """Unwrapped success envelope."""

    data: Any
    status: int
    message: str | None = None
    timestamp: str | None = None
    request_id: str | None = None
    rate_limit: RateLimitInfo | None = None


@dataclass(frozen=True)
class RequestOptions:
    """Per-request transport options.

    Attributes:
        params: Query string parameters
        headers: Extra headers merged over the defaults
        timeout: Deadline in seconds, overriding the configured one
        retry: Whether retryable failures are retried
        skip_auth_refresh: Surface 401s without attempting a refresh
        is_refresh_retry: Set on the replay after a refresh
        authenticated: Attach the Authorization header
    """

    params: Mapping[str, Any] | None = None
    headers: Mapping[str, str] = field(default_factory=dict)
    timeout: float | None = None
    retry: bool = True
    skip_auth_refresh: bool = False
    is_refresh_retry: bool = False
    authenticated: bool = True

    def as_refresh_retry(self) -> RequestOptions:
        return replace(self, is_refresh_retry=True)


__all__ = [
    "ApiResponse",
    "RateLimitInfo",
    "RequestOptions",
]
