"""
Network Configuration Constants

Constants for the HTTP transport: methods, headers, timeouts and the retry
schedule.
"""

from typing import ClassVar


class HTTPMethods:
    """HTTP methods grouped by retry semantics."""

    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"

    READ: ClassVar[frozenset[str]] = frozenset({"GET", "HEAD"})
    MUTATING: ClassVar[frozenset[str]] = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class Headers:
    """Request and response header names."""

    AUTHORIZATION = "Authorization"
    REQUEST_ID = "X-Request-ID"
    CONTENT_TYPE = "Content-Type"
    ACCEPT = "Accept"
    RATE_LIMIT_LIMIT = "X-RateLimit-Limit"
    RATE_LIMIT_REMAINING = "X-RateLimit-Remaining"
    RATE_LIMIT_RESET = "X-RateLimit-Reset"

    CONTENT_TYPE_JSON = "application/json"
    BEARER_PREFIX = "Bearer "


class NetworkConfig:
    """Transport defaults."""

    DEFAULT_BASE_URL = "http://localhost:3001/api"
    DEFAULT_TIMEOUT = 30.0  # seconds
    REFRESH_PATH = "/auth/refresh"
    USER_AGENT = "quotesync/0.1.0"


class RetryConfig:
    """Retry schedule: exponential backoff from 1s, doubling, capped at 30s."""

    BASE_DELAY_MS = 1000
    MAX_DELAY_MS = 30000
    MAX_RETRIES = 3
