"""HTTP Status Code Constants.

This module contains HTTP status code constants for clear and
type-safe handling of API responses and network operations.
"""


class HTTPStatusCodes:
    """HTTP status code constants."""

    # Pseudo status for "no response received"
    NO_RESPONSE = 0

    # 2xx Success
    OK = 200
    CREATED = 201
    ACCEPTED = 202
    NO_CONTENT = 204

    # 4xx Client Errors
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    REQUEST_TIMEOUT = 408
    CONFLICT = 409
    UNPROCESSABLE_ENTITY = 422
    TOO_MANY_REQUESTS = 429

    # 5xx Server Errors
    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503
    GATEWAY_TIMEOUT = 504

    @staticmethod
    def is_success(code: int) -> bool:
        """Check if status code indicates success (2xx)."""
        return 200 <= code < 300

    @staticmethod
    def is_client_error(code: int) -> bool:
        """Check if status code indicates client error (4xx)."""
        return 400 <= code < 500

    @staticmethod
    def is_server_error(code: int) -> bool:
        """Check if status code indicates server error (5xx)."""
        return 500 <= code < 600
