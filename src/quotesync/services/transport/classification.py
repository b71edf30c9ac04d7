"""Translation of transport failures into the ApiError taxonomy.

This is the only place raw HTTP statuses, server error envelopes and
aiohttp exceptions are interpreted. Everything above the transport sees
classified ``ApiError`` subclasses.
"""

from __future__ import annotations

from typing import Any

from quotesync.services.transport.models import RateLimitInfo
from quotesync.shared.constants import HTTPMethods, HTTPStatusCodes
from quotesync.shared.error_messages import get_error_message
from quotesync.shared.errors import (
    ApiError,
    AuthenticationError,
    AuthorizationError,
    BusinessLogicError,
    ErrorCode,
    ErrorContext,
    ExternalServiceError,
    InternalServerError,
    NetworkError,
    RateLimitExceededError,
    RequestTimeoutError,
    ResourceNotFoundError,
    ValidationError,
)

STATUS_ERRORS: dict[int, type[ApiError]] = {
    HTTPStatusCodes.BAD_REQUEST: ValidationError,
    HTTPStatusCodes.UNAUTHORIZED: AuthenticationError,
    HTTPStatusCodes.FORBIDDEN: AuthorizationError,
    HTTPStatusCodes.NOT_FOUND: ResourceNotFoundError,
    HTTPStatusCodes.REQUEST_TIMEOUT: RequestTimeoutError,
    HTTPStatusCodes.UNPROCESSABLE_ENTITY: BusinessLogicError,
    HTTPStatusCodes.TOO_MANY_REQUESTS: RateLimitExceededError,
    HTTPStatusCodes.BAD_GATEWAY: ExternalServiceError,
    HTTPStatusCodes.SERVICE_UNAVAILABLE: ExternalServiceError,
    HTTPStatusCodes.GATEWAY_TIMEOUT: ExternalServiceError,
    HTTPStatusCodes.INTERNAL_SERVER_ERROR: InternalServerError,
}

CODE_ERRORS: dict[ErrorCode, type[ApiError]] = {
    ErrorCode.VALIDATION_ERROR: ValidationError,
    ErrorCode.AUTHENTICATION_ERROR: AuthenticationError,
    ErrorCode.AUTHORIZATION_ERROR: AuthorizationError,
    ErrorCode.RESOURCE_NOT_FOUND: ResourceNotFoundError,
    ErrorCode.RATE_LIMIT_EXCEEDED: RateLimitExceededError,
    ErrorCode.BUSINESS_LOGIC_ERROR: BusinessLogicError,
    ErrorCode.EXTERNAL_SERVICE_ERROR: ExternalServiceError,
    ErrorCode.INTERNAL_SERVER_ERROR: InternalServerError,
}

READ_RETRY_STATUSES = frozenset(
    {HTTPStatusCodes.REQUEST_TIMEOUT, HTTPStatusCodes.TOO_MANY_REQUESTS},
)
MUTATING_RETRY_STATUSES = READ_RETRY_STATUSES


def _error_class_for_status(status: int) -> type[ApiError]:
    if status in STATUS_ERRORS:
        return STATUS_ERRORS[status]
    if HTTPStatusCodes.is_server_error(status):
        return InternalServerError
    return BusinessLogicError


def _parse_code(raw_code: Any) -> ErrorCode | None:
    if not isinstance(raw_code, str):
        return None
    try:
        return ErrorCode(raw_code)
    except ValueError:
        return None


def classify_response(
    status: int,
    body: Any,
    *,
    reason: str | None = None,
    method: str = "GET",
    path: str = "",
    rate_limit: RateLimitInfo | None = None,
) -> ApiError:
    """Build the ApiError for an HTTP error response.

    A recognised server ``error.code`` selects the class; otherwise the
    status does. The server message is kept as ``message``; callers show
    ``user_message`` instead.

    Args:
        status: HTTP status of the response
        body: Decoded response body (envelope, other JSON or text)
        reason: HTTP reason phrase
        method: Request method
        path: Request path
        rate_limit: Parsed rate limit headers

    Returns:
        The classified error (not raised)
    """
    error_body: dict[str, Any] = {}
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error_body = body["error"]

    code = _parse_code(error_body.get("code"))
    if code is not None and code in CODE_ERRORS:
        error_cls = CODE_ERRORS[code]
    else:
        error_cls = _error_class_for_status(status)
        code = None

    message = error_body.get("message") or reason or f"HTTP {status}"

    return error_cls(
        str(message),
        code=code,
        status_code=status,
        details=error_body.get("details"),
        request_id=error_body.get("requestId"),
        rate_limit=rate_limit,
        context=ErrorContext(
            operation="api_request",
            resource=path,
            additional_data={"method": method, "status": status},
        ),
    )


def network_error(
    error: BaseException,
    *,
    method: str = "GET",
    path: str = "",
) -> NetworkError:
    """Build the error for a request that got no response."""
    return NetworkError(
        get_error_message(ErrorCode.NETWORK_ERROR),
        context=ErrorContext(
            operation="api_request",
            resource=path,
            additional_data={"method": method, "reason": type(error).__name__},
        ),
        original_error=error,
    )


def timeout_error(
    error: BaseException | None,
    *,
    method: str = "GET",
    path: str = "",
    timeout: float | None = None,
) -> RequestTimeoutError:
    """Build the error for a request aborted after its deadline."""
    additional: dict[str, Any] = {"method": method}
    if timeout is not None:
        additional["timeout"] = timeout
    return RequestTimeoutError(
        get_error_message(ErrorCode.TIMEOUT_ERROR),
        context=ErrorContext(
            operation="api_request",
            resource=path,
            additional_data=additional,
        ),
        original_error=error,
    )


def is_retryable(error: BaseException, method: str) -> bool:
    """Decide whether ``error`` may be retried for ``method``.

    Read methods retry network failures, timeouts, 408, 429 and any 5xx.
    Mutating methods retry only 408, 429 and failures without a response,
    since a 5xx may have been applied on the server.
    """
    if not isinstance(error, ApiError):
        return False

    status = error.status_code
    if method.upper() in HTTPMethods.READ:
        return (
            isinstance(error, NetworkError)
            or status in READ_RETRY_STATUSES
            or HTTPStatusCodes.is_server_error(status)
        )

    return isinstance(error, NetworkError) or status in MUTATING_RETRY_STATUSES


__all__ = [
    "CODE_ERRORS",
    "STATUS_ERRORS",
    "classify_response",
    "is_retryable",
    "network_error",
    "timeout_error",
]
