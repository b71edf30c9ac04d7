"""quotesync Error Handling Module

This module defines the error handling system for quotesync, providing
structured error classes with context information and user-friendly messages.

The error hierarchy follows these principles:
- One Source of Truth: All error codes are defined in ErrorCode enum
- Structured Context: ErrorContext provides additional information
- User-friendly Messages: Errors can be converted to user-friendly messages
- Proper Exception Chaining: Original exceptions are preserved

API failures are classified into the ApiError family exactly once, inside the
transport layer. Every other component treats them opaquely and only asks
whether an error is retryable or an authentication failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from quotesync.services.transport.models import RateLimitInfo

# Type alias for primitive context values (str, int, float, bool only)
PrimitiveContextValue = Union[str, int, float, bool]

# Default keys to mask in safe_dict for PII protection
SAFE_DICT_MASK_KEYS: tuple[str, ...] = ("user_id",)


class ErrorCode(str, Enum):
    """Error codes for quotesync.

    This enum serves as the single source of truth for all error codes
    used throughout the package. The API codes match the server's
    ``error.code`` values.
    """

    # API Errors (server taxonomy)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    AUTHORIZATION_ERROR = "AUTHORIZATION_ERROR"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    BUSINESS_LOGIC_ERROR = "BUSINESS_LOGIC_ERROR"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"

    # Client-side transport errors
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"

    # Session Errors
    SESSION_EXPIRED = "SESSION_EXPIRED"
    NO_REFRESH_TOKEN = "NO_REFRESH_TOKEN"  # noqa: S105  # nosec B105 - Error code constant

    # Cache Errors
    CACHE_ERROR = "CACHE_ERROR"
    QUERY_CANCELLED = "QUERY_CANCELLED"

    # Storage Errors
    STORAGE_READ_FAILED = "STORAGE_READ_FAILED"
    STORAGE_WRITE_FAILED = "STORAGE_WRITE_FAILED"
    STORAGE_CORRUPTED = "STORAGE_CORRUPTED"

    # Offline Queue Errors
    UNKNOWN_ACTION_TYPE = "UNKNOWN_ACTION_TYPE"
    MISSING_RESOURCE_ID = "MISSING_RESOURCE_ID"

    # Configuration Errors
    CONFIG_ERROR = "CONFIG_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Application Errors
    CLI_UNEXPECTED_ERROR = "CLI_UNEXPECTED_ERROR"


def _coerce_primitives(value: Any | None) -> dict[str, PrimitiveContextValue] | None:
    """Coerce additional_data values to primitives.

    Converts Path, Enum, Decimal to primitive types.

    Args:
        value: Input dictionary or None

    Returns:
        Dictionary with primitive values only, or None

    Raises:
        TypeError: If value is not a dict or contains unconvertible types
    """
    if value is None:
        return None

    if not isinstance(value, dict):
        error_msg = f"additional_data must be dict, got {type(value).__name__}"
        raise TypeError(error_msg)

    coerced: dict[str, PrimitiveContextValue] = {}
    for key, val in value.items():
        if isinstance(val, (str, int, float, bool)):
            coerced[key] = val
        elif isinstance(val, Path):
            coerced[key] = str(val)
        elif isinstance(val, Enum):
            coerced[key] = val.value
        elif isinstance(val, Decimal):
            coerced[key] = float(val)
        else:
            error_msg = (
                f"Cannot coerce {type(val).__name__} to primitive type. "
                f"Only str, int, float, bool, Path, Enum, Decimal are allowed."
            )
            raise TypeError(error_msg)

    return coerced


@dataclass(frozen=True)
class ErrorContextModel:
    """Context information for errors.

    Only primitive types (str, int, float, bool) are allowed in
    additional_data to ensure safe serialization and prevent sensitive data
    leakage.

    Attributes:
        operation: Optional operation name that caused the error
        resource: Optional resource path or cache key involved
        user_id: Optional user ID (masked in logs)
        additional_data: Optional dict with primitive values only
    """

    operation: str | None = None
    resource: str | None = None
    user_id: str | None = None
    additional_data: dict[str, PrimitiveContextValue] | None = None

    def __post_init__(self) -> None:
        """Post-initialization validation and coercion."""
        if self.additional_data is not None:
            coerced = _coerce_primitives(self.additional_data)
            object.__setattr__(self, "additional_data", coerced)

    def safe_dict(self, *, mask_keys: tuple[str, ...] | None = None) -> dict[str, Any]:
        """Export context as dict with PII masking.

        Args:
            mask_keys: Fields to exclude from output. Defaults to SAFE_DICT_MASK_KEYS.

        Returns:
            Dictionary with masked sensitive fields and guaranteed additional_data key.

        Example:
            >>> context = ErrorContextModel(user_id="12345", resource="/orders")
            >>> context.safe_dict()
            {'resource': '/orders', 'additional_data': {}}
        """
        if mask_keys is None:
            mask_keys = SAFE_DICT_MASK_KEYS

        data: dict[str, Any] = {}
        if self.operation is not None and "operation" not in mask_keys:
            data["operation"] = self.operation
        if self.resource is not None and "resource" not in mask_keys:
            data["resource"] = self.resource
        if self.user_id is not None and "user_id" not in mask_keys:
            data["user_id"] = self.user_id

        if self.additional_data is not None and "additional_data" not in mask_keys:
            data["additional_data"] = self.additional_data
        else:
            data["additional_data"] = {}

        return data


ErrorContext = ErrorContextModel


class QuoteSyncError(Exception):
    """Base exception class for all quotesync errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: ErrorContext | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        """Initialize QuoteSyncError.

        Args:
            code: Error code from ErrorCode enum
            message: Human-readable error message
            context: Additional context information
            original_error: Original exception that caused this error
        """
        self.code = code
        self.message = message
        self.context = context or ErrorContext()
        self.original_error = original_error

        super().__init__(f"{code.value}: {message}")

    def __str__(self) -> str:
        """Return string representation of the error."""
        return f"{self.code.value}: {self.message}"

    @property
    def user_message(self) -> str:
        """User-facing message derived from the error code."""
        from quotesync.shared.error_messages import get_error_message

        return get_error_message(self.code)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging with PII masking."""
        return {
            "code": self.code.value,
            "message": self.message,
            "context": self.context.safe_dict(),
            "original_error": str(self.original_error) if self.original_error else None,
        }


class DomainError(QuoteSyncError):
    """Domain rule violations inside the client (bad keys, bad actions)."""


class InfrastructureError(QuoteSyncError):
    """Errors from local infrastructure such as durable storage."""


class ApplicationError(QuoteSyncError):
    """Application-level errors: configuration, lifecycle, CLI."""


class QueryCancelledError(QuoteSyncError):
    """Raised to callers awaiting a fetch that was cancelled.

    A fetch is cancelled when its last observer detaches or an invalidation
    supersedes it.
    """


class ApiError(QuoteSyncError):
    """Classified failure of a remote API call.

    Carries the HTTP status (0 when no response was received), the
    server-supplied details and request id when available, and the rate
    limit headers of the failed response.
    """

    default_code: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR
    default_status: int = 500

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        status_code: int | None = None,
        details: Any = None,
        request_id: str | None = None,
        rate_limit: RateLimitInfo | None = None,
        context: ErrorContext | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(
            code or self.default_code,
            message,
            context,
            original_error,
        )
        self.status_code = self.default_status if status_code is None else status_code
        self.details = details
        self.request_id = request_id
        self.rate_limit = rate_limit

    @property
    def kind(self) -> str:
        """Taxonomy name of the error, e.g. ``ValidationError``."""
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "kind": self.kind,
                "status_code": self.status_code,
                "request_id": self.request_id,
                "user_message": self.user_message,
            },
        )
        return data


class ValidationError(ApiError):
    """400: the request payload was rejected."""

    default_code = ErrorCode.VALIDATION_ERROR
    default_status = 400


class AuthenticationError(ApiError):
    """401: missing, expired or rejected credentials."""

    default_code = ErrorCode.AUTHENTICATION_ERROR
    default_status = 401


class AuthorizationError(ApiError):
    """403: authenticated but not permitted."""

    default_code = ErrorCode.AUTHORIZATION_ERROR
    default_status = 403


class ResourceNotFoundError(ApiError):
    """404."""

    default_code = ErrorCode.RESOURCE_NOT_FOUND
    default_status = 404


class RateLimitExceededError(ApiError):
    """429."""

    default_code = ErrorCode.RATE_LIMIT_EXCEEDED
    default_status = 429


class BusinessLogicError(ApiError):
    """422, or a domain rule rejected by the server with another 4xx."""

    default_code = ErrorCode.BUSINESS_LOGIC_ERROR
    default_status = 422


class ExternalServiceError(ApiError):
    """502/503/504: an upstream dependency of the API failed."""

    default_code = ErrorCode.EXTERNAL_SERVICE_ERROR
    default_status = 503


class InternalServerError(ApiError):
    """500 and any other unclassified 5xx."""

    default_code = ErrorCode.INTERNAL_SERVER_ERROR
    default_status = 500


class NetworkError(ApiError):
    """No response was received (connection refused, DNS, reset)."""

    default_code = ErrorCode.NETWORK_ERROR
    default_status = 0


class RequestTimeoutError(NetworkError):
    """The request was aborted after its deadline.

    Reported with status 408 so retry rules treat it like a server-side
    request timeout.
    """

    default_code = ErrorCode.TIMEOUT_ERROR
    default_status = 408


def is_connectivity_error(error: BaseException) -> bool:
    """Return True for failures that mean "try again when back online"."""
    return isinstance(error, NetworkError)


def create_storage_error(
    code: ErrorCode,
    message: str,
    key: str,
    operation: str,
    original_error: BaseException | None = None,
) -> InfrastructureError:
    """Create a durable storage error with context."""
    return InfrastructureError(
        code,
        message,
        ErrorContext(operation=operation, resource=key),
        original_error,
    )
