"""HTTP transport: request dispatch, classification, retry and refresh."""

from .classification import classify_response, is_retryable
from .client import Transport
from .models import ApiResponse, RateLimitInfo, RequestOptions
from .refresh import RefreshCoordinator
from .retry import RetryPolicy

__all__ = [
    "ApiResponse",
    "RateLimitInfo",
    "RefreshCoordinator",
    "RequestOptions",
    "RetryPolicy",
    "Transport",
    "classify_response",
    "is_retryable",
]
