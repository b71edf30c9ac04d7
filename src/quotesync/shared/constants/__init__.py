"""
quotesync Constants Module

Centralized constants for quotesync. All magic values and configuration
defaults are defined here to ensure consistency across the package.
"""

from .cache import Cache, StaleTimes
from .http_codes import HTTPStatusCodes
from .network import Headers, HTTPMethods, NetworkConfig, RetryConfig
from .storage import QueueConfig, StorageConfig, StorageKeys
from .system import BASE_MINUTE_MS, BASE_SECOND_MS

__all__ = [
    "BASE_MINUTE_MS",
    "BASE_SECOND_MS",
    "Cache",
    "HTTPMethods",
    "HTTPStatusCodes",
    "Headers",
    "NetworkConfig",
    "QueueConfig",
    "RetryConfig",
    "StaleTimes",
    "StorageConfig",
    "StorageKeys",
]
