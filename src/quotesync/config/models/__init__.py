"""Configuration models."""

from .api_settings import APISettings, RetrySettings
from .app_settings import LoggingSettings
from .cache_settings import CacheSettings
from .queue_settings import QueueSettings, StorageSettings
from .settings import Settings

__all__ = [
    "APISettings",
    "CacheSettings",
    "LoggingSettings",
    "QueueSettings",
    "RetrySettings",
    "Settings",
    "StorageSettings",
]
