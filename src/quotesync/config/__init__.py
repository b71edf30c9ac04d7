"""quotesync Configuration Module

This module provides access to the configuration models and the settings
loader:
- Settings: Main configuration facade
- SettingsLoader / load_settings: TOML, environment and .env loading
- Domain models: API, retry, cache, queue, storage and logging settings
"""

from __future__ import annotations

from .loader import DEFAULT_CONFIG_PATH, SettingsLoader, load_settings
from .models import (
    APISettings,
    CacheSettings,
    LoggingSettings,
    QueueSettings,
    RetrySettings,
    Settings,
    StorageSettings,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "APISettings",
    "CacheSettings",
    "LoggingSettings",
    "QueueSettings",
    "RetrySettings",
    "Settings",
    "SettingsLoader",
    "StorageSettings",
    "load_settings",
]
