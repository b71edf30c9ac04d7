"""quotesync Settings Configuration Model.

Main Settings class that consolidates all configuration domains.
"""

from __future__ import annotations

import logging
from pathlib import Path

import toml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from quotesync.config.models.api_settings import APISettings, RetrySettings
from quotesync.config.models.app_settings import LoggingSettings
from quotesync.config.models.cache_settings import CacheSettings
from quotesync.config.models.queue_settings import QueueSettings, StorageSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Settings facade providing unified configuration access.

    Values come from defaults and ``QUOTESYNC_*`` environment variables
    (``__`` separates sections, e.g. ``QUOTESYNC_API__BASE_URL``). Values
    read by ``from_toml_file`` take precedence over the environment.
    """

    model_config = SettingsConfigDict(
        env_prefix="QUOTESYNC_",
        env_nested_delimiter="__",
        env_ignore_empty=True,
        extra="ignore",
    )

    api: APISettings = Field(default_factory=APISettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def from_toml_file(cls, file_path: str | Path) -> Settings:
        """Load settings from a TOML file; unset fields fall back to the environment."""

        file_path = Path(file_path)
        if not file_path.exists():
            msg = f"Configuration file not found: {file_path}"
            raise FileNotFoundError(msg)

        raw_config = toml.load(file_path)
        return cls(**raw_config)

    def to_toml_file(self, file_path: str | Path) -> None:
        """Save settings to TOML file."""

        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        config_dict = self.model_dump(exclude_none=True)

        with open(file_path, "w", encoding="utf-8") as f:
            toml.dump(config_dict, f)

        logger.debug("Settings written to %s", file_path)
