"""Settings loader and cache.

This module handles:
- Environment variable loading from .env files
- Configuration file loading from TOML
- Thread-safe caching of the Settings instance
- Configuration update and save operations
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable

import toml
from dotenv import load_dotenv
from pydantic import ValidationError as PydanticValidationError

from quotesync.config.models.settings import Settings
from quotesync.shared.constants import StorageConfig
from quotesync.shared.errors import ApplicationError, ErrorCode, ErrorContext

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/quotesync.toml")


class SettingsLoader:
    """Thread-safe cache of one Settings instance.

    Uses double-checked locking to keep the common read path lock-free.
    """

    def __init__(self, config_path: str | Path | None = None) -> None:
        self._config_path = Path(config_path) if config_path else None
        self._instance: Settings | None = None
        self._lock = threading.RLock()

    def get_config(self) -> Settings:
        """Return the cached settings, loading them on first use."""
        if self._instance is None:
            with self._lock:
                if self._instance is None:
                    self._instance = load_settings(self._config_path)

        return self._instance

    def reload_config(self) -> Settings:
        """Drop the cached settings and load them again."""
        with self._lock:
            self._instance = load_settings(self._config_path)

        return self._instance

    def update_and_save_config(
        self,
        updater: Callable[[Settings], None],
        config_path: Path | str = DEFAULT_CONFIG_PATH,
    ) -> None:
        """Apply ``updater`` to a copy, validate it, save it and cache it.

        Raises:
            ApplicationError: If validation or saving fails
        """
        config_path = Path(config_path)

        with self._lock:
            try:
                updated = self.get_config().model_copy(deep=True)
                updater(updated)
                updated = Settings.model_validate(updated.model_dump())
                updated.to_toml_file(config_path)
                self._instance = updated

                logger.info("Configuration updated and saved to %s", config_path)

            except (PydanticValidationError, OSError, TypeError, ValueError) as e:
                logger.exception("Failed to update and save configuration")
                raise ApplicationError(
                    code=ErrorCode.CONFIGURATION_ERROR,
                    message=f"Configuration update failed: {e}",
                    context=ErrorContext(
                        operation="update_and_save_config",
                        additional_data={"config_path": str(config_path)},
                    ),
                    original_error=e,
                ) from e


def _load_env_file(env_file: Path = Path(".env")) -> None:
    """Load ``QUOTESYNC_*`` overrides from a .env file, if one exists.

    Variables already present in the environment win over the file.
    """
    if env_file.exists():
        load_dotenv(env_file, override=False)
        logger.debug("Loaded environment overrides from %s", env_file)


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from a TOML file, the environment and .env.

    Args:
        config_path: Optional TOML file. When omitted, the default locations
            are tried before falling back to defaults and environment.

    Returns:
        The loaded Settings

    Raises:
        ApplicationError: If an explicit file is missing or any file is invalid
    """
    _load_env_file()

    candidates: list[Path]
    if config_path:
        candidates = [Path(config_path)]
    else:
        candidates = [
            DEFAULT_CONFIG_PATH,
            Path("quotesync.toml"),
            Path.home() / StorageConfig.DEFAULT_DIRECTORY / "config.toml",
        ]

    for candidate in candidates:
        if not candidate.exists():
            continue
        try:
            return Settings.from_toml_file(candidate)
        except (toml.TomlDecodeError, PydanticValidationError) as e:
            raise ApplicationError(
                code=ErrorCode.CONFIG_ERROR,
                message=f"Invalid configuration file {candidate}: {e}",
                context=ErrorContext(
                    operation="load_settings",
                    additional_data={"config_path": str(candidate)},
                ),
                original_error=e,
            ) from e

    if config_path:
        raise ApplicationError(
            code=ErrorCode.CONFIG_ERROR,
            message=f"Configuration file not found: {config_path}",
            context=ErrorContext(
                operation="load_settings",
                additional_data={"config_path": str(config_path)},
            ),
        )

    return Settings()


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "SettingsLoader",
    "load_settings",
]
