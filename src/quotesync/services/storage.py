"""Durable key/value storage for persisted client state.

Credentials and the offline queue survive restarts through a small
synchronous key/value interface. ``JsonFileStorage`` keeps one orjson file
per key and replaces it atomically; ``MemoryStorage`` backs tests and
ephemeral clients.
"""

from __future__ import annotations

import copy
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import orjson

from quotesync.shared.constants import StorageConfig
from quotesync.shared.errors import ErrorCode, create_storage_error
from quotesync.shared.logging import log_operation_error

logger = logging.getLogger(__name__)


@runtime_checkable
class DurableStorage(Protocol):
    """Key/value storage for JSON-serializable values."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStorage:
    """In-process storage. Values are deep-copied on the way in and out."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, key: str) -> Any | None:
        value = self._data.get(key)
        return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileStorage:
    """File-backed storage writing ``<directory>/<key>.json`` per key.

    Writes go to a temporary sibling first and are moved into place with
    ``os.replace``, so a crash never leaves a half-written value. A file
    that cannot be decoded is moved aside and reads as absent.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            error = create_storage_error(
                ErrorCode.STORAGE_WRITE_FAILED,
                f"Failed to create storage directory {self.directory}: {e!s}",
                key=str(self.directory),
                operation="storage_init",
                original_error=e,
            )
            log_operation_error(logger, error)
            raise error from e

    def _path_for(self, key: str) -> Path:
        return self.directory / f"{key}{StorageConfig.FILE_SUFFIX}"

    def get(self, key: str) -> Any | None:
        """Read the value stored under ``key``.

        Returns:
            The decoded value, or None if the key is absent or corrupted

        Raises:
            InfrastructureError: If the file exists but cannot be read
        """
        path = self._path_for(key)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            error = create_storage_error(
                ErrorCode.STORAGE_READ_FAILED,
                f"Failed to read storage key '{key}': {e!s}",
                key=key,
                operation="storage_get",
                original_error=e,
            )
            log_operation_error(logger, error)
            raise error from e

        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            self._handle_corrupted_file(path, key, e)
            return None

    def set(self, key: str, value: Any) -> None:
        """Persist ``value`` under ``key``.

        Raises:
            InfrastructureError: If the value cannot be serialized or written
        """
        path = self._path_for(key)
        tmp_path = path.with_suffix(StorageConfig.FILE_SUFFIX + StorageConfig.TEMP_SUFFIX)
        try:
            payload = orjson.dumps(value)
            tmp_path.write_bytes(payload)
            os.replace(tmp_path, path)
        except (OSError, TypeError) as e:
            tmp_path.unlink(missing_ok=True)
            error = create_storage_error(
                ErrorCode.STORAGE_WRITE_FAILED,
                f"Failed to write storage key '{key}': {e!s}",
                key=key,
                operation="storage_set",
                original_error=e,
            )
            log_operation_error(logger, error)
            raise error from e

    def remove(self, key: str) -> None:
        """Delete ``key``; removing an absent key is a no-op."""
        try:
            self._path_for(key).unlink(missing_ok=True)
        except OSError as e:
            error = create_storage_error(
                ErrorCode.STORAGE_WRITE_FAILED,
                f"Failed to remove storage key '{key}': {e!s}",
                key=key,
                operation="storage_remove",
                original_error=e,
            )
            log_operation_error(logger, error)
            raise error from e

    def _handle_corrupted_file(
        self,
        path: Path,
        key: str,
        json_error: orjson.JSONDecodeError,
    ) -> None:
        """Move a corrupted file to a timestamped backup and log it."""
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        backup = path.with_suffix(f".corrupted.{timestamp}{StorageConfig.FILE_SUFFIX}")

        error = create_storage_error(
            ErrorCode.STORAGE_CORRUPTED,
            f"Storage key '{key}' is corrupted and was reset: {json_error!s}",
            key=key,
            operation="storage_get",
            original_error=json_error,
        )
        log_operation_error(logger, error, level=logging.WARNING)

        try:
            path.rename(backup)
        except OSError:
            logger.exception("Failed to back up corrupted storage file %s", path)


__all__ = [
    "DurableStorage",
    "JsonFileStorage",
    "MemoryStorage",
]
