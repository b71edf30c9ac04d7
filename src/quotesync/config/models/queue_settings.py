"""Offline queue and durable storage configuration models."""

from __future__ import annotations

from pydantic import BaseModel, Field

from quotesync.shared.constants import QueueConfig, StorageConfig, StorageKeys


class QueueSettings(BaseModel):
    """Offline action queue configuration."""

    max_retries: int = Field(
        default=QueueConfig.MAX_RETRIES,
        gt=0,
        description="Failed replays after which an action is dropped",
    )
    storage_key: str = Field(
        default=StorageKeys.OFFLINE_QUEUE,
        description="Durable storage key of the queue",
    )
    auto_drain: bool = Field(
        default=True,
        description="Drain automatically when connectivity returns",
    )


class StorageSettings(BaseModel):
    """Durable storage configuration.

    When ``directory`` is empty, state is kept in memory only.
    """

    directory: str = Field(
        default=StorageConfig.DEFAULT_DIRECTORY,
        description="Directory of the persisted state files",
    )
    access_token_key: str = Field(default=StorageKeys.ACCESS_TOKEN)
    refresh_token_key: str = Field(default=StorageKeys.REFRESH_TOKEN)


__all__ = [
    "QueueSettings",
    "StorageSettings",
]
