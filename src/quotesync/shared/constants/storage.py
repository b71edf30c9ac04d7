"""
Durable Storage Constants

Stable keys of the persisted local state. All keys are absent on first run.
"""


class StorageKeys:
    """Keys used in durable storage."""

    ACCESS_TOKEN = "access_token"  # noqa: S105  # nosec B105 - storage key name
    REFRESH_TOKEN = "refresh_token"  # noqa: S105  # nosec B105 - storage key name
    OFFLINE_QUEUE = "offline-queue"


class StorageConfig:
    """File storage defaults."""

    DEFAULT_DIRECTORY = ".quotesync"
    FILE_SUFFIX = ".json"
    TEMP_SUFFIX = ".tmp"


class QueueConfig:
    """Offline queue defaults."""

    MAX_RETRIES = 3
