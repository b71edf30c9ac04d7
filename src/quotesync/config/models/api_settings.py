"""API configuration models.

This module contains configuration models for the remote REST API and the
transport's retry schedule.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from quotesync.shared.constants import NetworkConfig, RetryConfig


class APISettings(BaseModel):
    """Remote API configuration.

    Note: the base URL is joined with request paths, so it must not end
    with a slash.
    """

    base_url: str = Field(
        default=NetworkConfig.DEFAULT_BASE_URL,
        description="Base URL of the REST API",
    )
    timeout: float = Field(
        default=NetworkConfig.DEFAULT_TIMEOUT,
        gt=0,
        description="Request timeout in seconds",
    )
    refresh_path: str = Field(
        default=NetworkConfig.REFRESH_PATH,
        description="Path of the token refresh endpoint",
    )

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class RetrySettings(BaseModel):
    """Retry schedule for retryable transport failures."""

    base_delay_ms: int = Field(
        default=RetryConfig.BASE_DELAY_MS,
        ge=0,
        description="Delay before the first retry in milliseconds",
    )
    max_delay_ms: int = Field(
        default=RetryConfig.MAX_DELAY_MS,
        ge=0,
        description="Upper bound of a single retry delay in milliseconds",
    )
    max_retries: int = Field(
        default=RetryConfig.MAX_RETRIES,
        ge=0,
        description="Number of retries after the initial attempt",
    )


__all__ = [
    "APISettings",
    "RetrySettings",
]
