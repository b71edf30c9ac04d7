"""Logging configuration model."""

from __future__ import annotations

from pydantic import BaseModel, Field


class LoggingSettings(BaseModel):
    """Logging configuration.

    This class manages logging behavior including level, file output,
    and console rendering.
    """

    level: str = Field(default="INFO", description="Logging level")
    file: str | None = Field(default=None, description="JSON-lines log file path")
    rich_console: bool = Field(default=True, description="Render console logs with rich")


__all__ = [
    "LoggingSettings",
]
