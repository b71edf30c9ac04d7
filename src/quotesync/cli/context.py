"""Options given before the sub-command, stored on ``typer.Context.obj``."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from quotesync.config.loader import load_settings
from quotesync.config.models.settings import Settings


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class CliContext(BaseModel):
    """
    Global CLI options.

    Attributes:
        config_path: TOML file to load instead of the environment-only settings
        log_level: Console log level for the command run
        json_output: Print one JSON document instead of rich output
    """

    model_config = ConfigDict(frozen=True)

    config_path: Path | None = Field(default=None, description="TOML configuration file")
    log_level: LogLevel = Field(default=LogLevel.WARNING)
    json_output: bool = False

    def load_settings(self) -> Settings:
        """Settings for this run; raises ApplicationError when the file is unusable."""
        return load_settings(self.config_path)
