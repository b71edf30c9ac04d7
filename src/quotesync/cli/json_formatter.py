"""
JSON output for the quotesync CLI.

With ``--json`` every command prints exactly one document:

    {"success": ..., "command": ..., "timestamp": ..., "data": ..., "errors": [...]}

Errors keep the same shape; ``data`` then carries the error code, the error
class and the HTTP status when the failure came from the API.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import orjson
import typer
from pydantic import BaseModel

from quotesync.shared.errors import ApiError, ErrorCode, QuoteSyncError

_OPTIONS = orjson.OPT_SORT_KEYS | orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS


def _default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (set, frozenset, tuple)):
        return sorted(value, key=str)
    return str(value)


def format_json_output(
    success: bool,
    command: str,
    data: Any | None = None,
    errors: list[str] | None = None,
) -> bytes:
    """Encode one command result; any error forces ``success`` to False."""
    errors = list(errors or [])
    document = {
        "success": success and not errors,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "command": command,
        "data": data,
        "errors": errors,
    }
    return orjson.dumps(document, option=_OPTIONS, default=_default)


def format_json_error(command: str, error: Exception, message: str) -> bytes:
    """Encode a failed command."""
    code = error.code if isinstance(error, QuoteSyncError) else ErrorCode.CLI_UNEXPECTED_ERROR
    data: dict[str, Any] = {"error_code": code.value, "error_type": type(error).__name__}
    if isinstance(error, ApiError):
        data["status_code"] = error.status_code
        data["request_id"] = error.request_id
    return format_json_output(success=False, command=command, data=data, errors=[message])


def emit_json(payload: bytes) -> None:
    typer.echo(payload.decode("utf-8"))


__all__ = ["emit_json", "format_json_error", "format_json_output"]
