"""
Command handlers for the quotesync CLI.

Each handler builds a SyncClient from the configured settings, performs one
operation against the persisted state and renders the result as a rich
table or as JSON.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from quotesync.cli.context import CliContext
from quotesync.cli.json_formatter import emit_json, format_json_error, format_json_output
from quotesync.client import SyncClient
from quotesync.containers import create_container
from quotesync.services.offline_queue import OfflineAction
from quotesync.shared.errors import ErrorCode, QuoteSyncError
from quotesync.shared.logging import setup_structured_logger

logger = logging.getLogger(__name__)


def build_client(context: CliContext) -> SyncClient:
    """Load settings, configure logging and return an initialized client."""
    settings = context.load_settings()
    setup_structured_logger(
        level=context.log_level.value,
        log_file=settings.logging.file,
        use_rich_console=settings.logging.rich_console,
    )
    client = create_container(settings).sync_client()
    client.init()
    return client


def _emit_json(command: str, data: Any) -> None:
    emit_json(format_json_output(success=True, command=command, data=data))


def _format_time(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _action_row(action: OfflineAction) -> dict[str, Any]:
    return action.model_dump(mode="json")


def handle_queue_show(context: CliContext) -> None:
    client = build_client(context)
    actions = client.queue.actions

    if context.json_output:
        _emit_json("queue show", {"count": len(actions), "actions": [_action_row(a) for a in actions]})
        return

    console = Console()
    if not actions:
        console.print("[green]No pending offline actions[/green]")
        return

    table = Table(title=f"Pending offline actions ({len(actions)})")
    table.add_column("ID", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Resource")
    table.add_column("Target")
    table.add_column("Enqueued")
    table.add_column("Retries", justify="right")
    for action in actions:
        table.add_row(
            action.id,
            action.type.value,
            action.resource,
            str(action.payload.get("id", "-")),
            _format_time(action.enqueued_at),
            f"{action.retry_count}/{action.max_retries}",
        )
    console.print(table)


async def _drain(client: SyncClient) -> Any:
    try:
        return await client.sync()
    finally:
        await client.aclose()


def handle_queue_drain(context: CliContext) -> None:
    client = build_client(context)
    report = asyncio.run(_drain(client))

    summary = {
        "succeeded": report.succeeded,
        "retrying": report.retrying,
        "held": report.held,
        "failed": [_action_row(a) for a in report.failed],
        "remaining": len(client.queue),
    }
    if context.json_output:
        _emit_json("queue drain", summary)
        return

    console = Console()
    console.print(
        f"Replayed: [green]{len(report.succeeded)} succeeded[/green], "
        f"[yellow]{len(report.retrying)} retrying[/yellow], "
        f"[red]{len(report.failed)} failed[/red]; {summary['remaining']} remaining",
    )


def handle_queue_clear(context: CliContext) -> None:
    client = build_client(context)
    dropped = len(client.queue)
    client.queue.clear()

    if context.json_output:
        _emit_json("queue clear", {"dropped": dropped})
        return
    Console().print(f"Dropped {dropped} pending offline actions")


def handle_auth_status(context: CliContext) -> None:
    client = build_client(context)
    authenticated = client.credentials.is_authenticated

    if context.json_output:
        _emit_json("auth status", {"authenticated": authenticated})
        return
    if authenticated:
        Console().print("[green]Credentials stored[/green]")
    else:
        Console().print("[yellow]Not signed in[/yellow]")


def handle_auth_logout(context: CliContext) -> None:
    client = build_client(context)
    client.credentials.clear()

    if context.json_output:
        _emit_json("auth logout", {"authenticated": False})
        return
    Console().print("Signed out")


def handle_cli_error(error: Exception, command: str, *, json_output: bool = False) -> int:
    """Report ``error`` with its code and user message; returns the exit code."""
    if isinstance(error, QuoteSyncError):
        code = error.code
        message = f"{error.user_message} ({error.message})"
    else:
        code = ErrorCode.CLI_UNEXPECTED_ERROR
        message = f"Unexpected error: {error}"

    logger.error(
        "CLI error in %s: %s",
        command,
        message,
        extra={"context": {"command": command, "error_code": code.value}},
    )

    if json_output:
        emit_json(format_json_error(command, error, message))
    else:
        typer.echo(f"Error [{code.value}]: {message}", err=True)
    return 1
