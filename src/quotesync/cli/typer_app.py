"""
quotesync Typer CLI Application

Inspect and operate on the persisted client state: the offline action
queue and the stored credentials.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import typer

from quotesync import __version__
from quotesync.cli.context import CliContext, LogLevel
from quotesync.cli.handlers import (
    handle_auth_logout,
    handle_auth_status,
    handle_cli_error,
    handle_queue_clear,
    handle_queue_drain,
    handle_queue_show,
)

app = typer.Typer(
    name="quotesync",
    help="Client-side sync layer for the quotation and order API.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
queue_app = typer.Typer(help="Inspect and replay the offline action queue.", no_args_is_help=True)
auth_app = typer.Typer(help="Stored credentials.", no_args_is_help=True)
app.add_typer(queue_app, name="queue")
app.add_typer(auth_app, name="auth")


def version_callback(value: bool) -> None:
    """Print version information and exit."""
    if value:
        typer.echo(f"quotesync {__version__}")
        raise typer.Exit


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="TOML configuration file",
        dir_okay=False,
    ),
    log_level: LogLevel = typer.Option(LogLevel.WARNING, "--log-level", help="Logging level"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Process the common options."""
    ctx.obj = CliContext(config_path=config, log_level=log_level, json_output=json_output)


def _run(ctx: typer.Context, command: str, handler: Callable[[CliContext], None]) -> None:
    context: CliContext = ctx.obj
    try:
        handler(context)
    except Exception as e:
        exit_code = handle_cli_error(e, command, json_output=context.json_output)
        raise typer.Exit(exit_code) from e


@queue_app.command("show")
def queue_show(ctx: typer.Context) -> None:
    """List persisted offline actions."""
    _run(ctx, "queue show", handle_queue_show)


@queue_app.command("drain")
def queue_drain(ctx: typer.Context) -> None:
    """Replay persisted offline actions now."""
    _run(ctx, "queue drain", handle_queue_drain)


@queue_app.command("clear")
def queue_clear(ctx: typer.Context) -> None:
    """Drop every persisted offline action."""
    _run(ctx, "queue clear", handle_queue_clear)


@auth_app.command("status")
def auth_status(ctx: typer.Context) -> None:
    """Show whether credentials are stored."""
    _run(ctx, "auth status", handle_auth_status)


@auth_app.command("logout")
def auth_logout(ctx: typer.Context) -> None:
    """Clear stored credentials."""
    _run(ctx, "auth logout", handle_auth_logout)


if __name__ == "__main__":
    app()
