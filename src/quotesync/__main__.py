"""Allow ``python -m quotesync``."""

from quotesync.cli.typer_app import app

if __name__ == "__main__":
    app()
