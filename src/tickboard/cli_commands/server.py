"""CLI command for serving the HTTP API."""

from __future__ import annotations

import click

from tickboard.dashboard import DEFAULT_PORT


@click.command()
@click.option("--port", default=DEFAULT_PORT, type=int, help=f"Port (default {DEFAULT_PORT})")
def dashboard(port: int) -> None:
    """Serve the board API on localhost."""
    from tickboard.dashboard import main

    main(port=port)


def register(cli: click.Group) -> None:
    """Register the dashboard command with the CLI group."""
    cli.add_command(dashboard)
