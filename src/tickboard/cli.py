"""CLI for the tickboard ticket tracker.

Convention-based: discovers .tickboard/ by walking up from cwd.

Usage:
    tickboard init --key WEB                     # Initialize .tickboard/ in cwd
    tickboard create "Login page" --type=story   # Create ticket
    tickboard show WEB-1                         # Show ticket details
    tickboard list --status=todo                 # List tickets
    tickboard update WEB-1 --priority=high       # Update ticket fields
    tickboard move WEB-1 in-progress             # Move, with parent cascade
    tickboard board                              # Column view
    tickboard delete WEB-1 --cascade             # Delete ticket (and subtree)
    tickboard comment WEB-1 "Looks good"         # Add a comment
    tickboard search login                       # Search summary/description/key
    tickboard metrics --days=14                  # Flow metrics
    tickboard dashboard                          # HTTP API on localhost
"""

from __future__ import annotations

from pathlib import Path

import click

from tickboard import __version__
from tickboard.cli_commands import board as _board_cmds
from tickboard.cli_commands import meta as _meta_cmds
from tickboard.cli_commands import server as _server_cmds
from tickboard.cli_commands import tickets as _ticket_cmds
from tickboard.cli_common import fail
from tickboard.core import DB_FILENAME, TICKBOARD_DIR_NAME, TicketDB, read_config, write_config
from tickboard.validation import validate_project_key


def _default_key(name: str) -> str:
    return "".join(ch for ch in name.upper() if ch.isalnum())[:4]


@click.group()
@click.version_option(version=__version__, prog_name="tickboard")
def cli() -> None:
    """Tickboard: hierarchy-aware ticket board."""


@cli.command()
@click.option("--key", default=None, help="Project key, e.g. WEB (default: from directory name)")
@click.option("--name", default=None, help="Project display name (default: directory name)")
def init(key: str | None, name: str | None) -> None:
    """Initialize .tickboard/ in the current directory."""
    cwd = Path.cwd()
    tickboard_dir = cwd / TICKBOARD_DIR_NAME

    if tickboard_dir.exists():
        click.echo(f"{TICKBOARD_DIR_NAME}/ already exists in {cwd}")
        # Still ensure DB is initialized
        with TicketDB(tickboard_dir / DB_FILENAME) as db:
            db.initialize()
            existing = read_config(tickboard_dir).get("project_key", "")
            if existing:
                click.echo(f"  Project: {existing}")
        return

    project_key, err = validate_project_key(key or _default_key(cwd.name))
    if err:
        fail(err)
    name = name or cwd.name

    tickboard_dir.mkdir()
    write_config(tickboard_dir, {"project_key": project_key, "name": name, "version": 1})
    with TicketDB(tickboard_dir / DB_FILENAME) as db:
        db.initialize()
        db.create_project(project_key, name)

    click.echo(f"Initialized {TICKBOARD_DIR_NAME}/ in {cwd}")
    click.echo(f"  Project: {project_key} ({name})")
    click.echo(f"  Database: {tickboard_dir / DB_FILENAME}")


_ticket_cmds.register(cli)
_board_cmds.register(cli)
_meta_cmds.register(cli)
_server_cmds.register(cli)


if __name__ == "__main__":
    cli()
