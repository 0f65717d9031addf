"""Shared CLI helpers for ``cli.py`` and the ``cli_commands/*`` modules."""

from __future__ import annotations

import json as json_mod
import sys
from typing import Any, NoReturn

import click

from tickboard.core import (
    DB_FILENAME,
    TICKBOARD_DIR_NAME,
    Project,
    Ticket,
    TicketDB,
    find_tickboard_root,
    read_config,
)
from tickboard.logging import setup_logging
from tickboard.validation import parse_ticket_key


def fail(message: str, as_json: bool = False) -> NoReturn:
    """Report an error the way every command does and exit 1."""
    if as_json:
        click.echo(json_mod.dumps({"error": message}))
    else:
        click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def echo_json(data: Any) -> None:
    click.echo(json_mod.dumps(data, indent=2, default=str))


def get_db() -> TicketDB:
    """Discover .tickboard/ and return an initialized TicketDB."""
    try:
        tickboard_dir = find_tickboard_root()
    except FileNotFoundError:
        click.echo(f"No {TICKBOARD_DIR_NAME}/ found. Run 'tickboard init' first.", err=True)
        sys.exit(1)
    setup_logging(tickboard_dir)
    db = TicketDB(tickboard_dir / DB_FILENAME)
    db.initialize()
    return db


def get_project(db: TicketDB) -> Project:
    """The workspace's default project, from ``config.json``."""
    config = read_config(find_tickboard_root())
    key = config.get("project_key", "")
    if not key:
        fail(f"No project_key in {TICKBOARD_DIR_NAME}/config.json. Run 'tickboard init --key KEY'.")
    try:
        return db.get_project_by_key(key)
    except KeyError:
        fail(f"Project {key} not found in the database")


def resolve_ticket(db: TicketDB, project: Project, ref: str) -> Ticket:
    """Look a ticket up by key (``PRJ-12``) or by ID. Raises KeyError."""
    if parse_ticket_key(ref.strip().upper()) is not None:
        try:
            return db.get_ticket_by_key(project.id, ref)
        except KeyError:
            pass  # an ID can look like a key; fall through to the ID lookup
    return db.get_ticket(ref)
