"""Shared utilities, types, and Protocol for DB mixins."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Literal, Protocol

if TYPE_CHECKING:
    from tickboard.core import Project, Ticket

DeleteMode = Literal["detach", "cascade"]
DELETE_MODES: frozenset[str] = frozenset({"detach", "cascade"})


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class DuplicateKeyError(ValueError):
    """Raised when a ticket key is already taken within its project."""

    def __init__(self, key: str, project_id: str) -> None:
        self.key = key
        self.project_id = project_id
        super().__init__(f"A ticket with key '{key}' already exists in project {project_id}")


class DBMixinProtocol(Protocol):
    """Shared attributes and methods that DB mixins access via self.

    Mixins inherit this Protocol so mypy can type-check self.conn,
    self.get_ticket(), etc. without ``type: ignore`` on every call.
    Actual implementations are provided by TicketDB at composition time.
    """

    db_path: Path
    _conn: sqlite3.Connection | None

    @property
    def conn(self) -> sqlite3.Connection: ...

    def get_ticket(self, ticket_id: str) -> Ticket: ...

    def get_project(self, project_id: str) -> Project: ...
