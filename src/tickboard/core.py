"""Core database operations and domain entities for tickboard.

Single source of truth for SQLite persistence. The CLI, the HTTP API and
the async store adapter all go through ``TicketDB``.

Convention-based discovery: each workspace has a `.tickboard/` directory
containing `tickboard.db` (SQLite) and `config.json` (default project key).
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tickboard.db_base import _now_iso
from tickboard.db_comments import CommentsMixin
from tickboard.db_projects import ProjectsMixin
from tickboard.db_schema import CURRENT_SCHEMA_VERSION, SCHEMA_SQL
from tickboard.db_tickets import TicketsMixin
from tickboard.statuses import INITIAL_STATUS
from tickboard.types.core import ISOTimestamp, ProjectConfig, ProjectDict, TicketDict

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

TICKBOARD_DIR_NAME = ".tickboard"
DB_FILENAME = "tickboard.db"
CONFIG_FILENAME = "config.json"
ENV_DIR = "TICKBOARD_DIR"


def find_tickboard_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .tickboard/ directory.

    ``$TICKBOARD_DIR`` short-circuits the walk. Returns the .tickboard/
    directory path (not the workspace root).
    """
    override = os.environ.get(ENV_DIR)
    if override:
        path = Path(override)
        if path.is_dir():
            return path
        msg = f"{ENV_DIR}={override} is not a directory"
        raise FileNotFoundError(msg)
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / TICKBOARD_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {TICKBOARD_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def read_config(tickboard_dir: Path) -> ProjectConfig:
    """Read .tickboard/config.json. Returns defaults if missing or corrupt."""
    defaults = ProjectConfig(project_key="", name="", version=1)
    config_path = tickboard_dir / CONFIG_FILENAME
    if not config_path.exists():
        return defaults
    try:
        result: ProjectConfig = json.loads(config_path.read_text())
        return result
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults


def write_config(tickboard_dir: Path, config: dict[str, Any] | ProjectConfig) -> None:
    """Write .tickboard/config.json."""
    config_path = tickboard_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


# ---------------------------------------------------------------------------
# Domain entities
# ---------------------------------------------------------------------------


@dataclass
class Project:
    id: str
    key: str
    name: str = ""
    description: str = ""
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Project:
        return cls(
            id=row["id"],
            key=row["key"],
            name=row["name"],
            description=row["description"] or "",
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> ProjectDict:
        return {
            "id": self.id,
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "created_at": ISOTimestamp(self.created_at),
            "updated_at": ISOTimestamp(self.updated_at),
        }


@dataclass
class Ticket:
    id: str
    key: str
    summary: str
    project_id: str
    status: str = INITIAL_STATUS
    issue_type: str = "task"
    parent_id: str | None = None
    priority: str = "medium"
    assignee: str = ""
    description: str = ""
    created_at: str = ""
    updated_at: str = ""
    # Client-side only: True until persistence confirms the ticket
    pending: bool = False

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Ticket:
        return cls(
            id=row["id"],
            key=row["key"],
            summary=row["summary"],
            project_id=row["project_id"],
            status=row["status"],
            issue_type=row["issue_type"],
            parent_id=row["parent_id"],
            priority=row["priority"],
            assignee=row["assignee"] or "",
            description=row["description"] or "",
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> TicketDict:
        return {
            "id": self.id,
            "key": self.key,
            "summary": self.summary,
            "status": self.status,
            "issue_type": self.issue_type,
            "parent_id": self.parent_id,
            "project_id": self.project_id,
            "priority": self.priority,
            "assignee": self.assignee,
            "description": self.description,
            "created_at": ISOTimestamp(self.created_at),
            "updated_at": ISOTimestamp(self.updated_at),
        }


@dataclass
class TicketDraft:
    """Caller-supplied fields for a ticket that does not exist yet."""

    summary: str
    project_id: str
    key: str | None = None
    status: str = INITIAL_STATUS
    issue_type: str = "task"
    parent_id: str | None = None
    priority: str = "medium"
    assignee: str = ""
    description: str = ""

    def to_pending(self, temp_id: str) -> Ticket:
        """Local stand-in for the ticket while creation is in flight."""
        now = _now_iso()
        return Ticket(
            id=temp_id,
            key=(self.key or "").strip().upper(),
            summary=self.summary,
            project_id=self.project_id,
            status=self.status,
            issue_type=self.issue_type,
            parent_id=self.parent_id,
            priority=self.priority,
            assignee=self.assignee,
            description=self.description,
            created_at=now,
            updated_at=now,
            pending=True,
        )


# ---------------------------------------------------------------------------
# TicketDB: the store
# ---------------------------------------------------------------------------


class TicketDB(ProjectsMixin, TicketsMixin, CommentsMixin):
    """Direct SQLite operations. No daemon, no sync. Importable by CLI and API."""

    def __init__(self, db_path: str | Path, *, check_same_thread: bool = True) -> None:
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._check_same_thread = check_same_thread

    @classmethod
    def from_workspace(cls, start: Path | None = None) -> TicketDB:
        """Create a TicketDB by discovering .tickboard/ from start (or cwd)."""
        tickboard_dir = find_tickboard_root(start)
        db = cls(tickboard_dir / DB_FILENAME)
        db.initialize()
        return db

    def __enter__(self) -> TicketDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level="DEFERRED",
                check_same_thread=self._check_same_thread,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.execute("PRAGMA busy_timeout=5000")
        return self._conn

    def initialize(self) -> None:
        """Create or upgrade tables and stamp the schema version."""
        current_version = self.get_schema_version()
        if current_version < CURRENT_SCHEMA_VERSION:
            self.conn.executescript(SCHEMA_SQL)
            self.conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")
            if current_version:
                logger.info("Upgraded schema v%d -> v%d", current_version, CURRENT_SCHEMA_VERSION)
        elif current_version > CURRENT_SCHEMA_VERSION:
            msg = f"Database schema v{current_version} is newer than this tickboard (v{CURRENT_SCHEMA_VERSION})"
            raise RuntimeError(msg)
        self.conn.commit()

    def get_schema_version(self) -> int:
        """Return the current schema version from PRAGMA user_version."""
        result: int = self.conn.execute("PRAGMA user_version").fetchone()[0]
        return result

    def reconnect(self, *, check_same_thread: bool) -> None:
        """Reopen the connection with a different thread-check setting."""
        self.close()
        self._check_same_thread = check_same_thread

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
