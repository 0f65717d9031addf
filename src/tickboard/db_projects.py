"""ProjectsMixin: project CRUD.

All methods access ``self.conn`` etc. via Python's MRO when composed
into ``TicketDB``.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from typing import TYPE_CHECKING

from tickboard.db_base import DBMixinProtocol, _now_iso
from tickboard.validation import validate_project_key

if TYPE_CHECKING:
    from tickboard.core import Project

logger = logging.getLogger(__name__)


class ProjectsMixin(DBMixinProtocol):
    """Project CRUD for TicketDB.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``TicketDB`` at composition time via MRO.
    """

    def create_project(self, key: str, name: str = "", *, description: str = "") -> Project:
        clean_key, err = validate_project_key(key)
        if err:
            raise ValueError(err)
        if self.conn.execute("SELECT 1 FROM projects WHERE key = ?", (clean_key,)).fetchone() is not None:
            msg = f"Project key '{clean_key}' is already in use"
            raise ValueError(msg)

        project_id = f"prj-{uuid.uuid4().hex[:10]}"
        now = _now_iso()
        try:
            self.conn.execute(
                "INSERT INTO projects (id, key, name, description, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
                (project_id, clean_key, name or clean_key, description, now, now),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.info("Created project %s (%s)", clean_key, project_id)
        return self.get_project(project_id)

    def get_project(self, project_id: str) -> Project:
        from tickboard.core import Project

        row = self.conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
        if row is None:
            msg = f"Project not found: {project_id}"
            raise KeyError(msg)
        return Project.from_row(row)

    def get_project_by_key(self, key: str) -> Project:
        from tickboard.core import Project

        row = self.conn.execute("SELECT * FROM projects WHERE key = ?", (key.strip().upper(),)).fetchone()
        if row is None:
            msg = f"Project not found: {key}"
            raise KeyError(msg)
        return Project.from_row(row)

    def list_projects(self) -> list[Project]:
        from tickboard.core import Project

        rows: list[sqlite3.Row] = self.conn.execute("SELECT * FROM projects ORDER BY created_at, key").fetchall()
        return [Project.from_row(r) for r in rows]
