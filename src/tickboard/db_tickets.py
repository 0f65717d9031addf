"""TicketsMixin: ticket CRUD, status writes, hierarchy queries and deletion.

All methods access ``self.conn``, ``self.get_project()``, etc. via
Python's MRO when composed into ``TicketDB``.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from collections import deque
from typing import TYPE_CHECKING, Any

from tickboard.db_base import DELETE_MODES, DBMixinProtocol, DeleteMode, DuplicateKeyError, _now_iso
from tickboard.statuses import ISSUE_TYPES, PRIORITIES, STATUSES, index_of, is_valid_status
from tickboard.validation import parse_ticket_key, sanitize_summary

if TYPE_CHECKING:
    from tickboard.core import Ticket, TicketDraft

logger = logging.getLogger(__name__)

_MAX_HIERARCHY_DEPTH = 32


def _check_status(status: str) -> None:
    if not is_valid_status(status):
        msg = f"Invalid status '{status}'. Valid statuses: {', '.join(STATUSES)}"
        raise ValueError(msg)


def _check_priority(priority: str) -> None:
    if priority not in PRIORITIES:
        msg = f"Invalid priority '{priority}'. Valid priorities: {', '.join(PRIORITIES)}"
        raise ValueError(msg)


class TicketsMixin(DBMixinProtocol):
    """Ticket CRUD and hierarchy queries.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``TicketDB`` at composition time via MRO.
    """

    # -- ID / key generation -------------------------------------------------

    def _generate_ticket_id(self) -> str:
        """Generate a unique ID using O(1) EXISTS checks against the PK index."""
        for _ in range(10):
            candidate = f"tkt-{uuid.uuid4().hex[:10]}"
            if self.conn.execute("SELECT 1 FROM tickets WHERE id = ?", (candidate,)).fetchone() is None:
                return candidate
        return f"tkt-{uuid.uuid4().hex[:16]}"

    def _next_ticket_key(self, project_id: str, project_key: str) -> str:
        """Next free '<PROJECT_KEY>-<n>' for a project (max existing n + 1)."""
        highest = 0
        for r in self.conn.execute("SELECT key FROM tickets WHERE project_id = ?", (project_id,)).fetchall():
            parsed = parse_ticket_key(r["key"])
            if parsed is not None and parsed[0] == project_key:
                highest = max(highest, parsed[1])
        return f"{project_key}-{highest + 1}"

    # -- Validation helpers --------------------------------------------------

    def _validate_parent(self, parent_id: str, project_id: str, *, ticket_id: str | None = None) -> None:
        if ticket_id is not None and parent_id == ticket_id:
            msg = f"Ticket {ticket_id} cannot be its own parent"
            raise ValueError(msg)
        row = self.conn.execute("SELECT project_id FROM tickets WHERE id = ?", (parent_id,)).fetchone()
        if row is None:
            msg = f"Invalid parent_id '{parent_id}': ticket not found"
            raise ValueError(msg)
        if row["project_id"] != project_id:
            msg = f"Invalid parent_id '{parent_id}': parent belongs to another project"
            raise ValueError(msg)
        if ticket_id is None:
            return
        # Check for circular parent chain
        ancestor: str | None = parent_id
        for _ in range(_MAX_HIERARCHY_DEPTH):
            if ancestor is None:
                return
            up = self.conn.execute("SELECT parent_id FROM tickets WHERE id = ?", (ancestor,)).fetchone()
            if up is None:
                return
            ancestor = up["parent_id"]
            if ancestor == ticket_id:
                msg = f"Setting parent_id to '{parent_id}' would create a circular parent chain"
                raise ValueError(msg)
        msg = f"Parent chain above '{parent_id}' is deeper than {_MAX_HIERARCHY_DEPTH} levels"
        raise ValueError(msg)

    def _check_not_ahead_of_children(self, ticket_id: str, status: str) -> None:
        target = index_of(status)
        behind = [
            r["key"]
            for r in self.conn.execute("SELECT key, status FROM tickets WHERE parent_id = ?", (ticket_id,)).fetchall()
            if index_of(r["status"]) < target
        ]
        if behind:
            msg = f"Status '{status}' would put {ticket_id} ahead of its children: {', '.join(behind)}"
            raise ValueError(msg)

    def _pull_back_ancestors(self, parent_id: str | None, status: str) -> list[str]:
        """Move every ancestor ahead of *status* back to it. The caller commits."""
        pulled: list[str] = []
        target = index_of(status)
        now = _now_iso()
        ancestor = parent_id
        for _ in range(_MAX_HIERARCHY_DEPTH):
            if ancestor is None:
                break
            row = self.conn.execute("SELECT status, parent_id FROM tickets WHERE id = ?", (ancestor,)).fetchone()
            if row is None or index_of(row["status"]) <= target:
                break
            self.conn.execute("UPDATE tickets SET status = ?, updated_at = ? WHERE id = ?", (status, now, ancestor))
            pulled.append(ancestor)
            ancestor = row["parent_id"]
        if pulled:
            logger.info("Pulled %d ancestor(s) back to %s: %s", len(pulled), status, ", ".join(pulled))
        return pulled

    # -- Ticket CRUD ---------------------------------------------------------

    def create_ticket(self, draft: TicketDraft) -> Ticket:
        summary, err = sanitize_summary(draft.summary)
        if err:
            raise ValueError(err)
        _check_status(draft.status)
        _check_priority(draft.priority)
        if draft.issue_type not in ISSUE_TYPES:
            msg = f"Unknown issue type '{draft.issue_type}'. Valid types: {', '.join(ISSUE_TYPES)}"
            raise ValueError(msg)

        project = self.get_project(draft.project_id)  # raises KeyError if not found
        if draft.parent_id:
            self._validate_parent(draft.parent_id, project.id)

        key = draft.key.strip().upper() if draft.key else self._next_ticket_key(project.id, project.key)
        existing = self.conn.execute(
            "SELECT 1 FROM tickets WHERE project_id = ? AND key = ?",
            (project.id, key),
        ).fetchone()
        if existing is not None:
            raise DuplicateKeyError(key, project.id)

        ticket_id = self._generate_ticket_id()
        now = _now_iso()
        try:
            self.conn.execute(
                "INSERT INTO tickets (id, key, project_id, summary, status, issue_type, parent_id, "
                "priority, assignee, description, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    ticket_id,
                    key,
                    project.id,
                    summary,
                    draft.status,
                    draft.issue_type,
                    draft.parent_id or None,
                    draft.priority,
                    draft.assignee,
                    draft.description,
                    now,
                    now,
                ),
            )
            self._pull_back_ancestors(draft.parent_id or None, draft.status)
            self.conn.commit()
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            if "UNIQUE" in str(exc):
                raise DuplicateKeyError(key, project.id) from exc
            raise
        except Exception:
            self.conn.rollback()
            raise

        logger.info("Created ticket %s (%s)", key, ticket_id, extra={"ticket_id": ticket_id})
        return self.get_ticket(ticket_id)

    def get_ticket(self, ticket_id: str) -> Ticket:
        from tickboard.core import Ticket

        row = self.conn.execute("SELECT * FROM tickets WHERE id = ?", (ticket_id,)).fetchone()
        if row is None:
            msg = f"Ticket not found: {ticket_id}"
            raise KeyError(msg)
        return Ticket.from_row(row)

    def get_ticket_by_key(self, project_id: str, key: str) -> Ticket:
        from tickboard.core import Ticket

        row = self.conn.execute(
            "SELECT * FROM tickets WHERE project_id = ? AND key = ?",
            (project_id, key.strip().upper()),
        ).fetchone()
        if row is None:
            msg = f"Ticket not found: {key}"
            raise KeyError(msg)
        return Ticket.from_row(row)

    def list_tickets(
        self,
        project_id: str,
        *,
        status: str | None = None,
        issue_type: str | None = None,
        parent_id: str | None = None,
    ) -> list[Ticket]:
        from tickboard.core import Ticket

        conditions = ["project_id = ?"]
        params: list[Any] = [project_id]
        if status is not None:
            _check_status(status)
            conditions.append("status = ?")
            params.append(status)
        if issue_type is not None:
            conditions.append("issue_type = ?")
            params.append(issue_type)
        if parent_id is not None:
            conditions.append("parent_id = ?")
            params.append(parent_id)

        rows = self.conn.execute(
            f"SELECT * FROM tickets WHERE {' AND '.join(conditions)} ORDER BY created_at, rowid",
            params,
        ).fetchall()
        return [Ticket.from_row(r) for r in rows]

    def search_tickets(self, project_id: str, query: str, *, limit: int = 100, offset: int = 0) -> list[Ticket]:
        """Tickets whose summary, description or key contains *query*, case-insensitively."""
        from tickboard.core import Ticket

        query = query.strip()
        if not query:
            return []
        escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        rows = self.conn.execute(
            "SELECT * FROM tickets WHERE project_id = ? AND "
            "(summary LIKE ? ESCAPE '\\' OR description LIKE ? ESCAPE '\\' OR key LIKE ? ESCAPE '\\') "
            "ORDER BY created_at, rowid LIMIT ? OFFSET ?",
            (project_id, pattern, pattern, pattern, limit, offset),
        ).fetchall()
        return [Ticket.from_row(r) for r in rows]

    def get_children(self, parent_id: str) -> list[Ticket]:
        from tickboard.core import Ticket

        rows = self.conn.execute(
            "SELECT * FROM tickets WHERE parent_id = ? ORDER BY created_at, rowid",
            (parent_id,),
        ).fetchall()
        return [Ticket.from_row(r) for r in rows]

    def get_descendants(self, ticket_id: str) -> list[str]:
        """All transitive child IDs of *ticket_id*, breadth-first."""
        result: list[str] = []
        seen = {ticket_id}
        queue: deque[str] = deque([ticket_id])
        while queue:
            current = queue.popleft()
            for r in self.conn.execute("SELECT id FROM tickets WHERE parent_id = ?", (current,)).fetchall():
                child_id = r["id"]
                if child_id in seen:
                    logger.warning("Parent cycle detected below %s at %s", ticket_id, child_id)
                    continue
                seen.add(child_id)
                result.append(child_id)
                queue.append(child_id)
        return result

    def update_ticket(
        self,
        ticket_id: str,
        *,
        summary: str | None = None,
        description: str | None = None,
        priority: str | None = None,
        assignee: str | None = None,
        parent_id: str | None = None,
        status: str | None = None,
    ) -> Ticket:
        """Update the mutable fields of a ticket. ``parent_id=""`` clears the parent.

        Key, issue type and project are fixed at creation.
        """
        current = self.get_ticket(ticket_id)

        # --- Validate all inputs BEFORE any writes to prevent partial commits ---
        if summary is not None:
            summary, err = sanitize_summary(summary)
            if err:
                raise ValueError(err)
        if priority is not None:
            _check_priority(priority)
        if status is not None:
            _check_status(status)
            self._check_not_ahead_of_children(ticket_id, status)
        if parent_id:
            self._validate_parent(parent_id, current.project_id, ticket_id=ticket_id)

        updates: list[str] = []
        params: list[Any] = []
        if summary is not None and summary != current.summary:
            updates.append("summary = ?")
            params.append(summary)
        if description is not None and description != current.description:
            updates.append("description = ?")
            params.append(description)
        if priority is not None and priority != current.priority:
            updates.append("priority = ?")
            params.append(priority)
        if assignee is not None and assignee != current.assignee:
            updates.append("assignee = ?")
            params.append(assignee)
        if status is not None and status != current.status:
            updates.append("status = ?")
            params.append(status)
        if parent_id is not None:
            if parent_id == "":
                if current.parent_id is not None:
                    updates.append("parent_id = NULL")
            elif parent_id != current.parent_id:
                updates.append("parent_id = ?")
                params.append(parent_id)

        if updates:
            updates.append("updated_at = ?")
            params.append(_now_iso())
            params.append(ticket_id)
            new_parent = current.parent_id if parent_id is None else parent_id or None
            try:
                self.conn.execute(f"UPDATE tickets SET {', '.join(updates)} WHERE id = ?", params)
                self._pull_back_ancestors(new_parent, status or current.status)
                self.conn.commit()
            except Exception:
                self.conn.rollback()
                raise

        return self.get_ticket(ticket_id)

    def update_ticket_status(self, ticket_id: str, status: str) -> Ticket:
        """Status-only write. Idempotent: repeating the current status is a no-op."""
        _check_status(status)
        current = self.get_ticket(ticket_id)
        if current.status == status:
            return current
        try:
            self.conn.execute(
                "UPDATE tickets SET status = ?, updated_at = ? WHERE id = ?",
                (status, _now_iso(), ticket_id),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.debug("Status %s -> %s for %s", current.status, status, ticket_id, extra={"ticket_id": ticket_id})
        return self.get_ticket(ticket_id)

    def delete_ticket(self, ticket_id: str, *, mode: DeleteMode = "detach") -> list[str]:
        """Delete a ticket. Returns every deleted ID (the ticket first).

        ``detach`` clears the children's parent reference; ``cascade``
        deletes all descendants as well.
        """
        if mode not in DELETE_MODES:
            msg = f"Invalid delete mode '{mode}'. Valid modes: {', '.join(sorted(DELETE_MODES))}"
            raise ValueError(msg)
        self.get_ticket(ticket_id)  # raises KeyError if not found

        deleted = [ticket_id]
        try:
            if mode == "cascade":
                descendants = self.get_descendants(ticket_id)
                # Deepest first so no row is left pointing at a deleted parent
                for child_id in reversed(descendants):
                    self.conn.execute("DELETE FROM tickets WHERE id = ?", (child_id,))
                deleted.extend(descendants)
            else:
                self.conn.execute(
                    "UPDATE tickets SET parent_id = NULL, updated_at = ? WHERE parent_id = ?",
                    (_now_iso(), ticket_id),
                )
            self.conn.execute("DELETE FROM tickets WHERE id = ?", (ticket_id,))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.info("Deleted %d ticket(s) starting at %s (%s)", len(deleted), ticket_id, mode, extra={"ticket_id": ticket_id})
        return deleted
