"""CommentsMixin: free-text discussion attached to tickets.

All methods access ``self.conn`` and ``self.get_ticket()`` via Python's MRO
when composed into ``TicketDB``. Comments go when their ticket is deleted
(``ON DELETE CASCADE``).
"""

from __future__ import annotations

import logging
from typing import cast

from tickboard.db_base import DBMixinProtocol, _now_iso
from tickboard.types.core import CommentRecord, ISOTimestamp

logger = logging.getLogger(__name__)

_MAX_COMMENT_LENGTH = 10_000


class CommentsMixin(DBMixinProtocol):
    """Ticket comments.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``TicketDB`` at composition time via MRO.
    """

    def add_comment(self, ticket_id: str, text: str, *, author: str = "") -> CommentRecord:
        if not text or not text.strip():
            msg = "Comment text cannot be empty"
            raise ValueError(msg)
        if len(text) > _MAX_COMMENT_LENGTH:
            msg = f"Comment text must be at most {_MAX_COMMENT_LENGTH} characters"
            raise ValueError(msg)
        self.get_ticket(ticket_id)  # raises KeyError if not found

        now = _now_iso()
        try:
            cursor = self.conn.execute(
                "INSERT INTO comments (ticket_id, author, text, created_at) VALUES (?, ?, ?, ?)",
                (ticket_id, author, text, now),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        comment_id = cursor.lastrowid
        if comment_id is None:  # pragma: no cover
            msg = "INSERT did not produce a lastrowid"
            raise RuntimeError(msg)
        logger.debug("Comment %d added to %s", comment_id, ticket_id, extra={"ticket_id": ticket_id})
        return CommentRecord(id=comment_id, ticket_id=ticket_id, author=author, text=text, created_at=ISOTimestamp(now))

    def get_comments(self, ticket_id: str) -> list[CommentRecord]:
        """Comments on *ticket_id*, oldest first. Raises KeyError for an unknown ticket."""
        self.get_ticket(ticket_id)
        rows = self.conn.execute(
            "SELECT id, ticket_id, author, text, created_at FROM comments WHERE ticket_id = ? ORDER BY created_at, id",
            (ticket_id,),
        ).fetchall()
        return cast(list[CommentRecord], [{**dict(r), "author": r["author"] or ""} for r in rows])
