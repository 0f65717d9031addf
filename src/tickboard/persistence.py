"""Persistence collaborator: the async store interface the board talks to.

``SQLiteTicketStore`` adapts the synchronous ``TicketDB``. SQLite calls are
fast and local, so they run inline on the event loop the same way the
dashboard handlers call ``TicketDB`` directly.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from tickboard.db_base import DeleteMode, DuplicateKeyError

if TYPE_CHECKING:
    from tickboard.core import Ticket, TicketDB, TicketDraft

logger = logging.getLogger(__name__)

__all__ = ["DuplicateKeyError", "PersistenceError", "SQLiteTicketStore", "TicketStore"]


class PersistenceError(Exception):
    """A store operation failed for reasons other than not-found or duplicate key."""


@runtime_checkable
class TicketStore(Protocol):
    async def get_ticket(self, ticket_id: str) -> Ticket: ...

    async def update_ticket_status(self, ticket_id: str, status: str) -> Ticket: ...

    async def get_children(self, parent_id: str) -> list[Ticket]: ...

    async def create_ticket(self, draft: TicketDraft) -> Ticket: ...

    async def delete_ticket(self, ticket_id: str, mode: DeleteMode = "detach") -> None: ...

    async def list_tickets(self, project_id: str) -> list[Ticket]: ...


class SQLiteTicketStore:
    """``TicketStore`` over a ``TicketDB``."""

    def __init__(self, db: TicketDB) -> None:
        self.db = db

    async def get_ticket(self, ticket_id: str) -> Ticket:
        try:
            return self.db.get_ticket(ticket_id)
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc

    async def update_ticket_status(self, ticket_id: str, status: str) -> Ticket:
        try:
            return self.db.update_ticket_status(ticket_id, status)
        except sqlite3.Error as exc:
            logger.warning("Status write failed for %s", ticket_id, extra={"ticket_id": ticket_id, "error": str(exc)})
            raise PersistenceError(str(exc)) from exc

    async def get_children(self, parent_id: str) -> list[Ticket]:
        try:
            return self.db.get_children(parent_id)
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc

    async def create_ticket(self, draft: TicketDraft) -> Ticket:
        try:
            return self.db.create_ticket(draft)
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc

    async def delete_ticket(self, ticket_id: str, mode: DeleteMode = "detach") -> None:
        try:
            self.db.delete_ticket(ticket_id, mode=mode)
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc

    async def list_tickets(self, project_id: str) -> list[Ticket]:
        try:
            return self.db.list_tickets(project_id)
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc
