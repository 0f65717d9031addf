"""Shared pytest fixtures for tickboard tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Generator
from dataclasses import replace
from pathlib import Path

import pytest
from click.testing import CliRunner

from tickboard.core import Project, Ticket, TicketDB, TicketDraft
from tickboard.db_base import DeleteMode, DuplicateKeyError
from tickboard.persistence import PersistenceError

PROJECT_ID = "prj-test"


@pytest.fixture(autouse=True)
def _no_tickboard_dir_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TICKBOARD_DIR", raising=False)


@pytest.fixture
def db(tmp_path: Path) -> Generator[TicketDB, None, None]:
    """Fresh TicketDB for each test."""
    d = TicketDB(tmp_path / "tickboard.db")
    d.initialize()
    yield d
    d.close()


@pytest.fixture
def project(db: TicketDB) -> Project:
    return db.create_project("WEB", "Web app")


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def make_ticket() -> Callable[..., Ticket]:
    """Factory for in-memory tickets. The key defaults to the upper-cased ID."""

    def _make(ticket_id: str, status: str = "backlog", parent_id: str | None = None, **kwargs: object) -> Ticket:
        fields: dict[str, object] = {
            "key": ticket_id.upper(),
            "summary": f"Ticket {ticket_id}",
            "project_id": PROJECT_ID,
            "created_at": "2026-01-01T00:00:00+00:00",
            "updated_at": "2026-01-01T00:00:00+00:00",
        }
        fields.update(kwargs)
        return Ticket(id=ticket_id, status=status, parent_id=parent_id, **fields)  # type: ignore[arg-type]

    return _make


class FakeStore:
    """In-memory async ``TicketStore`` with failure injection.

    ``fail_ids`` makes status writes for those tickets raise
    ``PersistenceError``. While ``gate`` is set, every status write waits
    for it, so tests can interleave several in-flight moves.
    """

    def __init__(self, tickets: list[Ticket] | None = None) -> None:
        self.tickets: dict[str, Ticket] = {t.id: replace(t) for t in tickets or []}
        self.fail_ids: set[str] = set()
        self.fail_all = False
        self.gate: asyncio.Event | None = None
        self.calls: list[tuple[str, str]] = []
        self._next = 1

    async def get_ticket(self, ticket_id: str) -> Ticket:
        if ticket_id not in self.tickets:
            msg = f"Ticket not found: {ticket_id}"
            raise KeyError(msg)
        return replace(self.tickets[ticket_id])

    async def update_ticket_status(self, ticket_id: str, status: str) -> Ticket:
        self.calls.append(("update_ticket_status", f"{ticket_id}:{status}"))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_all or ticket_id in self.fail_ids:
            msg = f"disk full while writing {ticket_id}"
            raise PersistenceError(msg)
        if ticket_id not in self.tickets:
            msg = f"Ticket not found: {ticket_id}"
            raise KeyError(msg)
        self.tickets[ticket_id].status = status
        return replace(self.tickets[ticket_id])

    async def get_children(self, parent_id: str) -> list[Ticket]:
        return [replace(t) for t in self.tickets.values() if t.parent_id == parent_id]

    async def create_ticket(self, draft: TicketDraft) -> Ticket:
        self.calls.append(("create_ticket", draft.summary))
        if self.fail_all:
            msg = "database is locked"
            raise PersistenceError(msg)
        key = (draft.key or f"WEB-{self._next}").upper()
        if any(t.key == key for t in self.tickets.values()):
            raise DuplicateKeyError(key, draft.project_id)
        ticket = Ticket(
            id=f"tkt-{self._next:04d}",
            key=key,
            summary=draft.summary,
            project_id=draft.project_id,
            status=draft.status,
            issue_type=draft.issue_type,
            parent_id=draft.parent_id,
            priority=draft.priority,
            created_at="2026-01-01T00:00:00+00:00",
            updated_at="2026-01-01T00:00:00+00:00",
        )
        self._next += 1
        self.tickets[ticket.id] = ticket
        return replace(ticket)

    async def delete_ticket(self, ticket_id: str, mode: DeleteMode = "detach") -> None:
        self.calls.append(("delete_ticket", f"{ticket_id}:{mode}"))
        if self.fail_all:
            msg = "database is locked"
            raise PersistenceError(msg)
        if ticket_id not in self.tickets:
            msg = f"Ticket not found: {ticket_id}"
            raise KeyError(msg)
        doomed = {ticket_id}
        if mode == "cascade":
            grew = True
            while grew:
                below = {t.id for t in self.tickets.values() if t.parent_id in doomed}
                grew = not below <= doomed
                doomed |= below
        for tid in doomed:
            del self.tickets[tid]
        for t in self.tickets.values():
            if t.parent_id in doomed:
                t.parent_id = None

    async def list_tickets(self, project_id: str) -> list[Ticket]:
        return [replace(t) for t in self.tickets.values() if t.project_id == project_id]


@pytest.fixture
def fake_store_factory() -> Callable[..., FakeStore]:
    return FakeStore
