"""Tests for the board's async orchestration against a store."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from tickboard.board import PENDING_PREFIX, BoardReconciler, Denied, Failure, MoveResult
from tickboard.bus import NotificationBus, TicketEvent
from tickboard.core import Project, Ticket, TicketDB, TicketDraft
from tickboard.persistence import SQLiteTicketStore, TicketStore

MakeTicket = Callable[..., Ticket]
StoreFactory = Callable[..., Any]
Wire = Callable[[Any], BoardReconciler]
PROJECT_ID = "prj-test"


@pytest.fixture
def events() -> list[TicketEvent]:
    return []


@pytest.fixture
def wire(events: list[TicketEvent]) -> Wire:
    def _wire(store: Any) -> BoardReconciler:
        bus = NotificationBus()
        bus.subscribe(events.append)
        return BoardReconciler(PROJECT_ID, store, bus)

    return _wire


class TestLoad:
    def test_fake_store_satisfies_protocol(self, fake_store_factory: StoreFactory) -> None:
        assert isinstance(fake_store_factory(), TicketStore)

    async def test_load_fills_columns(self, fake_store_factory: StoreFactory, wire: Wire, make_ticket: MakeTicket) -> None:
        board = wire(fake_store_factory([make_ticket("a", "todo"), make_ticket("b", "done")]))
        assert board.tickets() == []
        await board.load()
        assert board.columns[1].ticket_ids == ["a"]
        assert board.columns[4].ticket_ids == ["b"]


class TestMove:
    async def test_every_effect_persisted(self, fake_store_factory: StoreFactory, wire: Wire, make_ticket: MakeTicket) -> None:
        store = fake_store_factory([make_ticket("s", "in-progress"), make_ticket("t", "in-progress", parent_id="s")])
        board = wire(store)
        await board.load()
        result = await board.move("t", "done")
        assert isinstance(result, MoveResult)
        assert result.ok
        assert store.tickets["t"].status == "done"
        assert store.tickets["s"].status == "done"
        assert sorted(store.calls) == [("update_ticket_status", "s:done"), ("update_ticket_status", "t:done")]

    async def test_denied_move_touches_nothing(
        self, fake_store_factory: StoreFactory, wire: Wire, make_ticket: MakeTicket
    ) -> None:
        store = fake_store_factory([make_ticket("s", "in-progress"), make_ticket("t", "todo", parent_id="s")])
        board = wire(store)
        await board.load()
        result = await board.move("s", "done")
        assert isinstance(result, Denied)
        assert store.calls == []

    async def test_failed_parent_write_reverts_only_the_parent(
        self,
        fake_store_factory: StoreFactory,
        wire: Wire,
        make_ticket: MakeTicket,
        events: list[TicketEvent],
    ) -> None:
        store = fake_store_factory([make_ticket("s", "in-progress"), make_ticket("t", "in-progress", parent_id="s")])
        store.fail_ids = {"s"}
        board = wire(store)
        await board.load()
        result = await board.move("t", "done")
        assert isinstance(result, MoveResult)
        assert not result.ok
        [failure] = result.failures
        assert failure.ticket_id == "s"
        assert failure.retryable
        assert board.get("t").status == "done"  # type: ignore[union-attr]
        assert board.get("s").status == "in-progress"  # type: ignore[union-attr]
        assert [e.name for e in events] == ["moved", "parent-updated", "updated"]
        assert result.to_dict()["failures"][0]["kind"] == "persistence"

    async def test_overlapping_moves_last_issued_wins(
        self, fake_store_factory: StoreFactory, wire: Wire, make_ticket: MakeTicket
    ) -> None:
        store = fake_store_factory([make_ticket("a", "in-progress")])
        board = wire(store)
        await board.load()
        store.gate = asyncio.Event()

        first = asyncio.create_task(board.move("a", "review"))
        second = asyncio.create_task(board.move("a", "done"))
        await asyncio.sleep(0)
        assert board.get("a").status == "done"  # type: ignore[union-attr]

        store.gate.set()
        results = await asyncio.gather(first, second)
        assert all(isinstance(r, MoveResult) and r.ok for r in results)
        assert board.get("a").status == "done"  # type: ignore[union-attr]
        assert [tid for c in board.columns for tid in c.ticket_ids] == ["a"]
        assert board.columns[4].ticket_ids == ["a"]


class TestCreate:
    async def test_create_confirms_pending_ticket(
        self,
        fake_store_factory: StoreFactory,
        wire: Wire,
        events: list[TicketEvent],
    ) -> None:
        board = wire(fake_store_factory())
        ticket = await board.create(TicketDraft(summary="Login page", project_id=PROJECT_ID, status="todo"))
        assert isinstance(ticket, Ticket)
        assert ticket.id == "tkt-0001"
        assert ticket.key == "WEB-1"
        assert board.columns[1].ticket_ids == ["tkt-0001"]
        assert board.snapshot()["pending"] == []
        assert [e.to_dict()["payload"] for e in events] == [{"key": "WEB-1"}]

    async def test_duplicate_key_leaves_board_unchanged(
        self,
        fake_store_factory: StoreFactory,
        wire: Wire,
        make_ticket: MakeTicket,
        events: list[TicketEvent],
    ) -> None:
        board = wire(fake_store_factory([make_ticket("tkt-1", "todo", key="WEB-1")]))
        await board.load()
        before = board.snapshot()

        outcome = await board.create(TicketDraft(summary="Again", project_id=PROJECT_ID, key="web-1"))
        assert isinstance(outcome, Failure)
        assert outcome.kind == "duplicate_key"
        assert not outcome.retryable
        assert board.snapshot() == before
        assert events == []

    async def test_store_failure_drops_placeholder(
        self, fake_store_factory: StoreFactory, wire: Wire, make_ticket: MakeTicket
    ) -> None:
        store = fake_store_factory([make_ticket("a", "backlog")])
        store.fail_all = True
        board = wire(store)
        await board.load()
        before = board.snapshot()

        outcome = await board.create(TicketDraft(summary="Later", project_id=PROJECT_ID))
        assert isinstance(outcome, Failure)
        assert outcome.retryable
        assert outcome.operation == "create"
        assert outcome.ticket_id.startswith(PENDING_PREFIX)
        assert board.snapshot() == before
        assert board.failures == [outcome]

    async def test_parent_ahead_of_new_child_pulled_back(
        self,
        fake_store_factory: StoreFactory,
        wire: Wire,
        make_ticket: MakeTicket,
        events: list[TicketEvent],
    ) -> None:
        store = fake_store_factory([make_ticket("e", "done"), make_ticket("s", "review", parent_id="e")])
        board = wire(store)
        await board.load()

        ticket = await board.create(TicketDraft(summary="Subtask", project_id=PROJECT_ID, parent_id="s"))
        assert isinstance(ticket, Ticket)
        assert board.get("s").status == "backlog"  # type: ignore[union-attr]
        assert board.get("e").status == "backlog"  # type: ignore[union-attr]
        assert store.tickets["s"].status == "backlog"
        assert store.tickets["e"].status == "backlog"
        assert [e.name for e in events] == ["created", "parent-updated", "parent-updated"]
        assert board.failures == []

    async def test_unknown_status_rejected_before_store(self, fake_store_factory: StoreFactory, wire: Wire) -> None:
        store = fake_store_factory()
        board = wire(store)
        with pytest.raises(ValueError):
            await board.create(TicketDraft(summary="x", project_id=PROJECT_ID, status="closed"))
        assert store.calls == []
        assert board.tickets() == []


class TestDelete:
    async def test_delete_removes_from_store_then_board(
        self, fake_store_factory: StoreFactory, wire: Wire, make_ticket: MakeTicket
    ) -> None:
        store = fake_store_factory([make_ticket("p"), make_ticket("c", parent_id="p")])
        board = wire(store)
        await board.load()
        assert await board.delete("p", "cascade") == ["p", "c"]
        assert store.tickets == {}
        assert board.tickets() == []

    async def test_store_failure_keeps_ticket(
        self, fake_store_factory: StoreFactory, wire: Wire, make_ticket: MakeTicket
    ) -> None:
        store = fake_store_factory([make_ticket("p")])
        store.fail_all = True
        board = wire(store)
        await board.load()
        outcome = await board.delete("p")
        assert isinstance(outcome, Failure)
        assert outcome.operation == "delete"
        assert board.get("p") is not None

    async def test_pending_ticket_removed_locally(
        self, fake_store_factory: StoreFactory, wire: Wire, make_ticket: MakeTicket
    ) -> None:
        store = fake_store_factory()
        board = wire(store)
        board.apply_create(make_ticket("pending-1", key="", pending=True))
        assert await board.delete("pending-1") == ["pending-1"]
        assert store.calls == []

    async def test_missing_ticket_is_not_retryable(self, fake_store_factory: StoreFactory, wire: Wire) -> None:
        outcome = await wire(fake_store_factory()).delete("ghost")
        assert isinstance(outcome, Failure)
        assert outcome.kind == "not_found"
        assert not outcome.retryable


class TestSQLiteStore:
    async def test_cascade_persisted_to_database(self, db: TicketDB, project: Project) -> None:
        story = db.create_ticket(TicketDraft(summary="Story", project_id=project.id, issue_type="story", status="review"))
        task = db.create_ticket(
            TicketDraft(summary="Task", project_id=project.id, parent_id=story.id, status="review")
        )
        board = BoardReconciler(project.id, SQLiteTicketStore(db))
        await board.load()

        result = await board.move(task.id, "done")
        assert isinstance(result, MoveResult)
        assert result.ok
        assert db.get_ticket(task.id).status == "done"
        assert db.get_ticket(story.id).status == "done"

    async def test_create_and_delete_round_trip(self, db: TicketDB, project: Project) -> None:
        board = BoardReconciler(project.id, SQLiteTicketStore(db))
        ticket = await board.create(TicketDraft(summary="Write docs", project_id=project.id))
        assert isinstance(ticket, Ticket)
        assert ticket.key == "WEB-1"
        assert await board.delete(ticket.id) == [ticket.id]
        assert db.list_tickets(project.id) == []

    async def test_create_under_parent_matches_database(self, db: TicketDB, project: Project) -> None:
        story = db.create_ticket(TicketDraft(summary="Story", project_id=project.id, issue_type="story", status="review"))
        board = BoardReconciler(project.id, SQLiteTicketStore(db))
        await board.load()

        task = await board.create(TicketDraft(summary="Task", project_id=project.id, parent_id=story.id, status="todo"))
        assert isinstance(task, Ticket)
        assert db.get_ticket(story.id).status == "todo"
        assert board.get(story.id).status == "todo"  # type: ignore[union-attr]
        assert board.failures == []
