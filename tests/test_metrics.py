"""Tests for flow metrics."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

import pytest

from tickboard.core import Ticket
from tickboard.metrics import cycle_time, get_flow_metrics, lead_time, status_distribution

MakeTicket = Callable[..., Ticket]
NOW = datetime(2026, 3, 31, tzinfo=UTC)


def _done(make_ticket: MakeTicket, ticket_id: str, created: str, finished: str, **kwargs: object) -> Ticket:
    return make_ticket(ticket_id, "done", created_at=created, updated_at=finished, **kwargs)


class TestTimes:
    def test_lead_and_cycle_time(self, make_ticket: MakeTicket) -> None:
        t = _done(make_ticket, "a", "2026-03-01T00:00:00+00:00", "2026-03-11T00:00:00+00:00")
        assert lead_time(t) == 10.0
        assert cycle_time(t) == 7.0

    def test_floor_for_same_day_work(self, make_ticket: MakeTicket) -> None:
        t = _done(make_ticket, "a", "2026-03-01T09:00:00+00:00", "2026-03-01T10:00:00+00:00")
        assert lead_time(t) == 0.5
        assert cycle_time(t) == 0.5

    def test_open_ticket_is_zero(self, make_ticket: MakeTicket) -> None:
        t = make_ticket("a", "review")
        assert lead_time(t) == 0
        assert cycle_time(t) == 0

    def test_naive_and_bad_timestamps(self, make_ticket: MakeTicket) -> None:
        naive = _done(make_ticket, "a", "2026-03-01T00:00:00", "2026-03-03T00:00:00")
        assert lead_time(naive) == 2.0
        broken = _done(make_ticket, "b", "yesterday", "2026-03-03T00:00:00")
        assert lead_time(broken) == 0


class TestDistribution:
    def test_every_status_listed_in_order(self, make_ticket: MakeTicket) -> None:
        dist = status_distribution([make_ticket("a", "todo"), make_ticket("b", "todo"), make_ticket("c", "done")])
        assert list(dist) == ["backlog", "todo", "in-progress", "review", "done"]
        assert dist == {"backlog": 0, "todo": 2, "in-progress": 0, "review": 0, "done": 1}


class TestFlowMetrics:
    def test_window_and_averages(self, make_ticket: MakeTicket) -> None:
        tickets = [
            _done(make_ticket, "a", "2026-03-20T00:00:00+00:00", "2026-03-30T00:00:00+00:00"),
            _done(make_ticket, "b", "2026-03-25T00:00:00+00:00", "2026-03-29T00:00:00+00:00", issue_type="bug"),
            _done(make_ticket, "old", "2026-01-01T00:00:00+00:00", "2026-01-10T00:00:00+00:00"),
            make_ticket("open", "review"),
        ]
        data = get_flow_metrics(tickets, days=30, now=NOW)
        assert data["period_days"] == 30
        assert data["throughput"] == 2
        assert data["avg_lead_time_days"] == 7.0
        assert data["avg_cycle_time_days"] == pytest.approx(4.9)
        assert data["by_type"] == {
            "task": {"avg_cycle_time_days": 7.0, "count": 1},
            "bug": {"avg_cycle_time_days": 2.8, "count": 1},
        }
        assert data["status_distribution"]["done"] == 3
        assert data["status_distribution"]["review"] == 1

    def test_nothing_done(self, make_ticket: MakeTicket) -> None:
        data = get_flow_metrics([make_ticket("a", "todo")], now=NOW)
        assert data["throughput"] == 0
        assert data["avg_cycle_time_days"] is None
        assert data["avg_lead_time_days"] is None
        assert data["by_type"] == {}
