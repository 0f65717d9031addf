"""Tests for the cascade propagator."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from tickboard.cascade import Effect, propagate, pull_back_ancestors
from tickboard.core import Ticket
from tickboard.hierarchy import HierarchyIndex

MakeTicket = Callable[..., Ticket]


def _plan(ticket_id: str, status: str, *tickets: Ticket) -> list[tuple[str, str]]:
    return propagate(ticket_id, status, HierarchyIndex.build_lenient(tickets)).as_pairs()


class TestForward:
    def test_only_child_done_completes_parent(self, make_ticket: MakeTicket) -> None:
        story = make_ticket("s", "in-progress")
        task = make_ticket("t", "in-progress", parent_id="s")
        assert _plan("t", "done", story, task) == [("t", "done"), ("s", "done")]

    def test_done_with_unfinished_sibling_stops(self, make_ticket: MakeTicket) -> None:
        story = make_ticket("s", "in-progress")
        t1 = make_ticket("t1", "in-progress", parent_id="s")
        t2 = make_ticket("t2", "review", parent_id="s")
        assert _plan("t1", "done", story, t1, t2) == [("t1", "done")]

    def test_done_climbs_every_finished_level(self, make_ticket: MakeTicket) -> None:
        tickets = [
            make_ticket("e", "review"),
            make_ticket("f", "review", parent_id="e"),
            make_ticket("s", "review", parent_id="f"),
            make_ticket("t", "review", parent_id="s"),
        ]
        assert _plan("t", "done", *tickets) == [("t", "done"), ("s", "done"), ("f", "done"), ("e", "done")]

    def test_parent_pulled_up_when_no_sibling_behind(self, make_ticket: MakeTicket) -> None:
        feature = make_ticket("f", "todo")
        t1 = make_ticket("t1", "todo", parent_id="f")
        t2 = make_ticket("t2", "done", parent_id="f")
        assert _plan("t1", "review", feature, t1, t2) == [("t1", "review"), ("f", "review")]

    def test_parent_stays_when_sibling_behind(self, make_ticket: MakeTicket) -> None:
        feature = make_ticket("f", "todo")
        t1 = make_ticket("t1", "todo", parent_id="f")
        t2 = make_ticket("t2", "todo", parent_id="f")
        assert _plan("t1", "review", feature, t1, t2) == [("t1", "review")]

    def test_parent_already_done_is_left_alone(self, make_ticket: MakeTicket) -> None:
        story = make_ticket("s", "done")
        task = make_ticket("t", "review", parent_id="s")
        assert _plan("t", "done", story, task) == [("t", "done")]


class TestBackward:
    def test_child_back_pulls_parent_back(self, make_ticket: MakeTicket) -> None:
        feature = make_ticket("f", "review")
        t = make_ticket("t", "review", parent_id="f")
        t2 = make_ticket("t2", "done", parent_id="f")
        assert _plan("t", "todo", feature, t, t2) == [("t", "todo"), ("f", "todo")]

    def test_reopening_under_done_chain(self, make_ticket: MakeTicket) -> None:
        tickets = [
            make_ticket("e", "done"),
            make_ticket("s", "done", parent_id="e"),
            make_ticket("t", "done", parent_id="s"),
        ]
        assert _plan("t", "in-progress", *tickets) == [("t", "in-progress"), ("s", "in-progress"), ("e", "in-progress")]

    def test_parent_behind_with_lagging_sibling_is_left_alone(self, make_ticket: MakeTicket) -> None:
        feature = make_ticket("f", "backlog")
        t = make_ticket("t", "review", parent_id="f")
        t2 = make_ticket("t2", "backlog", parent_id="f")
        assert _plan("t", "todo", feature, t, t2) == [("t", "todo")]

    def test_parent_behind_follows_when_every_child_ahead(self, make_ticket: MakeTicket) -> None:
        feature = make_ticket("f", "backlog")
        t = make_ticket("t", "review", parent_id="f")
        assert _plan("t", "todo", feature, t) == [("t", "todo"), ("f", "todo")]


class TestPlanShape:
    def test_origin_first_with_previous_status(self, make_ticket: MakeTicket) -> None:
        story = make_ticket("s", "in-progress")
        task = make_ticket("t", "in-progress", parent_id="s")
        plan = propagate("t", "done", HierarchyIndex.build([story, task]))
        assert plan.origin == Effect("t", "done", "in-progress")
        assert plan.cascaded == (Effect("s", "done", "in-progress"),)
        assert len(plan) == 2

    def test_root_ticket_has_single_effect(self, make_ticket: MakeTicket) -> None:
        assert _plan("r", "todo", make_ticket("r")) == [("r", "todo")]

    def test_fresher_ticket_map_overrides_index(self, make_ticket: MakeTicket) -> None:
        story = make_ticket("s", "in-progress")
        t1 = make_ticket("t1", "in-progress", parent_id="s")
        t2 = make_ticket("t2", "in-progress", parent_id="s")
        index = HierarchyIndex.build([story, t1, t2])
        fresh = {"t2": make_ticket("t2", "done", parent_id="s")}
        assert propagate("t1", "done", index, fresh).as_pairs() == [("t1", "done"), ("s", "done")]

    def test_never_touches_children(self, make_ticket: MakeTicket) -> None:
        parent = make_ticket("p", "review")
        child = make_ticket("c", "review", parent_id="p")
        assert _plan("p", "backlog", parent, child) == [("p", "backlog")]


class TestTermination:
    def test_degraded_origin_yields_only_itself(self, make_ticket: MakeTicket) -> None:
        a = make_ticket("a", "todo", parent_id="b")
        b = make_ticket("b", "todo", parent_id="a")
        assert _plan("a", "done", a, b) == [("a", "done")]

    def test_steps_bounded_by_height(self, make_ticket: MakeTicket) -> None:
        chain = [make_ticket("n0", "review")]
        chain += [make_ticket(f"n{i}", "review", parent_id=f"n{i - 1}") for i in range(1, 6)]
        index = HierarchyIndex.build(chain)
        plan = propagate("n5", "done", index)
        assert len(plan) <= index.height
        assert len({e.ticket_id for e in plan}) == len(plan)

    def test_unknown_ticket_raises(self) -> None:
        with pytest.raises(KeyError):
            propagate("ghost", "todo", HierarchyIndex.build([]))

    def test_unknown_status_raises(self, make_ticket: MakeTicket) -> None:
        with pytest.raises(ValueError):
            propagate("t", "closed", HierarchyIndex.build([make_ticket("t")]))


class TestPullBackAncestors:
    def test_chain_ahead_of_new_child_follows_it(self, make_ticket: MakeTicket) -> None:
        tickets = [
            make_ticket("e", "done"),
            make_ticket("s", "review", parent_id="e"),
            make_ticket("t", "backlog", parent_id="s"),
        ]
        plan = pull_back_ancestors("t", HierarchyIndex.build(tickets))
        assert plan.as_pairs() == [("s", "backlog"), ("e", "backlog")]
        assert [e.previous for e in plan] == ["review", "done"]

    def test_stops_at_first_ancestor_not_ahead(self, make_ticket: MakeTicket) -> None:
        tickets = [
            make_ticket("e", "backlog"),
            make_ticket("s", "review", parent_id="e"),
            make_ticket("t", "todo", parent_id="s"),
        ]
        assert pull_back_ancestors("t", HierarchyIndex.build(tickets)).as_pairs() == [("s", "todo")]

    def test_parent_behind_is_left_alone(self, make_ticket: MakeTicket) -> None:
        tickets = [make_ticket("s", "todo"), make_ticket("t", "review", parent_id="s")]
        assert len(pull_back_ancestors("t", HierarchyIndex.build(tickets))) == 0

    def test_unknown_ticket_raises(self) -> None:
        with pytest.raises(KeyError):
            pull_back_ancestors("ghost", HierarchyIndex.build([]))
