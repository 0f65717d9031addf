"""Cascade propagator: ancestor status changes implied by one accepted move.

``propagate()`` returns a plan and never touches state. The board applies
the plan locally and persists each effect on its own. ``pull_back_ancestors()``
realigns the ancestors of a ticket that joined a hierarchy without moving.

Rules, applied from the moved ticket upward (never to children):

* moving to ``done`` pulls the parent to ``done`` once every sibling is done;
* any other status behind the parent pulls the parent back to it;
* any other status ahead of the parent pulls the parent up to it, provided
  no sibling is still behind that status;
* otherwise the walk stops.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from tickboard.statuses import DONE, index_of

if TYPE_CHECKING:
    from tickboard.core import Ticket
    from tickboard.hierarchy import HierarchyIndex
    from tickboard.types.api import EffectDict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Effect:
    """One ticket's status change within a plan.

    ``seq`` is 0 in a freshly computed plan; the board stamps the issue
    order when it applies the effect.
    """

    ticket_id: str
    status: str
    previous: str
    seq: int = 0

    def with_seq(self, seq: int) -> Effect:
        return replace(self, seq=seq)

    def to_dict(self) -> EffectDict:
        return {"ticket_id": self.ticket_id, "status": self.status, "previous": self.previous, "seq": self.seq}


@dataclass(frozen=True)
class EffectPlan:
    effects: tuple[Effect, ...]

    def __iter__(self) -> Iterator[Effect]:
        return iter(self.effects)

    def __len__(self) -> int:
        return len(self.effects)

    @property
    def origin(self) -> Effect:
        return self.effects[0]

    @property
    def cascaded(self) -> tuple[Effect, ...]:
        return self.effects[1:]

    def as_pairs(self) -> list[tuple[str, str]]:
        return [(e.ticket_id, e.status) for e in self.effects]


def propagate(
    changed_ticket_id: str,
    new_status: str,
    index: HierarchyIndex,
    tickets: Mapping[str, Ticket] | None = None,
) -> EffectPlan:
    """Compute the ordered effects of moving *changed_ticket_id* to *new_status*.

    The first effect is always the moved ticket itself. *tickets* overrides
    the statuses held by *index* when the caller has a fresher view.
    """
    index_of(new_status)  # raises for statuses outside the workflow
    origin = (tickets or {}).get(changed_ticket_id) or index.get(changed_ticket_id)
    if origin is None:
        msg = f"Ticket not found: {changed_ticket_id}"
        raise KeyError(msg)

    planned: dict[str, str] = {}

    def status_of(t: Ticket) -> str:
        if t.id in planned:
            return planned[t.id]
        fresh = tickets.get(t.id) if tickets is not None else None
        return (fresh or t).status

    effects: list[Effect] = []
    visited: set[str] = set()
    current, status = origin, new_status
    # Acyclic hierarchies end well before this bound; it only guards bad input.
    for _ in range(len(index) + 1):
        if current.id in visited:
            logger.warning("Cascade revisited %s; stopping", current.id, extra={"ticket_id": current.id})
            break
        visited.add(current.id)
        effects.append(Effect(current.id, status, status_of(current)))
        planned[current.id] = status

        if index.is_degraded(current.id):
            break
        parent = index.parent_of(current.id)
        if parent is None:
            break
        parent_status = status_of(parent)
        siblings = index.children_of(parent.id)

        if status == DONE:
            if parent_status == DONE or any(status_of(s) != DONE for s in siblings):
                break
            current, status = parent, DONE
            continue

        target, parent_idx = index_of(status), index_of(parent_status)
        if target < parent_idx:
            current = parent
        elif target > parent_idx and all(index_of(status_of(s)) >= target for s in siblings):
            current = parent
        else:
            break

    return EffectPlan(tuple(effects))


def pull_back_ancestors(ticket_id: str, index: HierarchyIndex) -> EffectPlan:
    """Effects that bring every ancestor ahead of *ticket_id* back to its status.

    Used when a ticket joins a hierarchy (created under a parent, or
    reparented) rather than moving. The ticket itself is not part of the plan.
    """
    ticket = index.get(ticket_id)
    if ticket is None:
        msg = f"Ticket not found: {ticket_id}"
        raise KeyError(msg)

    effects: list[Effect] = []
    status, target = ticket.status, index_of(ticket.status)
    current = ticket
    for _ in range(len(index)):
        if index.is_degraded(current.id):
            break
        parent = index.parent_of(current.id)
        if parent is None or index_of(parent.status) <= target:
            break
        effects.append(Effect(parent.id, status, parent.status))
        current = parent
    return EffectPlan(tuple(effects))
