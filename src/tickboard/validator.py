"""Transition validator: hierarchy-aware guard for a single status move.

The only hard rule: a parent may not be ahead of its slowest child, and may
only be done when every child is done. Children are never blocked; moving
a child forward may pull its parent along (see ``tickboard.cascade``).

A denial is an expected outcome and is returned, not raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from tickboard.statuses import DONE, index_of, is_forward

if TYPE_CHECKING:
    from tickboard.core import Ticket
    from tickboard.hierarchy import HierarchyIndex
    from tickboard.types.api import DenialDict

REASON_CHILDREN_NOT_DONE = "children not done"
REASON_AHEAD_OF_CHILDREN = "would move ahead of children"
REASON_NOT_FOUND = "ticket not found"
REASON_PARENT_NOT_FOUND = "parent not found"


@dataclass(frozen=True)
class Allow:
    noop: bool = False

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class Deny:
    reason: str
    message: str
    blocking: tuple[str, ...] = field(default=())

    def __bool__(self) -> bool:
        return False

    def to_dict(self, ticket_id: str) -> DenialDict:
        return {
            "ticket_id": ticket_id,
            "reason": self.reason,
            "message": self.message,
            "blocking": list(self.blocking),
        }


def _keys(tickets: list[Ticket]) -> str:
    return ", ".join(t.key or t.id for t in tickets)


def validate(ticket: Ticket, new_status: str, index: HierarchyIndex) -> Allow | Deny:
    """Decide whether *ticket* may move to *new_status*.

    Raises ``ValueError`` for a status outside the workflow; that is a
    caller bug, not a denial.
    """
    index_of(new_status)  # raises for statuses outside the workflow

    if ticket.id not in index:
        return Deny(REASON_NOT_FOUND, f"Ticket {ticket.key or ticket.id} is not on this board.")

    current = index.get(ticket.id) or ticket
    if new_status == current.status:
        return Allow(noop=True)
    if index.has_missing_parent(ticket.id):
        return Deny(
            REASON_PARENT_NOT_FOUND,
            f"Parent {ticket.parent_id} of ticket {ticket.key or ticket.id} no longer exists.",
        )
    if not is_forward(current.status, new_status):
        return Allow()
    if index.is_degraded(ticket.id):
        # Broken hierarchy: hierarchy guards are off, direct moves stay possible
        return Allow()

    children = index.children_of(ticket.id)
    if not children:
        return Allow()

    if new_status == DONE:
        blocking = [c for c in children if c.status != DONE]
        if blocking:
            return Deny(
                REASON_CHILDREN_NOT_DONE,
                f"All child tickets must be done before moving parent to done (not done: {_keys(blocking)}).",
                tuple(c.id for c in blocking),
            )
        return Allow()

    target = index_of(new_status)
    behind = [c for c in children if index_of(c.status) < target]
    if behind:
        return Deny(
            REASON_AHEAD_OF_CHILDREN,
            f"A parent cannot move ahead of its children ({_keys(behind)} still behind '{new_status}').",
            tuple(c.id for c in behind),
        )
    return Allow()
