"""Status order model: the single source of forward/backward semantics.

The five workflow statuses are totally ordered. Everything else in the
engine (validator, cascade, board columns) asks this module which way a
move goes instead of comparing strings itself.
"""

from __future__ import annotations

from typing import Literal, TypeGuard

Status = Literal["backlog", "todo", "in-progress", "review", "done"]
IssueType = Literal["epic", "feature", "story", "task", "bug"]
Priority = Literal["low", "medium", "high"]
Ordering = Literal["before", "equal", "after"]

STATUSES: tuple[Status, ...] = ("backlog", "todo", "in-progress", "review", "done")
ISSUE_TYPES: tuple[IssueType, ...] = ("epic", "feature", "story", "task", "bug")
PRIORITIES: tuple[Priority, ...] = ("low", "medium", "high")

DONE: Status = "done"
INITIAL_STATUS: Status = "backlog"

_INDEX: dict[str, int] = {s: i for i, s in enumerate(STATUSES)}


def is_valid_status(value: object) -> TypeGuard[Status]:
    return isinstance(value, str) and value in _INDEX


def index_of(status: str) -> int:
    """Position of *status* in the workflow (backlog=0 … done=4)."""
    try:
        return _INDEX[status]
    except KeyError:
        msg = f"Unknown status '{status}'. Valid statuses: {', '.join(STATUSES)}"
        raise ValueError(msg) from None


def compare(a: str, b: str) -> Ordering:
    ia, ib = index_of(a), index_of(b)
    if ia < ib:
        return "before"
    if ia > ib:
        return "after"
    return "equal"


def is_forward(from_status: str, to_status: str) -> bool:
    """True when *to_status* is strictly after *from_status*."""
    return index_of(to_status) > index_of(from_status)
