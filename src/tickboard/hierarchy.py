"""Hierarchy index: parent/child lookups over a flat ticket snapshot.

Built once per operation batch. Ticket IDs map to integer slots and the
parent/child edges are stored as slot lists, so every query after
construction is a couple of list lookups rather than a scan or a store
round-trip.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from tickboard.core import Ticket

logger = logging.getLogger(__name__)

StructuralKind = Literal["cycle", "missing_parent"]

_NO_PARENT = -1
_UNVISITED, _VISITING, _DONE = 0, 1, 2


class HierarchyCycleError(ValueError):
    """Raised when a ticket is its own transitive ancestor."""

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        chain = " -> ".join([*cycle, cycle[0]])
        super().__init__(f"Parent cycle detected: {chain}")


@dataclass(frozen=True)
class StructuralError:
    """A defect in the parent graph found while building the index."""

    kind: StructuralKind
    ticket_id: str
    related: tuple[str, ...]
    message: str


class HierarchyIndex:
    """Read-only parent/child index over one ticket snapshot.

    Use :meth:`build` when a cycle should abort, or :meth:`build_lenient`
    to get a usable index with the broken part marked ``degraded``.
    """

    def __init__(self, tickets: Iterable[Ticket]) -> None:
        by_id: dict[str, Ticket] = {}
        for t in tickets:
            by_id[t.id] = t  # later duplicates replace earlier ones

        self._tickets: list[Ticket] = list(by_id.values())
        self._slot: dict[str, int] = {t.id: i for i, t in enumerate(self._tickets)}
        self._parent: list[int] = [_NO_PARENT] * len(self._tickets)
        self._children: list[list[int]] = [[] for _ in self._tickets]
        self.structural_errors: list[StructuralError] = []
        self._missing_parent: set[str] = set()
        self._degraded: set[int] = set()
        self._cycles: list[list[str]] = []

        for i, t in enumerate(self._tickets):
            if not t.parent_id:
                continue
            p = self._slot.get(t.parent_id)
            if p is None:
                self._missing_parent.add(t.id)
                self.structural_errors.append(
                    StructuralError(
                        kind="missing_parent",
                        ticket_id=t.id,
                        related=(t.parent_id,),
                        message=f"Ticket {t.key or t.id} references missing parent {t.parent_id}",
                    )
                )
                continue
            self._parent[i] = p
            self._children[p].append(i)

        self._find_cycles()
        self._height = self._compute_height()

    # -- construction --------------------------------------------------------

    @classmethod
    def build(cls, tickets: Iterable[Ticket]) -> HierarchyIndex:
        """Build the index, raising :class:`HierarchyCycleError` on a parent cycle."""
        index = cls(tickets)
        if index._cycles:
            raise HierarchyCycleError(index._cycles[0])
        return index

    @classmethod
    def build_lenient(cls, tickets: Iterable[Ticket]) -> HierarchyIndex:
        """Build the index, never raising for structural problems.

        Cycle members and everything below them end up in :attr:`degraded`.
        """
        index = cls(tickets)
        for err in index.structural_errors:
            logger.warning("Hierarchy degraded: %s", err.message, extra={"ticket_id": err.ticket_id})
        return index

    def _find_cycles(self) -> None:
        # Each ticket has at most one parent, so walking parent pointers from
        # every unvisited slot finds each cycle exactly once.
        state = [_UNVISITED] * len(self._tickets)
        for start in range(len(self._tickets)):
            if state[start] != _UNVISITED:
                continue
            path: list[int] = []
            node = start
            while node != _NO_PARENT and state[node] == _UNVISITED:
                state[node] = _VISITING
                path.append(node)
                node = self._parent[node]

            tainted = False
            if node != _NO_PARENT and state[node] == _VISITING:
                cycle_slots = path[path.index(node) :]
                cycle_ids = [self._tickets[s].id for s in cycle_slots]
                self._cycles.append(cycle_ids)
                self._degraded.update(cycle_slots)
                self.structural_errors.append(
                    StructuralError(
                        kind="cycle",
                        ticket_id=cycle_ids[0],
                        related=tuple(cycle_ids),
                        message=str(HierarchyCycleError(cycle_ids)),
                    )
                )
                tainted = True
            elif node != _NO_PARENT and node in self._degraded:
                tainted = True

            for s in path:
                state[s] = _DONE
                if tainted:
                    self._degraded.add(s)

    def _compute_height(self) -> int:
        """Number of tickets on the longest root-to-leaf chain (degraded part excluded)."""
        depth: dict[int, int] = {}
        best = 0
        for i in range(len(self._tickets)):
            if i in self._degraded:
                continue
            chain: list[int] = []
            node = i
            while node != _NO_PARENT and node not in depth:
                chain.append(node)
                node = self._parent[node]
            base = depth.get(node, 0) if node != _NO_PARENT else 0
            for s in reversed(chain):
                base += 1
                depth[s] = base
            best = max(best, depth[i])
        return best

    # -- queries -------------------------------------------------------------

    def __contains__(self, ticket_id: object) -> bool:
        return ticket_id in self._slot

    def __len__(self) -> int:
        return len(self._tickets)

    def __iter__(self) -> Iterator[Ticket]:
        return iter(self._tickets)

    def get(self, ticket_id: str) -> Ticket | None:
        slot = self._slot.get(ticket_id)
        return None if slot is None else self._tickets[slot]

    def children_of(self, ticket_id: str) -> list[Ticket]:
        """Direct children of *ticket_id*; empty when none or unknown."""
        slot = self._slot.get(ticket_id)
        if slot is None:
            return []
        return [self._tickets[c] for c in self._children[slot]]

    def parent_of(self, ticket_id: str) -> Ticket | None:
        slot = self._slot.get(ticket_id)
        if slot is None or self._parent[slot] == _NO_PARENT:
            return None
        return self._tickets[self._parent[slot]]

    def ancestors(self, ticket_id: str) -> list[Ticket]:
        """Parent, grandparent, … up to the root. Stops at a cycle."""
        result: list[Ticket] = []
        seen = {ticket_id}
        parent = self.parent_of(ticket_id)
        while parent is not None and parent.id not in seen:
            result.append(parent)
            seen.add(parent.id)
            parent = self.parent_of(parent.id)
        return result

    def has_missing_parent(self, ticket_id: str) -> bool:
        return ticket_id in self._missing_parent

    def is_degraded(self, ticket_id: str) -> bool:
        slot = self._slot.get(ticket_id)
        return slot is not None and slot in self._degraded

    @property
    def degraded(self) -> frozenset[str]:
        return frozenset(self._tickets[s].id for s in self._degraded)

    @property
    def height(self) -> int:
        return self._height
