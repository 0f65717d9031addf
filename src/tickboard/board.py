"""Board reconciler: sole owner of one project's column state.

Moves are applied locally and synchronously first (validate, propagate,
apply every effect), then each effect is persisted on its own. A
confirmation reconciles the ticket with the stored copy; a failure reverts
exactly that effect. Every applied effect carries a sequence number in
issue order, and a confirmation for an effect that has since been
superseded is ignored, so the last issued write wins.

The ``apply_*`` methods are synchronous and never touch the store. The
async methods (``load``, ``move``, ``create``, ``delete``) orchestrate the
store calls around them.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Literal

from tickboard.bus import NotificationBus, ParentUpdated, TicketCreated, TicketDeleted, TicketMoved, TicketUpdated
from tickboard.cascade import Effect, propagate, pull_back_ancestors
from tickboard.db_base import DELETE_MODES, DeleteMode, DuplicateKeyError
from tickboard.hierarchy import HierarchyIndex
from tickboard.persistence import PersistenceError
from tickboard.statuses import STATUSES, index_of
from tickboard.validator import REASON_NOT_FOUND, Deny, validate

if TYPE_CHECKING:
    from tickboard.core import Ticket, TicketDraft
    from tickboard.persistence import TicketStore
    from tickboard.types.api import DenialDict, FailureDict, MoveResponse
    from tickboard.types.core import BoardDict

logger = logging.getLogger(__name__)

PENDING_PREFIX = "pending-"

FailureOperation = Literal["move", "create", "delete"]
FailureKind = Literal["persistence", "not_found", "duplicate_key", "invalid"]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class Column:
    status: str
    ticket_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class MovePlan:
    """Effects applied locally for one accepted move, origin first."""

    ticket_id: str
    effects: tuple[Effect, ...]

    @property
    def noop(self) -> bool:
        return not self.effects

    @property
    def origin(self) -> Effect | None:
        return self.effects[0] if self.effects else None

    @property
    def cascaded(self) -> tuple[Effect, ...]:
        return self.effects[1:]


@dataclass(frozen=True)
class Denied:
    ticket_id: str
    reason: str
    message: str
    blocking: tuple[str, ...] = ()

    def to_dict(self) -> DenialDict:
        return {
            "ticket_id": self.ticket_id,
            "reason": self.reason,
            "message": self.message,
            "blocking": list(self.blocking),
        }


@dataclass(frozen=True)
class Failure:
    """A persistence call that did not go through. The local change is already undone."""

    ticket_id: str
    operation: FailureOperation
    message: str
    retryable: bool = True
    kind: FailureKind = "persistence"

    @classmethod
    def from_error(cls, ticket_id: str, operation: FailureOperation, exc: BaseException) -> Failure:
        if isinstance(exc, DuplicateKeyError):
            kind: FailureKind = "duplicate_key"
        elif isinstance(exc, KeyError):
            kind = "not_found"
        elif isinstance(exc, PersistenceError):
            kind = "persistence"
        else:
            kind = "invalid"
        return cls(ticket_id, operation, _error_message(exc), retryable=kind == "persistence", kind=kind)

    def to_dict(self) -> FailureDict:
        return {
            "ticket_id": self.ticket_id,
            "operation": self.operation,
            "message": self.message,
            "retryable": self.retryable,
            "kind": self.kind,
        }


@dataclass
class MoveResult:
    plan: MovePlan
    failures: list[Failure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> MoveResponse:
        return {
            "ticket_id": self.plan.ticket_id,
            "effects": [e.to_dict() for e in self.plan.effects],
            "failures": [f.to_dict() for f in self.failures],
        }


def _error_message(exc: BaseException) -> str:
    # KeyError wraps its message in quotes when str()'d
    if isinstance(exc, KeyError) and exc.args:
        return str(exc.args[0])
    return str(exc)


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------


class BoardReconciler:
    def __init__(
        self,
        project_id: str,
        store: TicketStore,
        bus: NotificationBus | None = None,
        tickets: Iterable[Ticket] = (),
    ) -> None:
        self.project_id = project_id
        self.store = store
        self.bus = bus if bus is not None else NotificationBus()
        self.failures: list[Failure] = []
        self._tickets: dict[str, Ticket] = {}
        self._columns: dict[str, list[str]] = {s: [] for s in STATUSES}
        self._latest_seq: dict[str, int] = {}
        self._seq = 0
        self._index: HierarchyIndex | None = None
        self.refresh(tickets)

    # -- state access --------------------------------------------------------

    @property
    def index(self) -> HierarchyIndex:
        """Hierarchy index over the current tickets, rebuilt after structural changes."""
        if self._index is None:
            self._index = HierarchyIndex.build_lenient(self._tickets.values())
        return self._index

    @property
    def columns(self) -> list[Column]:
        return [Column(status, list(self._columns[status])) for status in STATUSES]

    def get(self, ticket_id: str) -> Ticket | None:
        return self._tickets.get(ticket_id)

    def tickets(self) -> list[Ticket]:
        return [self._tickets[tid] for status in STATUSES for tid in self._columns[status]]

    def latest_seq(self, ticket_id: str) -> int:
        return self._latest_seq.get(ticket_id, 0)

    def snapshot(self) -> BoardDict:
        return {
            "project_id": self.project_id,
            "columns": [
                {"status": status, "tickets": [self._tickets[tid].to_dict() for tid in self._columns[status]]}
                for status in STATUSES
            ],
            "pending": [t.id for t in self._tickets.values() if t.pending],
            "degraded": sorted(self.index.degraded),
        }

    # -- internal mutation ---------------------------------------------------

    def _invalidate(self) -> None:
        self._index = None

    def _issue(self, ticket_id: str) -> int:
        self._seq += 1
        self._latest_seq[ticket_id] = self._seq
        return self._seq

    def _find_key(self, key: str) -> Ticket | None:
        return next((t for t in self._tickets.values() if t.key == key), None)

    def _set_status(self, ticket_id: str, status: str) -> None:
        # In place, so the cached index keeps seeing current statuses
        ticket = self._tickets[ticket_id]
        if ticket.status == status:
            return
        self._columns[ticket.status].remove(ticket_id)
        self._columns[status].append(ticket_id)
        ticket.status = status

    def _insert(self, ticket: Ticket) -> None:
        index_of(ticket.status)  # raises for statuses outside the workflow
        self._tickets[ticket.id] = ticket
        self._columns[ticket.status].append(ticket.id)
        self._invalidate()

    def _replace(self, ticket: Ticket) -> None:
        index_of(ticket.status)
        old = self._tickets[ticket.id]
        if old.status != ticket.status:
            self._columns[old.status].remove(ticket.id)
            self._columns[ticket.status].append(ticket.id)
        self._tickets[ticket.id] = ticket
        self._invalidate()

    def _drop(self, ticket_id: str) -> None:
        ticket = self._tickets.pop(ticket_id)
        self._columns[ticket.status].remove(ticket_id)
        self._latest_seq.pop(ticket_id, None)
        self._invalidate()

    def _rename(self, old_id: str, new_id: str) -> None:
        """Swap a pending ID for its confirmed one, keeping the column position."""
        ticket = self._tickets.pop(old_id)
        column = self._columns[ticket.status]
        column[column.index(old_id)] = new_id
        self._tickets[new_id] = ticket
        for t in self._tickets.values():
            if t.parent_id == old_id:
                t.parent_id = new_id
        if old_id in self._latest_seq:
            self._latest_seq[new_id] = self._latest_seq.pop(old_id)
        self._invalidate()

    def _merge(self, ticket: Ticket, replaces: str | None = None) -> tuple[Ticket, bool]:
        """Merge *ticket* into the board. Returns the board's copy and whether it is new.

        Same ID replaces. A pending and a confirmed copy of the same ticket
        (matched by *replaces* or by key) collapse into the confirmed one.
        """
        incoming = replace(ticket)
        twin_id = replaces if replaces is not None and replaces in self._tickets else None
        if twin_id is None and incoming.key and incoming.id not in self._tickets:
            twin = self._find_key(incoming.key)
            if twin is not None:
                if incoming.pending and not twin.pending:
                    return twin, False
                twin_id = twin.id

        if twin_id is not None and twin_id != incoming.id:
            if incoming.id in self._tickets:
                self._drop(twin_id)
            else:
                self._rename(twin_id, incoming.id)

        if incoming.id in self._tickets:
            self._replace(incoming)
            return incoming, False
        self._insert(incoming)
        return incoming, True

    # -- synchronous operations ----------------------------------------------

    def refresh(self, tickets: Iterable[Ticket]) -> None:
        """Rebuild every column from a full ticket set, deduplicating by ID and key."""
        self._tickets = {}
        self._columns = {s: [] for s in STATUSES}
        self._invalidate()
        for t in tickets:
            self._merge(t)
        logger.debug("Board %s refreshed with %d tickets", self.project_id, len(self._tickets))

    def apply_move(self, ticket_id: str, target_status: str) -> MovePlan | Denied:
        """Validate and apply a move locally. Nothing is persisted here."""
        index_of(target_status)  # raises for statuses outside the workflow
        ticket = self._tickets.get(ticket_id)
        if ticket is None:
            return Denied(ticket_id, REASON_NOT_FOUND, f"Ticket {ticket_id} is not on this board.")

        index = self.index
        decision = validate(ticket, target_status, index)
        if isinstance(decision, Deny):
            logger.info("Move of %s to %s denied: %s", ticket.key, target_status, decision.reason, extra={"ticket_id": ticket_id})
            return Denied(ticket_id, decision.reason, decision.message, decision.blocking)
        if decision.noop:
            return MovePlan(ticket_id, ())

        plan = propagate(ticket_id, target_status, index)
        issued: list[Effect] = []
        for effect in plan:
            issued.append(effect.with_seq(self._issue(effect.ticket_id)))
            self._set_status(effect.ticket_id, effect.status)

        origin, cascaded = issued[0], issued[1:]
        self.bus.publish(TicketMoved(origin.ticket_id, origin.previous, origin.status))
        for effect in cascaded:
            self.bus.publish(ParentUpdated(effect.ticket_id, effect.status))
        return MovePlan(ticket_id, tuple(issued))

    def apply_remote_update(self, ticket: Ticket, *, seq: int | None = None) -> bool:
        """Take a confirmed ticket from persistence. Returns False when ignored as stale.

        *seq* is the issue number of the effect being confirmed. A confirmation
        older than the latest effect issued for that ticket is ignored.
        """
        if not self._accept(ticket, seq):
            return False
        self.bus.publish(TicketUpdated(ticket.id))
        return True

    def _accept(self, ticket: Ticket, seq: int | None) -> bool:
        latest = self._latest_seq.get(ticket.id, 0)
        if seq is not None and seq < latest:
            logger.debug("Ignoring stale confirmation #%d for %s (latest #%d)", seq, ticket.id, latest, extra={"ticket_id": ticket.id})
            return False
        self._merge(replace(ticket, pending=False))
        return True

    def apply_create(self, ticket: Ticket, *, replaces: str | None = None) -> Ticket:
        """Merge a created ticket, pending or confirmed.

        ``created`` is published once per confirmed ticket: on insert, or when
        it takes over the pending placeholder named by *replaces*.
        """
        merged, is_new = self._merge(ticket, replaces)
        if not merged.pending and (is_new or replaces is not None):
            self.bus.publish(TicketCreated(merged.key))
        return merged

    def apply_realign(self, ticket_id: str) -> tuple[Effect, ...]:
        """Pull ancestors ahead of *ticket_id* back to its status, locally.

        For a ticket that joined a hierarchy without moving. Returns the
        issued effects so the caller can persist them.
        """
        if ticket_id not in self._tickets:
            return ()
        issued: list[Effect] = []
        for effect in pull_back_ancestors(ticket_id, self.index):
            issued.append(effect.with_seq(self._issue(effect.ticket_id)))
            self._set_status(effect.ticket_id, effect.status)
            self.bus.publish(ParentUpdated(effect.ticket_id, effect.status))
        return tuple(issued)

    def apply_delete(self, ticket_id: str, mode: DeleteMode = "detach") -> list[str]:
        """Remove a ticket locally. Returns the removed IDs, the ticket first."""
        if mode not in DELETE_MODES:
            msg = f"Invalid delete mode '{mode}'. Valid modes: {', '.join(sorted(DELETE_MODES))}"
            raise ValueError(msg)
        if ticket_id not in self._tickets:
            return []

        removed = [ticket_id]
        if mode == "cascade":
            seen = {ticket_id}
            queue: deque[str] = deque([ticket_id])
            while queue:
                for child in self.index.children_of(queue.popleft()):
                    if child.id not in seen:
                        seen.add(child.id)
                        removed.append(child.id)
                        queue.append(child.id)
        else:
            for child in self.index.children_of(ticket_id):
                child.parent_id = None

        for tid in removed:
            self._drop(tid)
        for tid in removed:
            self.bus.publish(TicketDeleted(tid))
        return removed

    def confirm_effect(self, effect: Effect, ticket: Ticket) -> bool:
        return self._accept(ticket, effect.seq)

    def fail_effect(self, effect: Effect, error: BaseException) -> Failure:
        """Revert *effect* if nothing newer was issued for its ticket, and record the failure."""
        reverted = False
        if effect.ticket_id in self._tickets and self._latest_seq.get(effect.ticket_id) == effect.seq:
            self._set_status(effect.ticket_id, effect.previous)
            reverted = True
            self.bus.publish(TicketUpdated(effect.ticket_id))

        failure = Failure.from_error(effect.ticket_id, "move", error)
        self.failures.append(failure)
        logger.warning(
            "Persisting %s -> %s failed for %s%s",
            effect.previous,
            effect.status,
            effect.ticket_id,
            " (reverted)" if reverted else "",
            extra={"ticket_id": effect.ticket_id, "effect": effect.status, "error": failure.message},
        )
        return failure

    # -- async orchestration -------------------------------------------------

    async def load(self) -> None:
        self.refresh(await self.store.list_tickets(self.project_id))

    async def _persist(self, effect: Effect) -> Failure | None:
        start = time.monotonic()
        try:
            confirmed = await self.store.update_ticket_status(effect.ticket_id, effect.status)
        except (PersistenceError, KeyError) as exc:
            return self.fail_effect(effect, exc)
        self.confirm_effect(effect, confirmed)
        logger.debug(
            "Persisted %s -> %s",
            effect.ticket_id,
            effect.status,
            extra={
                "ticket_id": effect.ticket_id,
                "effect": effect.status,
                "duration_ms": round((time.monotonic() - start) * 1000, 2),
            },
        )
        return None

    async def move(self, ticket_id: str, status: str) -> MoveResult | Denied:
        """Apply a move locally, then persist each of its effects independently."""
        outcome = self.apply_move(ticket_id, status)
        if isinstance(outcome, Denied):
            return outcome
        results = await asyncio.gather(*(self._persist(e) for e in outcome.effects))
        return MoveResult(outcome, [r for r in results if r is not None])

    async def create(self, draft: TicketDraft) -> Ticket | Failure:
        index_of(draft.status)  # raises for statuses outside the workflow
        temp_id = f"{PENDING_PREFIX}{uuid.uuid4().hex[:10]}"
        self.apply_create(draft.to_pending(temp_id))
        try:
            confirmed = await self.store.create_ticket(draft)
        except (DuplicateKeyError, PersistenceError, KeyError, ValueError) as exc:
            if temp_id in self._tickets:
                self._drop(temp_id)
            failure = Failure.from_error(temp_id, "create", exc)
            self.failures.append(failure)
            logger.warning("Create failed for %r: %s", draft.summary, failure.message, extra={"error": failure.message})
            return failure
        created = self.apply_create(confirmed, replaces=temp_id)
        # A parent ahead of its new child follows it back
        await asyncio.gather(*(self._persist(e) for e in self.apply_realign(created.id)))
        return created

    async def delete(self, ticket_id: str, mode: DeleteMode = "detach") -> list[str] | Failure:
        """Delete in the store first, then locally. A pending ticket is only removed locally."""
        ticket = self._tickets.get(ticket_id)
        if ticket is not None and ticket.pending:
            return self.apply_delete(ticket_id, mode)
        try:
            await self.store.delete_ticket(ticket_id, mode)
        except (PersistenceError, KeyError) as exc:
            failure = Failure.from_error(ticket_id, "delete", exc)
            self.failures.append(failure)
            logger.warning("Delete failed for %s: %s", ticket_id, failure.message, extra={"ticket_id": ticket_id})
            return failure
        return self.apply_delete(ticket_id, mode)
