"""Notification bus: fire-and-forget ticket events for observers.

The bus is injected into the board; there is no module-level singleton.
Observers are plain callables. One that raises is logged and skipped, so a
broken observer never affects the engine or the other observers.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import ClassVar

from tickboard.db_base import _now_iso
from tickboard.types.core import ISOTimestamp
from tickboard.types.events import EventDict, EventName

logger = logging.getLogger(__name__)

_HISTORY_SIZE = 200
_QUEUE_SIZE = 256


@dataclass(frozen=True)
class TicketEvent(abc.ABC):
    name: ClassVar[EventName]
    published_at: str = field(default_factory=_now_iso, kw_only=True, compare=False)

    @abc.abstractmethod
    def payload(self) -> dict[str, str]: ...

    def to_dict(self) -> EventDict:
        return {"event": self.name, "payload": self.payload(), "published_at": ISOTimestamp(self.published_at)}


@dataclass(frozen=True)
class TicketCreated(TicketEvent):
    name: ClassVar[EventName] = "created"
    key: str

    def payload(self) -> dict[str, str]:
        return {"key": self.key}


@dataclass(frozen=True)
class TicketMoved(TicketEvent):
    name: ClassVar[EventName] = "moved"
    ticket_id: str
    from_status: str
    to_status: str

    def payload(self) -> dict[str, str]:
        return {"ticket_id": self.ticket_id, "from": self.from_status, "to": self.to_status}


@dataclass(frozen=True)
class TicketUpdated(TicketEvent):
    name: ClassVar[EventName] = "updated"
    ticket_id: str

    def payload(self) -> dict[str, str]:
        return {"ticket_id": self.ticket_id}


@dataclass(frozen=True)
class TicketDeleted(TicketEvent):
    name: ClassVar[EventName] = "deleted"
    ticket_id: str

    def payload(self) -> dict[str, str]:
        return {"ticket_id": self.ticket_id}


@dataclass(frozen=True)
class ParentUpdated(TicketEvent):
    name: ClassVar[EventName] = "parent-updated"
    parent_id: str
    new_status: str

    def payload(self) -> dict[str, str]:
        return {"parent_id": self.parent_id, "new_status": self.new_status}


Observer = Callable[[TicketEvent], object]


class NotificationBus:
    def __init__(self, *, history: int = _HISTORY_SIZE) -> None:
        self._observers: list[tuple[Observer, frozenset[str]]] = []
        self._queues: list[asyncio.Queue[TicketEvent]] = []
        self._recent: deque[TicketEvent] = deque(maxlen=history)

    def subscribe(self, callback: Observer, *names: EventName) -> Callable[[], None]:
        """Register *callback* for *names* (all events when none given).

        Returns a callable that removes the subscription; calling it twice
        is harmless.
        """
        entry = (callback, frozenset(names))
        self._observers.append(entry)

        def unsubscribe() -> None:
            if entry in self._observers:
                self._observers.remove(entry)

        return unsubscribe

    def publish(self, event: TicketEvent) -> None:
        self._recent.append(event)
        for callback, names in list(self._observers):
            if names and event.name not in names:
                continue
            try:
                callback(event)
            except Exception:
                logger.exception("Observer %r failed on %s event", callback, event.name)

        dead: list[asyncio.Queue[TicketEvent]] = []
        for q in self._queues:
            try:
                q.put_nowait(event)
            except asyncio.QueueFull:
                dead.append(q)
        for q in dead:
            logger.warning("Dropping slow event queue subscriber")
            self._queues.remove(q)

    def recent(self, limit: int | None = None) -> list[TicketEvent]:
        """Most recent events, oldest first."""
        events = list(self._recent)
        return events[-limit:] if limit else events

    def queue(self, maxsize: int = _QUEUE_SIZE) -> asyncio.Queue[TicketEvent]:
        """Bounded queue receiving every later event. A full queue is dropped."""
        q: asyncio.Queue[TicketEvent] = asyncio.Queue(maxsize=maxsize)
        self._queues.append(q)
        return q

    def close_queue(self, q: asyncio.Queue[TicketEvent]) -> None:
        if q in self._queues:
            self._queues.remove(q)
