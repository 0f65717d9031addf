"""TypedDicts for notification bus events."""

from __future__ import annotations

from typing import Literal, TypeAlias, TypedDict

from tickboard.types.core import ISOTimestamp

EventName: TypeAlias = Literal["created", "moved", "updated", "deleted", "parent-updated"]


class EventDict(TypedDict):
    """Serialized bus event as returned by ``NotificationBus.recent()``.

    ``payload`` carries the event-specific fields (``key`` for created,
    ``ticket_id``/``from``/``to`` for moved, and so on).
    """

    event: EventName
    payload: dict[str, str]
    published_at: ISOTimestamp
