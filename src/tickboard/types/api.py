"""TypedDicts for board/API responses."""

from __future__ import annotations

from typing import TypedDict


class EffectDict(TypedDict):
    ticket_id: str
    status: str
    previous: str
    seq: int


class DenialDict(TypedDict):
    ticket_id: str
    reason: str
    message: str
    blocking: list[str]


class FailureDict(TypedDict):
    ticket_id: str
    operation: str
    message: str
    retryable: bool
    kind: str


class MoveResponse(TypedDict):
    """Result of a persisted move: the applied plan plus per-effect failures."""

    ticket_id: str
    effects: list[EffectDict]
    failures: list[FailureDict]
