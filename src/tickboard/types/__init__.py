# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py, db_base.py, board.py or any mixin; this prevents circular imports.
"""Typed return-value contracts for tickboard core, engine and API layers."""

from __future__ import annotations

from tickboard.types.api import DenialDict, EffectDict, FailureDict, MoveResponse
from tickboard.types.core import (
    BoardDict,
    ColumnDict,
    CommentRecord,
    ISOTimestamp,
    ProjectConfig,
    ProjectDict,
    TicketDict,
)
from tickboard.types.events import EventDict, EventName
from tickboard.types.metrics import FlowMetrics, TypeMetrics

__all__ = [
    "BoardDict",
    "ColumnDict",
    "CommentRecord",
    "DenialDict",
    "EffectDict",
    "EventDict",
    "EventName",
    "FailureDict",
    "FlowMetrics",
    "ISOTimestamp",
    "MoveResponse",
    "ProjectConfig",
    "ProjectDict",
    "TicketDict",
    "TypeMetrics",
]
