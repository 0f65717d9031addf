"""Foundational TypedDicts for dataclass to_dict() returns."""

from __future__ import annotations

from typing import NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class ProjectConfig(TypedDict, total=False):
    """Shape of .tickboard/config.json."""

    project_key: str
    name: str
    version: int


class ProjectDict(TypedDict):
    id: str
    key: str
    name: str
    description: str
    created_at: ISOTimestamp
    updated_at: ISOTimestamp


class TicketDict(TypedDict):
    id: str
    key: str
    summary: str
    status: str
    issue_type: str
    parent_id: str | None
    project_id: str
    priority: str
    assignee: str
    description: str
    created_at: ISOTimestamp
    updated_at: ISOTimestamp


class ColumnDict(TypedDict):
    status: str
    tickets: list[TicketDict]


class BoardDict(TypedDict):
    """Snapshot of one project's five columns, in workflow order."""

    project_id: str
    columns: list[ColumnDict]
    pending: list[str]
    degraded: list[str]


class CommentRecord(TypedDict):
    id: int
    ticket_id: str
    author: str
    text: str
    created_at: ISOTimestamp
