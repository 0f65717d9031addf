"""Database schema definitions for the tickboard store.

Contains the canonical SQL schema and the current schema version constant.
"""

from __future__ import annotations

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS projects (
    id          TEXT PRIMARY KEY,
    key         TEXT NOT NULL UNIQUE,
    name        TEXT NOT NULL,
    description TEXT DEFAULT '',
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tickets (
    id          TEXT PRIMARY KEY,
    key         TEXT NOT NULL,
    project_id  TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    summary     TEXT NOT NULL,
    status      TEXT NOT NULL DEFAULT 'backlog',
    issue_type  TEXT NOT NULL DEFAULT 'task',
    parent_id   TEXT REFERENCES tickets(id) ON DELETE SET NULL,
    priority    TEXT NOT NULL DEFAULT 'medium',
    assignee    TEXT DEFAULT '',
    description TEXT DEFAULT '',
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL,

    UNIQUE (project_id, key),
    CHECK (status IN ('backlog', 'todo', 'in-progress', 'review', 'done')),
    CHECK (issue_type IN ('epic', 'feature', 'story', 'task', 'bug')),
    CHECK (priority IN ('low', 'medium', 'high')),
    CHECK (parent_id IS NULL OR parent_id != id)
);

CREATE INDEX IF NOT EXISTS idx_tickets_project ON tickets(project_id, created_at);
CREATE INDEX IF NOT EXISTS idx_tickets_status ON tickets(project_id, status);
CREATE INDEX IF NOT EXISTS idx_tickets_parent ON tickets(parent_id);

CREATE TABLE IF NOT EXISTS comments (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    ticket_id  TEXT NOT NULL REFERENCES tickets(id) ON DELETE CASCADE,
    author     TEXT DEFAULT '',
    text       TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_comments_ticket ON comments(ticket_id, created_at);
"""

# v2: comments table. Every statement above is idempotent, so replaying it upgrades v1.
CURRENT_SCHEMA_VERSION = 2
