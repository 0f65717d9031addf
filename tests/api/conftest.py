"""Fixtures for HTTP API tests (FastAPI)."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient

import tickboard.dashboard as dash_module
from tickboard.core import Project, TicketDB
from tickboard.dashboard import create_app


@pytest.fixture
def api_db(db: TicketDB, project: Project) -> TicketDB:
    """The shared test DB with one project, reopened for use off the creating thread."""
    db.reconnect(check_same_thread=False)
    return db


@pytest.fixture
async def client(api_db: TicketDB) -> AsyncIterator[AsyncClient]:
    dash_module._db = api_db
    dash_module._project_key = ""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    dash_module._db = None
