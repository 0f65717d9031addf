"""HTTP API for tickboard: board, moves, tickets, events, metrics.

Single-project local server. A module-level ``_db`` is set at startup (or
by test fixtures) and injected via ``Depends(_get_db)``. Each project gets
one ``BoardReconciler``, created on first use and kept for the life of the
app, so optimistic state and issue sequence numbers survive across
requests. All reconcilers share one ``NotificationBus``.

Usage:
    tickboard dashboard                    # http://localhost:8388
    tickboard dashboard --port 9000        # Custom port
"""

from __future__ import annotations

import logging
from typing import Any

from tickboard.board import BoardReconciler
from tickboard.bus import NotificationBus
from tickboard.core import DB_FILENAME, TicketDB, find_tickboard_root, read_config
from tickboard.persistence import SQLiteTicketStore

DEFAULT_PORT = 8388

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level state, set by main() or test fixtures
# ---------------------------------------------------------------------------

_db: TicketDB | None = None
_project_key: str = ""
_bus = NotificationBus()
_boards: dict[str, BoardReconciler] = {}


def _get_db() -> TicketDB:
    from fastapi import HTTPException

    if _db is None:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return _db


def _get_bus() -> NotificationBus:
    return _bus


def _default_project_id(db: TicketDB) -> str:
    """The configured project, else the only/first project in the database."""
    from fastapi import HTTPException

    if _project_key:
        try:
            return db.get_project_by_key(_project_key).id
        except KeyError:
            logger.warning("Configured project %s not found; falling back to first project", _project_key)
    projects = db.list_projects()
    if not projects:
        raise HTTPException(status_code=503, detail="No projects in database")
    return projects[0].id


async def _get_board() -> BoardReconciler:
    """Reconciler for the default project, loaded from the store on first use."""
    db = _get_db()
    project_id = _default_project_id(db)
    board = _boards.get(project_id)
    if board is None:
        board = BoardReconciler(project_id, SQLiteTicketStore(db), _bus)
        await board.load()
        _boards[project_id] = board
    return board


def create_app() -> Any:
    """Create the FastAPI application with every API router mounted under ``/api``."""
    from fastapi import FastAPI

    from tickboard import __version__
    from tickboard.dashboard_routes import board, tickets

    global _bus
    _bus = NotificationBus()
    _boards.clear()

    app = FastAPI(title="Tickboard", version=__version__, docs_url=None, redoc_url=None)
    app.include_router(board.create_router(), prefix="/api")
    app.include_router(tickets.create_router(), prefix="/api")

    @app.get("/api/health")
    async def api_health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    return app


def main(port: int = DEFAULT_PORT) -> None:
    """Start the API server for the local workspace."""
    import uvicorn

    from tickboard.logging import setup_logging

    global _db, _project_key

    tickboard_dir = find_tickboard_root()
    setup_logging(tickboard_dir)
    _project_key = read_config(tickboard_dir).get("project_key", "")
    _db = TicketDB(tickboard_dir / DB_FILENAME, check_same_thread=False)
    _db.initialize()

    app = create_app()
    print(f"Tickboard: http://localhost:{port}")
    uvicorn.run(app, host="127.0.0.1", port=port, log_level="warning")
