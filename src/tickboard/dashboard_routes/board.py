"""Board, move, event and metrics route handlers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi.responses import JSONResponse
from starlette.requests import Request

if TYPE_CHECKING:
    from fastapi import APIRouter

from tickboard.board import BoardReconciler, Denied
from tickboard.bus import NotificationBus
from tickboard.core import TicketDB
from tickboard.dashboard_routes.common import _error_response, _parse_json_body, _require_str
from tickboard.metrics import get_flow_metrics
from tickboard.statuses import STATUSES, is_valid_status
from tickboard.validator import REASON_NOT_FOUND

logger = logging.getLogger(__name__)


def create_router() -> APIRouter:
    """Build the APIRouter for board state, moves, events and metrics.

    Handlers are async while doing synchronous SQLite I/O, which keeps all
    DB access and all reconciler mutation on the event loop thread.
    """
    from fastapi import APIRouter, Depends

    from tickboard.dashboard import _get_board, _get_bus, _get_db

    router = APIRouter()

    @router.get("/board")
    async def api_board(board: BoardReconciler = Depends(_get_board)) -> JSONResponse:
        await board.load()
        return JSONResponse(board.snapshot())

    @router.post("/board/move")
    async def api_move(request: Request, board: BoardReconciler = Depends(_get_board)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        ticket_id = _require_str(body, "ticket_id")
        if isinstance(ticket_id, JSONResponse):
            return ticket_id
        status = body.get("status")
        if not is_valid_status(status):
            return _error_response(
                f"Invalid status {status!r}. Valid statuses: {', '.join(STATUSES)}",
                "INVALID_STATUS",
                400,
                {"valid": list(STATUSES)},
            )

        outcome = await board.move(ticket_id, status)
        if isinstance(outcome, Denied):
            if outcome.reason == REASON_NOT_FOUND:
                return _error_response(outcome.message, "TICKET_NOT_FOUND", 404)
            return _error_response(
                outcome.message,
                "MOVE_DENIED",
                409,
                {"reason": outcome.reason, "blocking": list(outcome.blocking)},
            )
        return JSONResponse(outcome.to_dict())

    @router.get("/events/recent")
    async def api_recent_events(limit: int = 50, bus: NotificationBus = Depends(_get_bus)) -> JSONResponse:
        if limit < 1:
            return _error_response(f"Invalid value for limit: {limit}. Must be >= 1.", "VALIDATION_ERROR", 400)
        return JSONResponse([e.to_dict() for e in bus.recent(limit)])

    @router.get("/metrics")
    async def api_metrics(
        days: int = 30,
        db: TicketDB = Depends(_get_db),
        board: BoardReconciler = Depends(_get_board),
    ) -> JSONResponse:
        if days < 1:
            return _error_response(f"Invalid value for days: {days}. Must be >= 1.", "VALIDATION_ERROR", 400)
        return JSONResponse(get_flow_metrics(db.list_tickets(board.project_id), days=days))

    return router
