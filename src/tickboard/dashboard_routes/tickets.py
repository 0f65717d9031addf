"""Ticket create, detail, delete, comment and search route handlers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi.responses import JSONResponse
from starlette.requests import Request

if TYPE_CHECKING:
    from fastapi import APIRouter

from tickboard.board import BoardReconciler, Failure
from tickboard.core import Ticket, TicketDB, TicketDraft
from tickboard.dashboard_routes.common import _error_response, _failure_response, _parse_json_body, _require_str
from tickboard.db_base import DELETE_MODES
from tickboard.statuses import STATUSES, is_valid_status

logger = logging.getLogger(__name__)

_OPTIONAL_STR_FIELDS = ("key", "parent_id", "assignee", "description")


def _ticket_on_board(ticket_id: str, db: TicketDB, board: BoardReconciler) -> Ticket | JSONResponse:
    """The stored ticket, or a 404 when it is missing or belongs to another project."""
    try:
        ticket = db.get_ticket(ticket_id)
    except KeyError:
        return _error_response(f"Ticket not found: {ticket_id}", "TICKET_NOT_FOUND", 404)
    if ticket.project_id != board.project_id:
        logger.info("Ticket %s requested outside project %s", ticket_id, board.project_id)
        return _error_response(f"Ticket not found: {ticket_id}", "TICKET_NOT_FOUND", 404)
    return ticket


def create_router() -> APIRouter:
    """Build the APIRouter for ticket endpoints."""
    from fastapi import APIRouter, Depends

    from tickboard.dashboard import _get_board, _get_db

    router = APIRouter()

    @router.post("/tickets")
    async def api_create_ticket(request: Request, board: BoardReconciler = Depends(_get_board)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        summary = _require_str(body, "summary")
        if isinstance(summary, JSONResponse):
            return summary
        for name in _OPTIONAL_STR_FIELDS:
            if body.get(name) is not None and not isinstance(body[name], str):
                return _error_response(f"{name} must be a string", "VALIDATION_ERROR", 400)

        if body.get("status") is not None and not is_valid_status(body["status"]):
            return _error_response(
                f"Invalid status {body['status']!r}. Valid statuses: {', '.join(STATUSES)}",
                "INVALID_STATUS",
                400,
            )

        fields: dict[str, Any] = {
            name: body[name]
            for name in ("status", "issue_type", "priority", "assignee", "description")
            if body.get(name) is not None
        }
        draft = TicketDraft(
            summary=summary,
            project_id=board.project_id,
            key=body.get("key") or None,
            parent_id=body.get("parent_id") or None,
            **fields,
        )
        result = await board.create(draft)
        if isinstance(result, Failure):
            return _failure_response(result)
        return JSONResponse(result.to_dict(), status_code=201)

    @router.get("/ticket/{ticket_id}")
    async def api_ticket_detail(
        ticket_id: str,
        db: TicketDB = Depends(_get_db),
        board: BoardReconciler = Depends(_get_board),
    ) -> JSONResponse:
        """Ticket with its direct children and comments."""
        ticket = _ticket_on_board(ticket_id, db, board)
        if isinstance(ticket, JSONResponse):
            return ticket
        children = db.get_children(ticket_id)
        return JSONResponse(
            {
                **ticket.to_dict(),
                "children": [c.to_dict() for c in children],
                "comments": db.get_comments(ticket_id),
            }
        )

    @router.delete("/ticket/{ticket_id}")
    async def api_delete_ticket(
        ticket_id: str,
        mode: str = "detach",
        db: TicketDB = Depends(_get_db),
        board: BoardReconciler = Depends(_get_board),
    ) -> JSONResponse:
        if mode not in DELETE_MODES:
            return _error_response(
                f"Invalid delete mode '{mode}'. Valid modes: {', '.join(sorted(DELETE_MODES))}",
                "VALIDATION_ERROR",
                400,
            )
        local = board.get(ticket_id)
        if local is None or not local.pending:
            found = _ticket_on_board(ticket_id, db, board)
            if isinstance(found, JSONResponse):
                return found
        result = await board.delete(ticket_id, mode)  # type: ignore[arg-type]
        if isinstance(result, Failure):
            return _failure_response(result)
        return JSONResponse({"deleted": result})

    @router.get("/ticket/{ticket_id}/comments")
    async def api_get_comments(
        ticket_id: str,
        db: TicketDB = Depends(_get_db),
        board: BoardReconciler = Depends(_get_board),
    ) -> JSONResponse:
        ticket = _ticket_on_board(ticket_id, db, board)
        if isinstance(ticket, JSONResponse):
            return ticket
        return JSONResponse(db.get_comments(ticket_id))

    @router.post("/ticket/{ticket_id}/comments", status_code=201)
    async def api_add_comment(
        ticket_id: str,
        request: Request,
        db: TicketDB = Depends(_get_db),
        board: BoardReconciler = Depends(_get_board),
    ) -> JSONResponse:
        """Add a comment to a ticket."""
        ticket = _ticket_on_board(ticket_id, db, board)
        if isinstance(ticket, JSONResponse):
            return ticket
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        text = _require_str(body, "text")
        if isinstance(text, JSONResponse):
            return text
        author = body.get("author", "dashboard")
        if not isinstance(author, str):
            return _error_response("author must be a string", "VALIDATION_ERROR", 400)
        try:
            record = db.add_comment(ticket_id, text, author=author)
        except ValueError as e:
            return _error_response(str(e), "VALIDATION_ERROR", 400)
        return JSONResponse(record, status_code=201)

    @router.get("/search")
    async def api_search(
        q: str = "",
        limit: int = 50,
        offset: int = 0,
        db: TicketDB = Depends(_get_db),
        board: BoardReconciler = Depends(_get_board),
    ) -> JSONResponse:
        """Substring search over summary, description and key in the board's project."""
        limit = min(max(limit, 1), 1000)
        offset = max(offset, 0)
        if not q.strip():
            return JSONResponse({"results": [], "total": 0})
        tickets = db.search_tickets(board.project_id, q, limit=limit, offset=offset)
        return JSONResponse({"results": [t.to_dict() for t in tickets], "total": len(tickets)})

    return router
