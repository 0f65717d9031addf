"""Shared helpers for dashboard route modules."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fastapi.responses import JSONResponse
    from starlette.requests import Request

    from tickboard.board import Failure

logger = logging.getLogger(__name__)

_FAILURE_STATUS = {
    "not_found": (404, "TICKET_NOT_FOUND"),
    "duplicate_key": (409, "DUPLICATE_KEY"),
    "invalid": (400, "VALIDATION_ERROR"),
    "persistence": (503, "PERSISTENCE_ERROR"),
}


def _error_response(
    message: str,
    code: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Return a structured error response and log the error."""
    from fastapi.responses import JSONResponse

    logger.warning("API error [%s] %s: %s", status_code, code, message)
    return JSONResponse(
        {"error": {"message": message, "code": code, "details": details or {}}},
        status_code=status_code,
    )


def _failure_response(failure: Failure) -> JSONResponse:
    status_code, code = _FAILURE_STATUS[failure.kind]
    return _error_response(failure.message, code, status_code, dict(failure.to_dict()))


async def _parse_json_body(request: Request) -> dict[str, Any] | JSONResponse:
    """Parse and validate a JSON object body, returning 400 on failure."""
    import json

    try:
        body = await request.json()
    except (json.JSONDecodeError, ValueError, UnicodeDecodeError):
        return _error_response("Invalid JSON body", "VALIDATION_ERROR", 400)
    if not isinstance(body, dict):
        return _error_response("Request body must be a JSON object", "VALIDATION_ERROR", 400)
    return body


def _require_str(body: dict[str, Any], name: str) -> str | JSONResponse:
    value = body.get(name)
    if not isinstance(value, str) or not value.strip():
        return _error_response(f"{name} is required and must be a non-empty string", "VALIDATION_ERROR", 400)
    return value
