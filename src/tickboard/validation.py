"""Shared validation functions for all entry points.

Pure functions with no FastAPI or Click dependencies.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any

_MAX_SUMMARY_LENGTH = 255
_PROJECT_KEY_PATTERN = re.compile(r"^[A-Z][A-Z0-9]{1,9}$")
_TICKET_KEY_PATTERN = re.compile(r"^([A-Z][A-Z0-9]{1,9})-(\d+)$")


def sanitize_summary(value: Any) -> tuple[str, str | None]:
    """Validate and clean a ticket summary.

    Returns (cleaned_summary, None) on success or ("", error_message) on failure.
    Strips whitespace, then checks: non-empty, max length, no control/format chars.
    """
    if not isinstance(value, str):
        return ("", "summary must be a string")
    for ch in value:
        cat = unicodedata.category(ch)
        if cat.startswith("C"):  # Cc (control) and Cf (format)
            return ("", f"summary must not contain control characters (found U+{ord(ch):04X})")
    cleaned = value.strip()
    if not cleaned:
        return ("", "summary must not be empty")
    if len(cleaned) > _MAX_SUMMARY_LENGTH:
        return ("", f"summary must be at most {_MAX_SUMMARY_LENGTH} characters")
    return (cleaned, None)


def validate_project_key(value: Any) -> tuple[str, str | None]:
    """Normalize a project key to upper case and check its shape.

    Keys are 2-10 characters, letters and digits, starting with a letter.
    """
    if not isinstance(value, str):
        return ("", "project key must be a string")
    key = value.strip().upper()
    if not _PROJECT_KEY_PATTERN.match(key):
        return ("", f"Invalid project key '{value}': expected 2-10 letters/digits starting with a letter")
    return (key, None)


def parse_ticket_key(key: str) -> tuple[str, int] | None:
    """Split 'PRJ-12' into ('PRJ', 12). Returns None for keys of another shape."""
    m = _TICKET_KEY_PATTERN.match(key)
    if m is None:
        return None
    return m.group(1), int(m.group(2))
