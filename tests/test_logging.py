"""Tests for structured logging."""

from __future__ import annotations

import json
import logging
import logging.handlers
import threading
from collections.abc import Generator
from pathlib import Path

import pytest

from tickboard.logging import setup_logging


@pytest.fixture(autouse=True)
def _detach_handlers() -> Generator[None, None, None]:
    yield
    logger = logging.getLogger("tickboard")
    for h in logger.handlers[:]:
        logger.removeHandler(h)
        h.close()


def _last_record(logger: logging.Logger, path: Path) -> dict[str, object]:
    for handler in logger.handlers:
        handler.flush()
    record: dict[str, object] = json.loads(path.read_text().strip().split("\n")[-1])
    return record


class TestSetupLogging:
    def test_creates_log_file(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.info("board loaded")
        record = _last_record(logger, tmp_path / "tickboard.log")
        assert record["msg"] == "board loaded"
        assert record["level"] == "INFO"
        assert record["logger"] == "tickboard"

    def test_extra_fields(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logging.getLogger("tickboard.board").warning(
            "persist failed",
            extra={"ticket_id": "tkt-1", "effect": "done", "duration_ms": 4.5, "error": "disk full", "other": "x"},
        )
        record = _last_record(logger, tmp_path / "tickboard.log")
        assert record["logger"] == "tickboard.board"
        assert record["ticket_id"] == "tkt-1"
        assert record["effect"] == "done"
        assert record["duration_ms"] == 4.5
        assert record["error"] == "disk full"
        assert "other" not in record

    def test_exception_recorded(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            logger.exception("observer failed")
        record = _last_record(logger, tmp_path / "tickboard.log")
        assert record["exception"] == "boom"

    def test_idempotent_setup(self, tmp_path: Path) -> None:
        logger1 = setup_logging(tmp_path)
        logger2 = setup_logging(tmp_path)
        assert logger1 is logger2
        assert len(logger1.handlers) == 1

    def test_new_directory_replaces_handler(self, tmp_path: Path) -> None:
        first = tmp_path / "a"
        second = tmp_path / "b"
        first.mkdir()
        second.mkdir()
        setup_logging(first)
        logger = setup_logging(second)
        [handler] = logger.handlers
        assert isinstance(handler, logging.handlers.RotatingFileHandler)
        assert handler.baseFilename == str((second / "tickboard.log").absolute())

    def test_no_duplicate_handlers_under_concurrency(self, tmp_path: Path) -> None:
        results: list[logging.Logger] = []
        barrier = threading.Barrier(4)

        def call_setup() -> None:
            barrier.wait()
            results.append(setup_logging(tmp_path))

        threads = [threading.Thread(target=call_setup) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(results) == 4
        assert len(logging.getLogger("tickboard").handlers) == 1

    def test_rotation_settings(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        [handler] = logger.handlers
        assert isinstance(handler, logging.handlers.RotatingFileHandler)
        assert handler.maxBytes == 5 * 1024 * 1024
        assert handler.backupCount == 3
