"""Process-wide error reporting.

``report_error`` is the single sink the supervisor uses once a launch
has failed for good. By default errors are only logged; install an
``ErrorReporter`` with ``set_error_reporter`` to also keep them in a
local SQLite database.
"""
from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ErrorRecord:
    timestamp: str
    kind: str
    message: str
    tags: dict[str, Any]


class ErrorReporter:
    """Persists reported errors."""

    def __init__(self, db_path: Path):
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS errors (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    message TEXT NOT NULL,
                    tags_json TEXT NOT NULL DEFAULT '{}'
                )
                """
            )
            conn.commit()

    def record(self, exc: BaseException, tags: dict[str, Any] | None = None) -> None:
        payload = json.dumps(tags or {}, sort_keys=True, default=str)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO errors(timestamp, kind, message, tags_json)
                VALUES (?, ?, ?, ?)
                """,
                (_utc_now().isoformat(), type(exc).__name__, str(exc), payload),
            )
            conn.commit()

    def recent(self, limit: int = 20) -> list[ErrorRecord]:
        """Most recent errors first."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT timestamp, kind, message, tags_json
                FROM errors
                ORDER BY id DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [
            ErrorRecord(
                timestamp=str(row["timestamp"]),
                kind=str(row["kind"]),
                message=str(row["message"]),
                tags=json.loads(row["tags_json"] or "{}"),
            )
            for row in rows
        ]


_reporter: ErrorReporter | None = None


def set_error_reporter(reporter: ErrorReporter | None) -> None:
    global _reporter
    _reporter = reporter


def get_error_reporter() -> ErrorReporter | None:
    return _reporter


def report_error(exc: BaseException, **tags: Any) -> None:
    """Log ``exc`` and hand it to the installed reporter, never raising."""
    logger.error("Reported error: %s: %s", type(exc).__name__, exc)
    if _reporter is None:
        return
    try:
        _reporter.record(exc, tags)
    except (sqlite3.Error, OSError):
        logger.exception("Failed to persist reported error")
