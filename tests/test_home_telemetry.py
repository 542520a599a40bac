from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from piohome.home import telemetry
from piohome.home.errors import PortExhaustedError, SpawnFailedError
from piohome.home.telemetry import (
    ErrorReporter,
    get_error_reporter,
    report_error,
    set_error_reporter,
)


@pytest.fixture
def reporter(tmp_path: Path):
    reporter = ErrorReporter(tmp_path / "errors" / "piohome-errors.db")
    set_error_reporter(reporter)
    yield reporter
    set_error_reporter(None)


def test_record_and_recent_newest_first(reporter: ErrorReporter) -> None:
    reporter.record(PortExhaustedError("127.0.0.1", 8010, 8050), {"attempts": 3})
    reporter.record(SpawnFailedError(1, "Error: boom"))

    records = reporter.recent()
    assert [r.kind for r in records] == ["SpawnFailedError", "PortExhaustedError"]
    assert records[0].message == "Error: boom"
    assert records[0].tags == {}
    assert records[1].tags == {"attempts": 3}
    assert reporter.recent(limit=1)[0].kind == "SpawnFailedError"


def test_report_error_persists_with_tags(reporter: ErrorReporter) -> None:
    report_error(SpawnFailedError(2, "bad"), component="launch_supervisor", attempts=3)
    [record] = reporter.recent()
    assert record.kind == "SpawnFailedError"
    assert record.tags == {"component": "launch_supervisor", "attempts": 3}


def test_report_error_without_reporter_only_logs(caplog) -> None:
    set_error_reporter(None)
    assert get_error_reporter() is None
    with caplog.at_level("ERROR", logger="piohome.home.telemetry"):
        report_error(RuntimeError("lost"))
    assert "lost" in caplog.text


def test_report_error_never_raises_on_storage_failure(reporter: ErrorReporter) -> None:
    with patch.object(reporter, "record", side_effect=OSError("disk full")):
        report_error(RuntimeError("boom"))
    assert telemetry.get_error_reporter() is reporter
