"""Tests for structured (JSON) logging output.

Log aggregation filters on top-level keys (request_id, actor_key,
course_id), so the JSON shape is part of the service's contract.
"""

from __future__ import annotations

import json
import logging
import sys

from app.core.logging import _ContainerFormatter, _JsonFormatter


def _record(msg: str = "test message", level: int = logging.INFO, **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test",
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_produces_valid_json() -> None:
    """_JsonFormatter output must be parseable as JSON."""
    formatter = _JsonFormatter()
    record = logging.LogRecord(
        name="app.services.ingestion",
        level=logging.INFO,
        pathname="ingestion.py",
        lineno=42,
        msg="Ingested %d statements",
        args=(3,),
        exc_info=None,
    )
    parsed = json.loads(formatter.format(record))
    assert parsed["level"] == "INFO"
    assert parsed["logger"] == "app.services.ingestion"
    assert parsed["message"] == "Ingested 3 statements"
    assert "timestamp" in parsed


def test_json_formatter_includes_request_fields() -> None:
    """Fields set by the request middleware appear in JSON output."""
    record = _record(
        request_id="abc-123", method="POST", path="/xapi/statements", duration_ms=12.5
    )
    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["request_id"] == "abc-123"
    assert parsed["method"] == "POST"
    assert parsed["path"] == "/xapi/statements"
    assert parsed["duration_ms"] == 12.5


def test_json_formatter_includes_learning_record_fields() -> None:
    record = _record(
        actor_key="learner@example.com",
        course_id="python-101",
        statement_id="6b7a2f1e-0000-4000-8000-000000000001",
        verb_id="http://adlnet.gov/expapi/verbs/completed",
    )
    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["actor_key"] == "learner@example.com"
    assert parsed["course_id"] == "python-101"
    assert parsed["statement_id"] == "6b7a2f1e-0000-4000-8000-000000000001"
    assert parsed["verb_id"] == "http://adlnet.gov/expapi/verbs/completed"


def test_json_formatter_drops_unlisted_extra_fields() -> None:
    record = _record(payload={"actor": {"mbox": "mailto:someone@example.com"}})
    parsed = json.loads(_JsonFormatter().format(record))
    assert "payload" not in parsed


def test_json_formatter_includes_exception_info() -> None:
    """Exception info appears as an 'exception' key in JSON output."""
    formatter = _JsonFormatter()
    try:
        raise ValueError("test error")
    except ValueError:
        record = _record("Something failed", level=logging.ERROR)
        record.exc_info = sys.exc_info()
        output = formatter.format(record)

    parsed = json.loads(output)
    assert "exception" in parsed
    assert "ValueError: test error" in parsed["exception"]


def test_container_formatter_is_not_json() -> None:
    formatter = _ContainerFormatter()
    output = formatter.format(_record("server started"))
    assert "INFO" in output
    assert "server started" in output
    try:
        json.loads(output)
        raise AssertionError("Container format should not be valid JSON")
    except json.JSONDecodeError:
        pass  # expected
