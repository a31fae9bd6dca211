from __future__ import annotations

import logging

from app.core.logging import (
    _ContainerFormatter,
    _JsonFormatter,
    _RequestContextFilter,
    request_id_var,
    setup_logging,
)


def test_setup_logging_sets_root_level() -> None:
    setup_logging("debug")
    assert logging.getLogger().level == logging.DEBUG

    setup_logging("warning")
    assert logging.getLogger().level == logging.WARNING


def test_setup_logging_defaults_to_info_for_unknown_level() -> None:
    setup_logging("nonexistent")
    assert logging.getLogger().level == logging.INFO


def test_setup_logging_quiets_third_party_at_debug() -> None:
    setup_logging("debug")
    assert logging.getLogger("uvicorn").level == logging.WARNING
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


def test_setup_logging_allows_uvicorn_at_error() -> None:
    setup_logging("error")
    assert logging.getLogger("uvicorn").level == logging.ERROR


def test_setup_logging_selects_json_formatter() -> None:
    setup_logging("info", json_format=True)
    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert isinstance(handlers[0].formatter, _JsonFormatter)

    setup_logging("info")
    assert isinstance(logging.getLogger().handlers[0].formatter, _ContainerFormatter)


def test_formatter_excludes_location_for_info() -> None:
    fmt = _ContainerFormatter()
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg="hello",
        args=(),
        exc_info=None,
    )
    output = fmt.format(record)
    assert "hello" in output
    assert "[test.py:" not in output


def test_formatter_includes_location_for_warning() -> None:
    fmt = _ContainerFormatter()
    record = logging.LogRecord(
        name="test",
        level=logging.WARNING,
        pathname="resolver.py",
        lineno=42,
        msg="activity unresolved",
        args=(),
        exc_info=None,
    )
    output = fmt.format(record)
    assert "activity unresolved" in output
    assert "[resolver.py:42]" in output


def test_formatter_timestamp_has_milliseconds() -> None:
    fmt = _ContainerFormatter()
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg="tick",
        args=(),
        exc_info=None,
    )
    record.msecs = 7.0
    stamp = fmt.formatTime(record, fmt.datefmt)
    # ...THH:MM:SS.007+0000
    assert stamp[-9:-5] == ".007"


def test_request_context_filter_stamps_current_request_id() -> None:
    record = logging.LogRecord(
        name="app.services.ingestion",
        level=logging.INFO,
        pathname="ingestion.py",
        lineno=1,
        msg="stored",
        args=(),
        exc_info=None,
    )
    token = request_id_var.set("req-42")
    try:
        assert _RequestContextFilter().filter(record) is True
    finally:
        request_id_var.reset(token)
    assert record.request_id == "req-42"  # type: ignore[attr-defined]


def test_request_context_filter_defaults_outside_requests() -> None:
    record = logging.LogRecord(
        name="worker",
        level=logging.INFO,
        pathname="worker.py",
        lineno=1,
        msg="idle",
        args=(),
        exc_info=None,
    )
    _RequestContextFilter().filter(record)
    assert record.request_id == "-"  # type: ignore[attr-defined]
