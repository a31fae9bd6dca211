from __future__ import annotations

import asyncio

import pytest
from prometheus_client import REGISTRY

from app.core.retry import StoreUnavailableError, with_retries


class _Flaky:
    """Fails with StoreUnavailableError `failures` times, then returns "ok"."""

    def __init__(self, failures: int, exc: Exception | None = None) -> None:
        self.failures = failures
        self.calls = 0
        self.exc = exc or StoreUnavailableError("connection refused")

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return "ok"


def _retries(operation: str) -> float:
    value = REGISTRY.get_sample_value("store_retries_total", {"operation": operation})
    return value if value is not None else 0.0


def test_returns_first_result_without_retry() -> None:
    op = _Flaky(failures=0)
    assert asyncio.run(with_retries(op, name="test.ok", max_attempts=3, base_delay=0)) == "ok"
    assert op.calls == 1


def test_retries_until_success() -> None:
    op = _Flaky(failures=2)
    before = _retries("test.flaky")
    result = asyncio.run(with_retries(op, name="test.flaky", max_attempts=3, base_delay=0))
    assert result == "ok"
    assert op.calls == 3
    assert _retries("test.flaky") - before == 2


def test_reraises_after_last_attempt() -> None:
    op = _Flaky(failures=5)
    with pytest.raises(StoreUnavailableError):
        asyncio.run(with_retries(op, name="test.down", max_attempts=3, base_delay=0))
    assert op.calls == 3


def test_other_errors_are_not_retried() -> None:
    op = _Flaky(failures=1, exc=KeyError("bad"))
    with pytest.raises(KeyError):
        asyncio.run(with_retries(op, name="test.bug", max_attempts=3, base_delay=0))
    assert op.calls == 1


def test_backoff_doubles_between_attempts(monkeypatch: pytest.MonkeyPatch) -> None:
    waits: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        waits.append(seconds)

    monkeypatch.setattr("app.core.retry.asyncio.sleep", fake_sleep)
    monkeypatch.setattr("app.core.retry.random.uniform", lambda a, b: 0.0)

    op = _Flaky(failures=3)
    asyncio.run(with_retries(op, name="test.backoff", max_attempts=4, base_delay=0.5))
    assert waits == [0.5, 1.0, 2.0]
