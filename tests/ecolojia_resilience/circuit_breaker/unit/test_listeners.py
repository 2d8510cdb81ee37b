from __future__ import annotations

import logging

import pytest

from ecolojia_resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    LoggingBreakerListener,
)
from tests.ecolojia_resilience.support.fakes import FakeClock, FakeLogger

pytestmark = pytest.mark.asyncio


async def _ok() -> str:
    return "ok"


async def _fail() -> None:
    raise RuntimeError("nope")


async def _fallback() -> str:
    return "degraded"


def _breaker(logger: object, **kwargs: object) -> CircuitBreaker:
    return CircuitBreaker(
        "DeepSeek_AI",
        config=CircuitBreakerConfig(
            error_threshold=1,
            success_threshold=1,
            reset_timeout=30.0,
        ),
        listeners=[LoggingBreakerListener(logger, **kwargs)],  # type: ignore[arg-type]
    )


async def test_logs_open_with_retry_time(
    fake_clock: FakeClock,
    fake_logger: FakeLogger,
) -> None:
    breaker = _breaker(fake_logger)

    with pytest.raises(RuntimeError):
        await breaker.execute(_fail)

    assert fake_logger.events == ["circuit_breaker.open", "circuit_breaker.failure"]
    level, _, fields = fake_logger.calls[0]
    assert level == "error"
    assert fields["breaker"] == "DeepSeek_AI"
    assert fields["state"] == "open"
    assert fields["previous_state"] == "closed"
    assert fields["retry_at"] == breaker.next_attempt_at.isoformat()
    failure_level, _, failure_fields = fake_logger.calls[1]
    assert failure_level == "warning"
    assert failure_fields["error_type"] == "RuntimeError"
    assert failure_fields["consecutive_failures"] == 1


async def test_logs_half_open_close_and_reset(
    fake_clock: FakeClock,
    fake_logger: FakeLogger,
) -> None:
    breaker = _breaker(fake_logger)
    with pytest.raises(RuntimeError):
        await breaker.execute(_fail)
    fake_clock.advance(30.0)
    fake_logger.events.clear()

    await breaker.execute(_ok)
    breaker.reset()

    assert fake_logger.events == [
        "circuit_breaker.half_open",
        "circuit_breaker.closed",
        "circuit_breaker.reset",
    ]


async def test_logs_fallback_outcomes(
    fake_clock: FakeClock,
    fake_logger: FakeLogger,
) -> None:
    breaker = _breaker(fake_logger)
    breaker.force_open()
    fake_logger.calls.clear()

    assert await breaker.execute(_ok, _fallback) == "degraded"

    async def _broken() -> str:
        raise LookupError("empty cache")

    with pytest.raises(LookupError):
        await breaker.execute(_ok, _broken)

    assert [(level, event) for level, event, _ in fake_logger.calls] == [
        ("warning", "circuit_breaker.fallback"),
        ("error", "circuit_breaker.fallback_failed"),
    ]
    assert fake_logger.calls[0][2]["reason"] == "rejected"
    assert fake_logger.calls[1][2]["error_type"] == "LookupError"


async def test_verbose_logs_success_and_state_change(
    fake_clock: FakeClock,
    fake_logger: FakeLogger,
) -> None:
    quiet = _breaker(fake_logger)
    await quiet.execute(_ok)
    assert fake_logger.events == []

    verbose = _breaker(fake_logger, verbose=True)
    await verbose.execute(_ok)
    verbose.force_open()

    assert fake_logger.events == [
        "circuit_breaker.success",
        "circuit_breaker.open",
        "circuit_breaker.stateChange",
    ]


async def test_accepts_stdlib_logger(
    fake_clock: FakeClock,
    caplog: pytest.LogCaptureFixture,
) -> None:
    logger = logging.getLogger("tests.ecolojia_resilience.listeners")
    breaker = _breaker(logger)

    with caplog.at_level(logging.WARNING, logger=logger.name):
        with pytest.raises(RuntimeError):
            await breaker.execute(_fail)

    messages = [record.getMessage() for record in caplog.records]
    assert "circuit_breaker.open" in messages
    assert "circuit_breaker.failure" in messages
    open_record = next(
        record
        for record in caplog.records
        if record.getMessage() == "circuit_breaker.open"
    )
    assert getattr(open_record, "breaker") == "DeepSeek_AI"
