from __future__ import annotations

import pytest

import ecolojia_resilience.circuit_breaker.breaker as breaker_mod
from tests.ecolojia_resilience.support.fakes import (
    FakeClock,
    FakeLogger,
    RecordingListener,
)


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Freeze breaker time and let the test advance it explicitly."""
    clock = FakeClock()
    monkeypatch.setattr(breaker_mod, "_utcnow", clock.now)
    return clock


@pytest.fixture
def recording_listener() -> RecordingListener:
    return RecordingListener()
