"""Observability hooks for circuit breakers."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Literal, Protocol

from ecolojia_resilience.circuit_breaker.state import BreakerStatus, CircuitState

FallbackReason = Literal["rejected", "failed"]


class BreakerEventType(StrEnum):
    """Event names published by a breaker."""

    SUCCESS = "success"
    FAILURE = "failure"
    OPEN = "open"
    HALF_OPEN = "halfOpen"
    CLOSE = "close"
    STATE_CHANGE = "stateChange"
    FALLBACK = "fallback"
    RESET = "reset"


@dataclass(frozen=True, slots=True)
class BreakerEvent:
    """One published breaker event.

    Attributes:
        type: Event name.
        breaker_name: Name of the publishing breaker.
        state: Breaker state once the event's bookkeeping completed.
        status: Full status snapshot at publication time.
        previous_state: Prior state, for transition events.
        error: Failure cause, for ``failure`` and failed ``fallback`` events.
        success: Fallback outcome, for ``fallback`` events.
        reason: Why the fallback ran, for ``fallback`` events.
        next_attempt_at: Probe time, for ``open`` events.
    """

    type: BreakerEventType
    breaker_name: str
    state: CircuitState
    status: BreakerStatus
    previous_state: CircuitState | None = None
    error: BaseException | None = None
    success: bool | None = None
    reason: FallbackReason | None = None
    next_attempt_at: datetime | None = None


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        Listeners run synchronously inside the breaker's bookkeeping, so they
        must not block. Exceptions raised by a listener are logged and do not
        affect the breaker or the other listeners.
    """

    def on_event(self, event: BreakerEvent) -> None:
        """Handle one breaker event."""


class CallbackListener:
    """Adapt a plain callback, optionally filtered by event type."""

    def __init__(
        self,
        callback: Callable[[BreakerEvent], None],
        event_type: BreakerEventType | None = None,
    ) -> None:
        self._callback = callback
        self._event_type = event_type

    def on_event(self, event: BreakerEvent) -> None:
        if self._event_type is not None and event.type != self._event_type:
            return
        self._callback(event)
