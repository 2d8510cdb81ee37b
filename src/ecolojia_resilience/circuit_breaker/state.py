"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True, slots=True)
class StateChange:
    """One recorded transition with the counters observed at transition time.

    Attributes:
        from_state: State the breaker left.
        to_state: State the breaker entered.
        timestamp: When the transition happened.
        failures: Consecutive failures before the transition.
        successes: Consecutive successes before the transition.
        error_rate: Windowed error rate (percent) at transition time.
    """

    from_state: CircuitState
    to_state: CircuitState
    timestamp: datetime
    failures: int
    successes: int
    error_rate: float


@dataclass(frozen=True, slots=True)
class BreakerMetrics:
    """Cumulative counters for one breaker since construction."""

    total_requests: int = 0
    total_failures: int = 0
    total_successes: int = 0
    total_timeouts: int = 0
    total_rejections: int = 0
    consecutive_failures: int = 0
    consecutive_successes: int = 0
    last_failure_at: datetime | None = None
    last_success_at: datetime | None = None
    state_changes: tuple[StateChange, ...] = ()


def _isoformat(value: datetime | None) -> str | None:
    return None if value is None else value.isoformat()


@dataclass(frozen=True, slots=True)
class BreakerStatus:
    """Point-in-time view of a breaker, suitable for health reporting.

    Attributes:
        name: Breaker name.
        state: Current state.
        next_attempt_at: When an ``OPEN`` breaker may probe again. ``None``
            unless the breaker is ``OPEN``.
        metrics: Cumulative metrics snapshot.
        recent_request_count: Outcomes currently inside the sliding window.
        recent_error_rate: Failure percentage over the sliding window.
    """

    name: str
    state: CircuitState
    next_attempt_at: datetime | None
    metrics: BreakerMetrics
    recent_request_count: int
    recent_error_rate: float

    def as_dict(self) -> dict[str, object]:
        """Render a JSON-friendly mapping for health endpoints."""
        metrics = self.metrics
        return {
            "name": self.name,
            "state": str(self.state),
            "next_attempt_at": _isoformat(self.next_attempt_at),
            "metrics": {
                "total_requests": metrics.total_requests,
                "total_failures": metrics.total_failures,
                "total_successes": metrics.total_successes,
                "total_timeouts": metrics.total_timeouts,
                "total_rejections": metrics.total_rejections,
                "consecutive_failures": metrics.consecutive_failures,
                "consecutive_successes": metrics.consecutive_successes,
                "last_failure_at": _isoformat(metrics.last_failure_at),
                "last_success_at": _isoformat(metrics.last_success_at),
                "state_changes": [
                    {
                        "from": str(change.from_state),
                        "to": str(change.to_state),
                        "timestamp": change.timestamp.isoformat(),
                        "failures": change.failures,
                        "successes": change.successes,
                        "error_rate": round(change.error_rate, 2),
                    }
                    for change in metrics.state_changes
                ],
                "recent_request_count": self.recent_request_count,
                "recent_error_rate": f"{self.recent_error_rate:.2f}%",
            },
        }
