"""Framework-agnostic async circuit breaker.

This package implements the circuit breaker pattern from *Release It!* for
the backend's remote dependencies (AI chat, product databases, payments).

Key behavior notes:
  - The circuit opens on either trigger: ``error_threshold`` consecutive
    failures, or an error percentage over ``error_percentage_threshold``
    inside the sliding window once ``volume_threshold`` outcomes are present.
  - ``HALF_OPEN`` admits calls; ``success_threshold`` consecutive successes
    close the circuit and any failure reopens it with a fresh cool-down.
  - A timed-out operation is not cancelled unless ``cancel_on_timeout`` is
    set; its late result is discarded.
  - A fallback runs at most once per call and its own error propagates.
"""

from ecolojia_resilience.circuit_breaker.breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
)
from ecolojia_resilience.circuit_breaker.events import (
    BreakerEvent,
    BreakerEventType,
    BreakerListener,
)
from ecolojia_resilience.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
    CircuitTimeoutError,
)
from ecolojia_resilience.circuit_breaker.listeners import LoggingBreakerListener
from ecolojia_resilience.circuit_breaker.registry import CircuitBreakerRegistry
from ecolojia_resilience.circuit_breaker.state import (
    BreakerMetrics,
    BreakerStatus,
    CircuitState,
    StateChange,
)
from ecolojia_resilience.circuit_breaker.window import SlidingWindow

__all__ = [
    "BreakerEvent",
    "BreakerEventType",
    "BreakerListener",
    "BreakerMetrics",
    "BreakerStatus",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitBreakerRegistry",
    "CircuitOpenError",
    "CircuitState",
    "CircuitTimeoutError",
    "LoggingBreakerListener",
    "SlidingWindow",
    "StateChange",
]
