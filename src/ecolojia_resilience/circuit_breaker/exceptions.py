"""Circuit breaker exceptions.

Callers can distinguish between:
  - A call being rejected because the circuit is open.
  - A guarded operation exceeding the breaker timeout.

Errors raised by the guarded operation or by a fallback are never wrapped;
they propagate unchanged.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecolojia_resilience.circuit_breaker.state import BreakerStatus

CIRCUIT_OPEN = "CIRCUIT_OPEN"
TIMEOUT = "TIMEOUT"


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package.

    Attributes:
        breaker_name: Name of the breaker raising the error.
        code: Stable machine-readable error kind.
    """

    code: str = "CIRCUIT_BREAKER_ERROR"

    def __init__(self, breaker_name: str, message: str) -> None:
        self.breaker_name = breaker_name
        super().__init__(message)


class CircuitOpenError(CircuitBreakerError):
    """Raised when a call is rejected because the circuit is open.

    Attributes:
        breaker_name: Name of the breaker rejecting the call.
        retry_after: Seconds until a half-open probe may be attempted.
        status: Breaker status captured when the call was rejected.
        http_status: Status an HTTP layer should answer with.
    """

    code = CIRCUIT_OPEN
    http_status = 503

    def __init__(
        self,
        breaker_name: str,
        retry_after: float,
        status: BreakerStatus | None = None,
    ) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            breaker_name: Breaker rejecting the call.
            retry_after: Seconds until the next probe window opens.
            status: Optional status snapshot for the caller.
        """
        self.retry_after = retry_after
        self.status = status
        super().__init__(
            breaker_name,
            f"circuit_open: {breaker_name} retry_after={retry_after:g}s",
        )


class CircuitTimeoutError(CircuitBreakerError, TimeoutError):
    """Raised when a guarded operation does not settle within the timeout."""

    code = TIMEOUT

    def __init__(self, breaker_name: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(
            breaker_name,
            f"operation_timeout: {breaker_name} timeout={timeout:g}s",
        )
