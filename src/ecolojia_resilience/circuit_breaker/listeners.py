from __future__ import annotations

import logging

import structlog

from ecolojia_resilience.circuit_breaker.events import BreakerEvent, BreakerEventType
from ecolojia_resilience.logging import (
    StructuredLogger,
    log_error,
    log_info,
    log_warning,
)


class LoggingBreakerListener:
    """Log breaker events as structured ``circuit_breaker.*`` events."""

    def __init__(
        self,
        logger: StructuredLogger | logging.Logger | None = None,
        *,
        verbose: bool = False,
    ) -> None:
        """Create a logging listener.

        Args:
            logger: Target logger. Defaults to a structlog logger named after
                this module.
            verbose: Also log ``success`` and ``stateChange`` events.
        """
        self._logger = structlog.get_logger(__name__) if logger is None else logger
        self._verbose = verbose

    def on_event(self, event: BreakerEvent) -> None:
        fields: dict[str, object] = {
            "breaker": event.breaker_name,
            "state": str(event.state),
        }
        if event.type == BreakerEventType.OPEN:
            retry_at = event.next_attempt_at
            log_error(
                self._logger,
                "circuit_breaker.open",
                retry_at=None if retry_at is None else retry_at.isoformat(),
                previous_state=str(event.previous_state),
                recent_error_rate=round(event.status.recent_error_rate, 2),
                **fields,
            )
        elif event.type == BreakerEventType.HALF_OPEN:
            log_info(self._logger, "circuit_breaker.half_open", **fields)
        elif event.type == BreakerEventType.CLOSE:
            log_info(self._logger, "circuit_breaker.closed", **fields)
        elif event.type == BreakerEventType.FAILURE:
            log_warning(
                self._logger,
                "circuit_breaker.failure",
                error_type=type(event.error).__name__,
                error=str(event.error),
                consecutive_failures=event.status.metrics.consecutive_failures,
                **fields,
            )
        elif event.type == BreakerEventType.FALLBACK:
            if event.success:
                log_warning(
                    self._logger,
                    "circuit_breaker.fallback",
                    reason=event.reason,
                    **fields,
                )
            else:
                log_error(
                    self._logger,
                    "circuit_breaker.fallback_failed",
                    reason=event.reason,
                    error_type=type(event.error).__name__,
                    error=str(event.error),
                    **fields,
                )
        elif event.type == BreakerEventType.RESET:
            log_info(self._logger, "circuit_breaker.reset", **fields)
        elif self._verbose:
            log_info(self._logger, f"circuit_breaker.{event.type}", **fields)
