"""Core circuit breaker implementation."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from contextlib import suppress
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import partial
from typing import Any, ParamSpec, TypeVar

from ecolojia_resilience.circuit_breaker.events import (
    BreakerEvent,
    BreakerEventType,
    BreakerListener,
    CallbackListener,
    FallbackReason,
)
from ecolojia_resilience.circuit_breaker.exceptions import (
    CircuitOpenError,
    CircuitTimeoutError,
)
from ecolojia_resilience.circuit_breaker.state import (
    BreakerMetrics,
    BreakerStatus,
    CircuitState,
    StateChange,
)
from ecolojia_resilience.circuit_breaker.window import SlidingWindow

T = TypeVar("T")
P = ParamSpec("P")

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _callable_name(func: object) -> str:
    name = getattr(func, "__qualname__", None)
    if name is None:
        name = getattr(func, "__name__", None)
    if name is None:
        name = func.__class__.__qualname__
    return str(name)


@dataclass(frozen=True, slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        timeout: Seconds an operation may run before it counts as a failure.
        error_threshold: Consecutive failures while ``CLOSED`` before opening.
        success_threshold: Consecutive successes while ``HALF_OPEN`` before
            closing.
        reset_timeout: Seconds to wait while ``OPEN`` before allowing probes.
        volume_threshold: Minimum outcomes in the sliding window before the
            error percentage is considered.
        error_percentage_threshold: Windowed failure percentage (0-100) that
            opens the circuit once ``volume_threshold`` is met.
        window: Sliding window length in seconds.
        expected_exceptions: Exceptions that count as failures.
        excluded_exceptions: Exceptions that must not count as failures.
        cancel_on_timeout: Cancel the operation when the timeout wins instead
            of leaving it to settle in the background.
    """

    timeout: float = 5.0
    error_threshold: int = 5
    success_threshold: int = 2
    reset_timeout: float = 60.0
    volume_threshold: int = 10
    error_percentage_threshold: float = 50.0
    window: float = 60.0
    expected_exceptions: tuple[type[Exception], ...] = (Exception,)
    excluded_exceptions: tuple[type[Exception], ...] = ()
    cancel_on_timeout: bool = False

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")
        if self.error_threshold < 1:
            raise ValueError("error_threshold must be >= 1")
        if self.success_threshold < 1:
            raise ValueError("success_threshold must be >= 1")
        if self.reset_timeout < 0:
            raise ValueError("reset_timeout must be >= 0")
        if self.volume_threshold < 1:
            raise ValueError("volume_threshold must be >= 1")
        if not 0 <= self.error_percentage_threshold <= 100:
            raise ValueError("error_percentage_threshold must be between 0 and 100")
        if self.window <= 0:
            raise ValueError("window must be > 0")


class CircuitBreaker:
    """Stateful proxy around a dangerous async operation.

    All bookkeeping runs synchronously between awaits, so concurrent
    ``execute`` calls on one breaker interleave only while the guarded
    operation or a fallback is pending.
    """

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        listeners: Sequence[BreakerListener] | None = None,
    ) -> None:
        """Build a circuit breaker.

        Args:
            name: Breaker name used for registry lookup and observability.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            listeners: Optional listeners receiving breaker events.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._listeners: list[BreakerListener] = (
            list(listeners) if listeners is not None else []
        )
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._consecutive_successes = 0
        self._next_attempt_at = _utcnow()
        self._window = SlidingWindow(self.config.window)
        self._late_tasks: set[asyncio.Future[Any]] = set()

        self._total_requests = 0
        self._total_failures = 0
        self._total_successes = 0
        self._total_timeouts = 0
        self._total_rejections = 0
        self._last_failure_at: datetime | None = None
        self._last_success_at: datetime | None = None
        self._state_changes: list[StateChange] = []

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def consecutive_successes(self) -> int:
        return self._consecutive_successes

    @property
    def next_attempt_at(self) -> datetime:
        return self._next_attempt_at

    @property
    def recent_request_count(self) -> int:
        return len(self._window.recent(_utcnow()))

    @property
    def recent_error_rate(self) -> float:
        return self._window.error_rate(_utcnow())

    def add_listener(self, listener: BreakerListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: BreakerListener) -> None:
        with suppress(ValueError):
            self._listeners.remove(listener)

    def on(
        self,
        event_type: BreakerEventType,
        callback: Callable[[BreakerEvent], None],
    ) -> Callable[[], None]:
        """Register ``callback`` for one event type.

        Returns:
            A zero-argument function removing the registration.
        """
        listener = CallbackListener(callback, event_type)
        self.add_listener(listener)
        return partial(self.remove_listener, listener)

    def _emit(
        self,
        event_type: BreakerEventType,
        *,
        previous_state: CircuitState | None = None,
        error: BaseException | None = None,
        success: bool | None = None,
        reason: FallbackReason | None = None,
        next_attempt_at: datetime | None = None,
    ) -> None:
        if not self._listeners:
            return
        event = BreakerEvent(
            type=event_type,
            breaker_name=self.name,
            state=self._state,
            status=self.get_status(),
            previous_state=previous_state,
            error=error,
            success=success,
            reason=reason,
            next_attempt_at=next_attempt_at,
        )
        for listener in tuple(self._listeners):
            try:
                listener.on_event(event)
            except Exception:
                _logger.warning(
                    "Circuit breaker listener failed; continuing",
                    exc_info=True,
                    extra={"breaker": self.name, "event": str(event_type)},
                )

    async def call(
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke ``func(*args, **kwargs)`` under breaker protection."""
        return await self.execute(partial(func, *args, **kwargs))

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        fallback: Callable[[], Awaitable[T]] | None = None,
    ) -> T:
        """Run ``operation`` if the circuit allows it.

        Args:
            operation: Zero-argument async callable to guard.
            fallback: Optional zero-argument async callable used when the
                circuit rejects the call, or when the operation fails and the
                circuit is left ``OPEN``.

        Returns:
            The operation's result, or the fallback's result when it ran.

        Raises:
            CircuitOpenError: When the circuit rejects the call and no
                fallback is given.
            CircuitTimeoutError: When the operation exceeds ``timeout`` and
                no fallback applies.
            Exception: The operation's own error when no fallback applies, or
                the fallback's own error.
        """
        if not self.can_attempt():
            self._total_requests += 1
            self._total_rejections += 1
            if fallback is not None:
                return await self.execute_fallback(fallback, reason="rejected")
            raise CircuitOpenError(
                self.name,
                retry_after=self._retry_after(_utcnow()),
                status=self.get_status(),
            )

        try:
            result = await self._run_with_timeout(operation)
        except CircuitTimeoutError as exc:
            return await self._handle_failure(exc, fallback)
        except self.config.excluded_exceptions:
            raise
        except self.config.expected_exceptions as exc:
            return await self._handle_failure(exc, fallback)

        self.on_success()
        return result

    async def _handle_failure(
        self,
        error: Exception,
        fallback: Callable[[], Awaitable[T]] | None,
    ) -> T:
        self.on_failure(error)
        if fallback is not None and self._state == CircuitState.OPEN:
            return await self.execute_fallback(fallback, reason="failed")
        raise error

    async def _run_with_timeout(self, operation: Callable[[], Awaitable[T]]) -> T:
        task = asyncio.ensure_future(operation())
        if isinstance(task, asyncio.Task):
            task.set_name(f"circuit_breaker:{self.name}:{_callable_name(operation)}")

        try:
            done, _ = await asyncio.wait({task}, timeout=self.config.timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            return task.result()

        if self.config.cancel_on_timeout:
            task.cancel()
        else:
            # The late outcome is discarded; keep a reference until it settles.
            self._late_tasks.add(task)
            task.add_done_callback(self._discard_late_outcome)
        raise CircuitTimeoutError(self.name, self.config.timeout)

    def _discard_late_outcome(self, task: asyncio.Future[Any]) -> None:
        self._late_tasks.discard(task)
        with suppress(asyncio.CancelledError, Exception):
            task.exception()

    async def execute_fallback(
        self,
        fallback: Callable[[], Awaitable[T]],
        *,
        reason: FallbackReason = "rejected",
    ) -> T:
        """Run ``fallback`` once and publish its outcome.

        The fallback's own error is re-raised; it is never retried.
        """
        try:
            result = await fallback()
        except Exception as exc:
            self._emit(
                BreakerEventType.FALLBACK,
                error=exc,
                success=False,
                reason=reason,
            )
            raise
        self._emit(BreakerEventType.FALLBACK, success=True, reason=reason)
        return result

    def can_attempt(self) -> bool:
        """Return whether the guarded operation may run now.

        An ``OPEN`` breaker whose cool-down has elapsed moves to ``HALF_OPEN``.
        """
        if self._state in (CircuitState.CLOSED, CircuitState.HALF_OPEN):
            return True
        if _utcnow() >= self._next_attempt_at:
            self._transition_to(CircuitState.HALF_OPEN)
            return True
        return False

    def on_success(self) -> None:
        """Record one successful operation."""
        now = _utcnow()
        self._total_requests += 1
        self._total_successes += 1
        self._consecutive_successes += 1
        self._consecutive_failures = 0
        self._last_success_at = now
        self._window.record(True, now)

        if (
            self._state == CircuitState.HALF_OPEN
            and self._consecutive_successes >= self.config.success_threshold
        ):
            self._transition_to(CircuitState.CLOSED)

        self._emit(BreakerEventType.SUCCESS)

    def on_failure(self, error: BaseException) -> None:
        """Record one failed operation and open the circuit when warranted."""
        now = _utcnow()
        self._total_requests += 1
        self._total_failures += 1
        self._consecutive_failures += 1
        self._consecutive_successes = 0
        self._last_failure_at = now
        if isinstance(error, CircuitTimeoutError):
            self._total_timeouts += 1
        self._window.record(False, now)

        if self._state == CircuitState.CLOSED:
            if self.should_open_circuit():
                self._transition_to(CircuitState.OPEN)
        elif self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.OPEN)

        self._emit(BreakerEventType.FAILURE, error=error)

    def should_open_circuit(self) -> bool:
        """Return true on too many consecutive or too many recent failures."""
        if self._consecutive_failures >= self.config.error_threshold:
            return True
        now = _utcnow()
        if len(self._window.recent(now)) >= self.config.volume_threshold:
            return (
                self._window.error_rate(now) >= self.config.error_percentage_threshold
            )
        return False

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        now = _utcnow()
        self._state_changes.append(
            StateChange(
                from_state=old_state,
                to_state=new_state,
                timestamp=now,
                failures=self._consecutive_failures,
                successes=self._consecutive_successes,
                error_rate=self._window.error_rate(now),
            )
        )
        self._state = new_state

        if new_state == CircuitState.OPEN:
            self._next_attempt_at = now + timedelta(seconds=self.config.reset_timeout)
            self._emit(
                BreakerEventType.OPEN,
                previous_state=old_state,
                next_attempt_at=self._next_attempt_at,
            )
        elif new_state == CircuitState.HALF_OPEN:
            self._consecutive_failures = 0
            self._consecutive_successes = 0
            self._emit(BreakerEventType.HALF_OPEN, previous_state=old_state)
        else:
            self._consecutive_failures = 0
            self._consecutive_successes = 0
            self._emit(BreakerEventType.CLOSE, previous_state=old_state)

        self._emit(BreakerEventType.STATE_CHANGE, previous_state=old_state)

    def _retry_after(self, now: datetime) -> float:
        return max((self._next_attempt_at - now).total_seconds(), 0.0)

    def get_metrics(self) -> BreakerMetrics:
        return BreakerMetrics(
            total_requests=self._total_requests,
            total_failures=self._total_failures,
            total_successes=self._total_successes,
            total_timeouts=self._total_timeouts,
            total_rejections=self._total_rejections,
            consecutive_failures=self._consecutive_failures,
            consecutive_successes=self._consecutive_successes,
            last_failure_at=self._last_failure_at,
            last_success_at=self._last_success_at,
            state_changes=tuple(self._state_changes),
        )

    def get_status(self) -> BreakerStatus:
        """Return the current state, probe time and metrics snapshot."""
        now = _utcnow()
        return BreakerStatus(
            name=self.name,
            state=self._state,
            next_attempt_at=(
                self._next_attempt_at if self._state == CircuitState.OPEN else None
            ),
            metrics=self.get_metrics(),
            recent_request_count=len(self._window.recent(now)),
            recent_error_rate=self._window.error_rate(now),
        )

    def reset(self) -> None:
        """Return to ``CLOSED`` with empty counters and window.

        Configuration and cumulative totals are kept.
        """
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._consecutive_successes = 0
        self._next_attempt_at = _utcnow()
        self._window.clear()
        self._emit(BreakerEventType.RESET)

    def force_open(self) -> None:
        self._transition_to(CircuitState.OPEN)

    def force_closed(self) -> None:
        self._transition_to(CircuitState.CLOSED)
