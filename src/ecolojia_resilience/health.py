from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from contextlib import suppress
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Protocol, cast

from ecolojia_resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
)
from ecolojia_resilience.settings import ResilienceSettings

REASON_STARTING = "starting"
REASON_HEALTHY = "healthy"
REASON_CIRCUIT_OPEN = "circuit_open"
REASON_DEPENDENCY_UNAVAILABLE = "dependency_unavailable"
REASON_CHECK_FAILED = "check_failed"
_logger = logging.getLogger(__name__)

HealthCheck = Callable[[], Awaitable["CheckResult"]]
BoolCheck = Callable[[], bool] | Callable[[], Awaitable[bool]]


@dataclass(frozen=True)
class CheckResult:
    """Result of one dependency health check."""

    name: str
    ok: bool
    reason: str | None = None
    detail: str = ""
    data: Mapping[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Freeze check metadata mapping to keep snapshots read-only."""
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))


@dataclass(frozen=True)
class HealthSnapshot:
    """Immutable snapshot of overall health and per-check outcomes."""

    status: str
    healthy: bool
    reason: str
    detail: str
    last_checked_at: float
    check_results: tuple[CheckResult, ...]

    def get_check_result(self, name: str) -> CheckResult | None:
        for result in self.check_results:
            if result.name == name:
                return result
        return None


class SnapshotCallback(Protocol):
    """Callback fired whenever a health snapshot is refreshed."""

    def __call__(
        self,
        previous: HealthSnapshot | None,
        current: HealthSnapshot,
        *,
        source: str,
    ) -> None:
        """Handle a health snapshot transition."""


def build_starting_snapshot(
    check_names: Sequence[str],
    *,
    now_fn: Callable[[], float] = time.time,
) -> HealthSnapshot:
    """Build the snapshot reported before the first evaluation."""
    detail = "Health checks have not completed yet."
    return HealthSnapshot(
        status="degraded",
        healthy=False,
        reason=REASON_STARTING,
        detail=detail,
        last_checked_at=now_fn(),
        check_results=tuple(
            CheckResult(name=name, ok=False, reason=REASON_STARTING, detail=detail)
            for name in check_names
        ),
    )


def make_breaker_check(
    breaker: CircuitBreaker,
    *,
    open_is_failure: bool = True,
) -> HealthCheck:
    """Build a check reporting a breaker's status.

    The check fails while the breaker is ``OPEN`` unless ``open_is_failure``
    is false, in which case an open breaker is reported but stays healthy
    (the caller serves degraded results through fallbacks).
    """

    async def _check() -> CheckResult:
        status = breaker.get_status()
        data = status.as_dict()
        if status.state != CircuitState.OPEN or not open_is_failure:
            return CheckResult(
                name=breaker.name,
                ok=True,
                detail=f"state={status.state}",
                data=data,
            )
        retry_at = status.next_attempt_at
        return CheckResult(
            name=breaker.name,
            ok=False,
            reason=REASON_CIRCUIT_OPEN,
            detail=(
                f"state={status.state} "
                f"retry_at={'' if retry_at is None else retry_at.isoformat()}"
            ),
            data=data,
        )

    _check.__name__ = breaker.name
    return _check


def make_registry_checks(
    registry: CircuitBreakerRegistry,
    *,
    open_is_failure: bool = True,
) -> tuple[HealthCheck, ...]:
    """Build one breaker check per breaker currently in ``registry``."""
    return tuple(
        make_breaker_check(breaker, open_is_failure=open_is_failure)
        for breaker in registry.get_all()
    )


async def _resolve_bool_check(check: BoolCheck) -> bool:
    result = check()
    if inspect.isawaitable(result):
        awaited = await cast(Awaitable[object], result)
        return bool(awaited)
    return bool(result)


def make_callable_check(
    *,
    name: str,
    check: BoolCheck,
    reason_when_false: str,
    detail_when_false: str,
) -> HealthCheck:
    """Build a health check from a sync/async boolean callable."""

    async def _check() -> CheckResult:
        try:
            ok = await _resolve_bool_check(check)
        except Exception as exc:
            return CheckResult(
                name=name,
                ok=False,
                reason=REASON_CHECK_FAILED,
                detail=f"{exc.__class__.__name__}: {exc}",
            )
        if ok:
            return CheckResult(name=name, ok=True)
        return CheckResult(
            name=name,
            ok=False,
            reason=reason_when_false,
            detail=detail_when_false,
        )

    _check.__name__ = name
    return _check


async def evaluate_health_once(
    *,
    checks: Sequence[HealthCheck],
    previous: HealthSnapshot | None,
    source: str,
    now_fn: Callable[[], float] = time.time,
    on_snapshot: SnapshotCallback | None = None,
) -> HealthSnapshot:
    """Evaluate all health checks once and return a new snapshot.

    A raising check is reported as failed. Snapshot callback errors are
    logged and suppressed.
    """
    results: list[CheckResult] = []
    for check in checks:
        try:
            results.append(await check())
        except Exception as exc:
            results.append(
                CheckResult(
                    name=getattr(check, "__name__", "unnamed_check"),
                    ok=False,
                    reason=REASON_CHECK_FAILED,
                    detail=f"{exc.__class__.__name__}: {exc}",
                )
            )

    healthy = all(result.ok for result in results)
    reason = REASON_HEALTHY
    detail = ""
    if not healthy:
        first_failure = next(result for result in results if not result.ok)
        reason = first_failure.reason or REASON_DEPENDENCY_UNAVAILABLE
        detail = first_failure.detail

    snapshot = HealthSnapshot(
        status="ok" if healthy else "degraded",
        healthy=healthy,
        reason=reason,
        detail=detail,
        last_checked_at=now_fn(),
        check_results=tuple(results),
    )
    if on_snapshot is not None:
        try:
            on_snapshot(previous, snapshot, source=source)
        except Exception:
            _logger.warning(
                "Health snapshot callback failed; continuing",
                exc_info=True,
                extra={
                    "source": source,
                    "healthy": snapshot.healthy,
                    "reason": snapshot.reason,
                },
            )
    return snapshot


class HealthMonitor:
    """Cache health state, refreshed on demand or by a background task.

    With a ``registry``, every evaluation checks the breakers registered at
    that moment, so breakers created after the monitor are covered too.
    """

    def __init__(
        self,
        *,
        checks: Sequence[HealthCheck] = (),
        interval_seconds: float,
        on_snapshot: SnapshotCallback | None = None,
        registry: CircuitBreakerRegistry | None = None,
        open_is_failure: bool = True,
    ) -> None:
        """Initialize monitor state and polling configuration.

        Raises:
            ValueError: If neither checks nor a registry are provided.
        """
        resolved_checks = tuple(checks)
        if not resolved_checks and registry is None:
            raise ValueError("At least one health check is required.")
        self._checks = resolved_checks
        self._registry = registry
        self._open_is_failure = open_is_failure
        self._interval_seconds = max(interval_seconds, 0.01)
        self._on_snapshot = on_snapshot
        check_names = tuple(
            getattr(check, "__name__", "unnamed_check")
            for check in self._current_checks()
        )
        self._snapshot = build_starting_snapshot(check_names)
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @classmethod
    def for_registry(
        cls,
        registry: CircuitBreakerRegistry,
        *,
        interval_seconds: float,
        settings: ResilienceSettings | None = None,
        on_snapshot: SnapshotCallback | None = None,
    ) -> HealthMonitor:
        """Monitor every breaker in ``registry``, including ones added later."""
        resolved = ResilienceSettings() if settings is None else settings
        return cls(
            interval_seconds=interval_seconds,
            on_snapshot=on_snapshot,
            registry=registry,
            open_is_failure=resolved.health_open_is_degraded,
        )

    def _current_checks(self) -> tuple[HealthCheck, ...]:
        if self._registry is None:
            return self._checks
        return self._checks + make_registry_checks(
            self._registry,
            open_is_failure=self._open_is_failure,
        )

    @property
    def snapshot(self) -> HealthSnapshot:
        return self._snapshot

    async def evaluate_once(self, *, source: str) -> HealthSnapshot:
        """Evaluate all checks once and update the cached snapshot."""
        self._snapshot = await evaluate_health_once(
            checks=self._current_checks(),
            previous=self._snapshot,
            source=source,
            on_snapshot=self._on_snapshot,
        )
        return self._snapshot

    async def _background_loop(self) -> None:
        while not self._stop_event.is_set():
            await self.evaluate_once(source="background")
            with suppress(TimeoutError):
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._interval_seconds,
                )

    async def start_background(self) -> None:
        """Start background evaluation if not already running."""
        if self._task is not None and not self._task.done():
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._background_loop(), name="health-monitor")

    async def stop_background(self) -> None:
        """Stop background evaluation and await task completion."""
        self._stop_event.set()
        task = self._task
        if task is None:
            return
        try:
            await asyncio.wait_for(task, timeout=self._interval_seconds + 5.0)
        except TimeoutError:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        self._task = None
