"""Named registry of circuit breakers, one per protected dependency."""

from collections.abc import Sequence

from ecolojia_resilience.circuit_breaker.breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
)
from ecolojia_resilience.circuit_breaker.events import BreakerListener
from ecolojia_resilience.circuit_breaker.state import BreakerStatus


class CircuitBreakerRegistry:
    """Get-or-create registry sharing a lookup, status and reset surface.

    There is no process-wide instance: applications build one registry at
    startup and pass it to the code that needs breakers.
    """

    def __init__(self, *, listeners: Sequence[BreakerListener] | None = None) -> None:
        """Create an empty registry.

        Args:
            listeners: Listeners attached to every breaker this registry
                creates, ahead of any per-breaker listeners.
        """
        self._breakers: dict[str, CircuitBreaker] = {}
        self._listeners = tuple(listeners) if listeners is not None else ()

    def __contains__(self, name: object) -> bool:
        return name in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)

    def create(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        *,
        listeners: Sequence[BreakerListener] | None = None,
    ) -> CircuitBreaker:
        """Return the breaker registered as ``name``, creating it if needed.

        The first registration wins: ``config`` and ``listeners`` are ignored
        when ``name`` already exists.
        """
        breaker = self._breakers.get(name)
        if breaker is not None:
            return breaker
        breaker = CircuitBreaker(
            name,
            config=config,
            listeners=[*self._listeners, *(listeners or ())],
        )
        self._breakers[name] = breaker
        return breaker

    def get(self, name: str) -> CircuitBreaker | None:
        return self._breakers.get(name)

    def get_all(self) -> list[CircuitBreaker]:
        return list(self._breakers.values())

    def names(self) -> list[str]:
        return list(self._breakers)

    def get_status(self) -> dict[str, BreakerStatus]:
        """Return a status snapshot per registered breaker."""
        return {name: breaker.get_status() for name, breaker in self._breakers.items()}

    def reset(self, name: str) -> None:
        """Reset one breaker. Unknown names are ignored."""
        breaker = self._breakers.get(name)
        if breaker is not None:
            breaker.reset()

    def reset_all(self) -> None:
        for breaker in self._breakers.values():
            breaker.reset()
