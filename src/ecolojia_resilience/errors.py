"""Shared error types for ecolojia_resilience."""


class TransientError(RuntimeError):
    """Generic retry-safe transient dependency failure."""
