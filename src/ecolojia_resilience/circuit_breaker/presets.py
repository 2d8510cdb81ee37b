"""Breaker presets for the backend's remote dependencies."""

from __future__ import annotations

import logging

from ecolojia_resilience.circuit_breaker.breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
)
from ecolojia_resilience.circuit_breaker.listeners import LoggingBreakerListener
from ecolojia_resilience.circuit_breaker.registry import CircuitBreakerRegistry
from ecolojia_resilience.logging import StructuredLogger

AI_CHAT_BREAKER_NAME = "DeepSeek_AI"

AI_CHAT_BREAKER_CONFIG = CircuitBreakerConfig(
    timeout=10.0,
    error_threshold=3,
    success_threshold=2,
    reset_timeout=30.0,
    volume_threshold=5,
    error_percentage_threshold=60.0,
)


def create_ai_chat_breaker(
    registry: CircuitBreakerRegistry,
    *,
    logger: StructuredLogger | logging.Logger | None = None,
) -> CircuitBreaker:
    """Register (or fetch) the AI chat breaker with transition logging."""
    return registry.create(
        AI_CHAT_BREAKER_NAME,
        AI_CHAT_BREAKER_CONFIG,
        listeners=[LoggingBreakerListener(logger)],
    )
