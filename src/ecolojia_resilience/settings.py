from __future__ import annotations

import re

import structlog

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ecolojia_resilience.circuit_breaker.breaker import CircuitBreakerConfig
from ecolojia_resilience.logging import configure_structlog, get_log_level_value

BREAKER_ENV_PREFIX = "ECOLOJIA_BREAKER_"


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


def breaker_env_prefix(name: str) -> str:
    """Return the env prefix for one named breaker, e.g. ``DeepSeek_AI``."""
    normalized = re.sub(r"[^0-9A-Za-z]+", "_", name).strip("_").upper()
    if not normalized:
        raise ValueError("breaker name must contain at least one alphanumeric")
    return f"{BREAKER_ENV_PREFIX}{normalized}_"


class BreakerSettings(BaseSettings):
    """Environment-driven circuit breaker configuration."""

    model_config = prefixed_settings_config(BREAKER_ENV_PREFIX)

    timeout: float = 5.0
    error_threshold: int = 5
    success_threshold: int = 2
    reset_timeout: float = 60.0
    volume_threshold: int = 10
    error_percentage_threshold: float = 50.0
    window: float = 60.0
    cancel_on_timeout: bool = False

    @field_validator("timeout", "window")
    @classmethod
    def _validate_positive_seconds(cls, value: float, info: ValidationInfo) -> float:
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("reset_timeout")
    @classmethod
    def _validate_reset_timeout(cls, value: float) -> float:
        if value < 0:
            raise ValueError("reset_timeout must be >= 0")
        return value

    @field_validator("error_threshold", "success_threshold", "volume_threshold")
    @classmethod
    def _validate_counts(cls, value: int, info: ValidationInfo) -> int:
        if value < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return value

    @field_validator("error_percentage_threshold")
    @classmethod
    def _validate_percentage(cls, value: float) -> float:
        if not 0 <= value <= 100:
            raise ValueError("error_percentage_threshold must be between 0 and 100")
        return value

    @classmethod
    def for_breaker(cls, name: str) -> BreakerSettings:
        """Load settings from ``ECOLOJIA_BREAKER_<NAME>_*`` variables."""
        return cls(_env_prefix=breaker_env_prefix(name))

    def to_config(
        self,
        *,
        expected_exceptions: tuple[type[Exception], ...] = (Exception,),
        excluded_exceptions: tuple[type[Exception], ...] = (),
    ) -> CircuitBreakerConfig:
        """Build a breaker config; exception filters are code-only options."""
        return CircuitBreakerConfig(
            timeout=self.timeout,
            error_threshold=self.error_threshold,
            success_threshold=self.success_threshold,
            reset_timeout=self.reset_timeout,
            volume_threshold=self.volume_threshold,
            error_percentage_threshold=self.error_percentage_threshold,
            window=self.window,
            expected_exceptions=expected_exceptions,
            excluded_exceptions=excluded_exceptions,
            cancel_on_timeout=self.cancel_on_timeout,
        )


class ResilienceSettings(BaseSettings):
    """Process-wide settings for logging and health reporting."""

    model_config = prefixed_settings_config("ECOLOJIA_")

    log_level: str = "INFO"
    health_open_is_degraded: bool = True

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            get_log_level_value(value)
            return value.strip().upper()
        return value

    def configure_logging(self) -> structlog.stdlib.BoundLogger:
        """Configure structlog at ``log_level`` and return the root logger."""
        return configure_structlog(log_level=self.log_level)
