"""Settings: default thresholds for the resilience primitives.

All settings are loaded from environment variables with the CALLGUARD_
prefix and are frozen once constructed.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from callguard.resilience.circuit_breaker import CircuitBreakerRegistry
from callguard.resilience.retry import RetryPolicy
from callguard.resilience.timeout import TimeoutGuard


class Settings(BaseSettings):
    """callguard configuration.

    All fields can be overridden by environment variables prefixed with
    ``CALLGUARD_``.  For example, ``CALLGUARD_RETRY_MAX_ATTEMPTS=5``
    overrides the default attempt count.
    """

    # ── Service identity ────────────────────────────────────────────
    SERVICE_NAME: str = "callguard"
    SERVICE_VERSION: str = "0.1.0"

    # ── Retry ───────────────────────────────────────────────────────
    RETRY_MAX_ATTEMPTS: int = Field(default=3, ge=1)  # Total attempts incl. the first
    RETRY_BASE_DELAY: float = Field(default=0.5, ge=0.0)  # Seconds after the first failure
    RETRY_BACKOFF_MULTIPLIER: float = Field(default=2.0, ge=1.0)
    RETRY_MAX_DELAY: float = Field(default=30.0, ge=0.0)  # Cap on a single delay

    # ── Circuit breakers ────────────────────────────────────────────
    CIRCUIT_BREAKER_THRESHOLD: int = Field(default=5, ge=1)  # Consecutive failures before OPEN
    CIRCUIT_BREAKER_RECOVERY_SECONDS: float = Field(default=30.0, ge=0.0)  # Seconds before HALF_OPEN probe
    CIRCUIT_BREAKER_HALF_OPEN_MAX: int = Field(default=1, ge=1)  # Concurrent probes allowed

    # ── Timeouts ────────────────────────────────────────────────────
    DEFAULT_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0.0)
    TIMEOUT_CANCEL_ON_EXPIRY: bool = False  # Leave the loser running by default

    model_config = SettingsConfigDict(env_prefix="CALLGUARD_", frozen=True)


def build_retry_policy(settings: Settings) -> RetryPolicy:
    """Build the default ``RetryPolicy`` from Settings."""
    return RetryPolicy(
        max_attempts=settings.RETRY_MAX_ATTEMPTS,
        base_delay=settings.RETRY_BASE_DELAY,
        backoff_multiplier=settings.RETRY_BACKOFF_MULTIPLIER,
        max_delay=settings.RETRY_MAX_DELAY,
    )


def build_breaker_registry(settings: Settings) -> CircuitBreakerRegistry:
    """Build a ``CircuitBreakerRegistry`` sharing the configured thresholds."""
    return CircuitBreakerRegistry(
        failure_threshold=settings.CIRCUIT_BREAKER_THRESHOLD,
        reset_timeout=settings.CIRCUIT_BREAKER_RECOVERY_SECONDS,
        half_open_max=settings.CIRCUIT_BREAKER_HALF_OPEN_MAX,
    )


def build_timeout_guard(settings: Settings, name: str | None = None) -> TimeoutGuard:
    """Build a ``TimeoutGuard`` with the default deadline."""
    return TimeoutGuard(
        settings.DEFAULT_TIMEOUT_SECONDS,
        name=name,
        cancel_on_timeout=settings.TIMEOUT_CANCEL_ON_EXPIRY,
    )
