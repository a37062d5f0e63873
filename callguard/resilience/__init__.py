"""Resilience patterns: timeout, retry, circuit breaker, fallback, degradation.

Composable wrappers that protect a caller from an unreliable downstream
dependency.  Each wrapper takes a nullary operation and either returns its
result or fails with an annotated ``callguard.core.errors`` error.
"""

from callguard.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
)
from callguard.resilience.compose import build, protect, resilient
from callguard.resilience.degradation import FeatureEntry, FeatureRegistry, FeatureStatus
from callguard.resilience.fallback import FallbackChain, resolve
from callguard.resilience.operation import Operation
from callguard.resilience.retry import (
    RetryExecutor,
    RetryPolicy,
    is_transient,
    retry,
    retry_everything,
)
from callguard.resilience.timeout import TimeoutGuard, with_timeout

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "FallbackChain",
    "FeatureEntry",
    "FeatureRegistry",
    "FeatureStatus",
    "Operation",
    "RetryExecutor",
    "RetryPolicy",
    "TimeoutGuard",
    "build",
    "is_transient",
    "protect",
    "resilient",
    "resolve",
    "retry",
    "retry_everything",
    "with_timeout",
]
