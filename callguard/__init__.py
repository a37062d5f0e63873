"""callguard: composable call-resilience wrappers for asyncio code."""

import logging

from callguard.core.errors import (
    CallTimeoutError,
    CircuitOpenError,
    FallbackExhaustedError,
    ResilienceError,
    RetryExhaustedError,
)
from callguard.resilience import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
    FallbackChain,
    FeatureRegistry,
    FeatureStatus,
    RetryExecutor,
    RetryPolicy,
    TimeoutGuard,
    protect,
    resilient,
    resolve,
    retry,
    with_timeout,
)

logging.getLogger("callguard").addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    "CallTimeoutError",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitOpenError",
    "CircuitState",
    "FallbackChain",
    "FallbackExhaustedError",
    "FeatureRegistry",
    "FeatureStatus",
    "ResilienceError",
    "RetryExecutor",
    "RetryExhaustedError",
    "RetryPolicy",
    "TimeoutGuard",
    "protect",
    "resilient",
    "resolve",
    "retry",
    "with_timeout",
]
