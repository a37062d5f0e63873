"""Retry with exponential backoff.

Attempts are numbered ``1..max_attempts``.  After a failed attempt *k*
(and only if *k* < ``max_attempts``) the executor sleeps for::

    base_delay * backoff_multiplier ** (k - 1)      (capped at max_delay)

before trying again.  Only errors the ``is_retriable`` predicate accepts
are retried; anything else is re-raised at once, annotated with the
attempt it happened on.  When every attempt fails the executor raises
``RetryExhaustedError`` carrying the attempt count, the elapsed time and
the last underlying error.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx

from callguard.core.errors import CircuitOpenError, RetryExhaustedError
from callguard.resilience.operation import Operation, invoke, operation_name

logger = logging.getLogger(__name__)

T = TypeVar("T")

# HTTP status codes that are safe to retry
RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})


def is_transient(exc: BaseException) -> bool:
    """Default retriable predicate: timeouts, connection failures, 429/5xx."""
    if isinstance(exc, CircuitOpenError):
        return False
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status in RETRYABLE_STATUS_CODES or status >= 500
    return isinstance(
        exc,
        (TimeoutError, ConnectionError, httpx.TimeoutException, httpx.TransportError),
    )


def retry_everything(exc: BaseException) -> bool:
    """Retry-all predicate: treats every error as retriable."""
    return True


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry configuration.

    Attributes:
        max_attempts:       Total attempts including the first (>= 1).
        base_delay:         Delay in seconds after the first failed attempt.
        backoff_multiplier: Growth factor per attempt (>= 1; 1 means constant delay).
        max_delay:          Optional upper bound on a single delay.
    """

    max_attempts: int = 3
    base_delay: float = 0.5
    backoff_multiplier: float = 2.0
    max_delay: float | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")
        if self.backoff_multiplier < 1:
            raise ValueError(f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}")
        if self.max_delay is not None and self.max_delay < 0:
            raise ValueError(f"max_delay must be >= 0, got {self.max_delay}")

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed attempt number *attempt* (1-based)."""
        delay = self.base_delay * self.backoff_multiplier ** (attempt - 1)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    def total_delay(self) -> float:
        """Sum of every inter-attempt delay when all attempts fail."""
        return sum(self.delay_for(k) for k in range(1, self.max_attempts))


class RetryExecutor:
    """Runs operations under a ``RetryPolicy``.

    Holds no per-call state, so one executor can be shared by any number
    of concurrent callers.

    Args:
        policy:       Retry configuration (defaults to ``RetryPolicy()``).
        name:         Label used in errors/logs (defaults to the operation's name).
        is_retriable: Predicate deciding whether an error is worth another
                      attempt.  Defaults to ``is_transient``.
        sleep:        Awaitable sleep function (injectable for tests).
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        name: str | None = None,
        is_retriable: Callable[[BaseException], bool] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self.name = name
        self.is_retriable = is_retriable or is_transient
        self._sleep = sleep

    async def call(self, operation: Operation[T]) -> T:
        """Run *operation*, retrying retriable failures with backoff.

        Raises:
            RetryExhaustedError: If every attempt failed with a retriable error.
            Exception: Any non-retriable error, unchanged apart from a note.
        """
        label = self.name or operation_name(operation)
        attempts = self.policy.max_attempts
        start = time.monotonic()

        for attempt in range(1, attempts + 1):
            try:
                return await invoke(operation)
            except Exception as exc:
                if not self.is_retriable(exc):
                    exc.add_note(f"retry '{label}': not retriable, gave up on attempt {attempt}/{attempts}")
                    raise
                if attempt == attempts:
                    elapsed = time.monotonic() - start
                    logger.error(
                        "'%s' failed after %d attempt(s) in %.2fs: %s",
                        label,
                        attempts,
                        elapsed,
                        exc,
                    )
                    raise RetryExhaustedError(label, attempts, exc, elapsed) from exc
                await self._retry_delay(attempt, attempts, label, exc)

        raise AssertionError("unreachable")  # pragma: no cover

    async def _retry_delay(self, attempt: int, attempts: int, label: str, exc: Exception) -> None:
        """Log a warning and sleep for exponential backoff."""
        delay = self.policy.delay_for(attempt)
        logger.warning(
            "%s for %s (attempt %d/%d), retrying in %.1fs",
            type(exc).__name__,
            label,
            attempt,
            attempts,
            delay,
        )
        await self._sleep(delay)

    def wrap(self, operation: Operation[T]) -> Operation[T]:
        """Return a nullary coroutine function that runs *operation* with retries."""
        label = self.name or operation_name(operation)

        async def retried() -> T:
            return await self.call(operation)

        retried.__name__ = label
        return retried


async def retry(
    operation: Operation[T],
    policy: RetryPolicy | None = None,
    *,
    name: str | None = None,
    is_retriable: Callable[[BaseException], bool] | None = None,
) -> T:
    """One-shot form of ``RetryExecutor(policy, ...).call(operation)``."""
    executor = RetryExecutor(policy, name=name, is_retriable=is_retriable)
    return await executor.call(operation)
