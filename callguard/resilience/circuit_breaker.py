"""Async circuit breaker.

Implements the standard three-state circuit breaker:

    CLOSED    →  (failure_count >= failure_threshold)  →  OPEN
    OPEN      →  (reset_timeout elapsed, next call)    →  HALF_OPEN
    HALF_OPEN →  (probe succeeds)                      →  CLOSED
    HALF_OPEN →  (probe fails)                         →  OPEN

While OPEN, calls are rejected with ``CircuitOpenError`` without running
the operation.  The first call after ``reset_timeout`` has elapsed moves
the breaker to HALF_OPEN and runs as a probe.  At most ``half_open_max``
probes run at once; further calls are rejected until a probe resolves.

Every read-compare-write of the breaker's state happens under one
``asyncio.Lock``, so concurrent failures crossing the threshold open the
circuit exactly once.  Each dependency gets its own breaker, usually via
``CircuitBreakerRegistry``.

Every transition starts a new generation.  ``pre_check`` hands each
admitted call the current generation, and only outcomes carrying it can
move the breaker; outcomes of calls admitted in an earlier generation
(e.g. a slow call that started before the circuit opened) only update
the metrics.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import TypeVar

from callguard.core.errors import CircuitOpenError
from callguard.resilience.operation import Operation, invoke

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Async-safe circuit breaker for a single dependency.

    Args:
        name:                Human-readable dependency name (for logging/errors).
        failure_threshold:   Consecutive failures before opening the circuit.
        reset_timeout:       Seconds the circuit stays OPEN before probing.
        half_open_max:       Max concurrent probes in HALF_OPEN state.
        excluded_exceptions: Error types re-raised without counting as a
                             failure of the dependency.
        clock:               Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 30.0,
        half_open_max: int = 1,
        excluded_exceptions: tuple[type[BaseException], ...] = (),
        clock=time.monotonic,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError(f"failure_threshold must be >= 1, got {failure_threshold}")
        if reset_timeout < 0:
            raise ValueError(f"reset_timeout must be >= 0, got {reset_timeout}")
        if half_open_max < 1:
            raise ValueError(f"half_open_max must be >= 1, got {half_open_max}")

        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.half_open_max = half_open_max
        self.excluded_exceptions = excluded_exceptions
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._half_open_calls = 0
        self._generation = 0
        self._lock = asyncio.Lock()

        # Metrics
        self.total_calls = 0
        self.total_failures = 0
        self.total_rejections = 0
        self.total_successes = 0

    # ── Public properties ────────────────────────────────────────────

    @property
    def state(self) -> CircuitState:
        """Current state.  OPEN only becomes HALF_OPEN when a call arrives."""
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def last_failure_time(self) -> float | None:
        return self._last_failure_time

    @property
    def retry_after(self) -> float:
        """Seconds until an OPEN breaker will admit a probe (0 otherwise)."""
        if self._state != CircuitState.OPEN or self._last_failure_time is None:
            return 0.0
        return max(0.0, self.reset_timeout - (self._clock() - self._last_failure_time))

    # ── Core call wrapper ────────────────────────────────────────────

    async def call(self, operation: Operation[T]) -> T:
        """Run *operation* through the breaker.

        Raises:
            CircuitOpenError: If the call is rejected without running.
            Exception: Whatever the operation raised (after recording it).
        """
        generation = await self.pre_check()
        try:
            result = await invoke(operation)
        except asyncio.CancelledError:
            await self.release(generation)
            raise
        except self.excluded_exceptions:
            await self.on_success(generation)
            raise
        except Exception:
            await self.on_failure(generation)
            raise
        await self.on_success(generation)
        return result

    def wrap(self, operation: Operation[T]) -> Operation[T]:
        """Return a nullary coroutine function that runs *operation* through the breaker."""

        async def protected() -> T:
            return await self.call(operation)

        protected.__name__ = self.name
        return protected

    async def pre_check(self) -> int:
        """Check whether a call is allowed; raise if circuit is open.

        Must be called **before** the protected operation runs, and paired
        with exactly one of ``on_success``, ``on_failure`` or ``release``,
        passing back the returned generation.

        Returns:
            The generation the call was admitted in.
        """
        async with self._lock:
            if self._state == CircuitState.OPEN:
                elapsed = self._clock() - (self._last_failure_time or 0.0)
                if elapsed > self.reset_timeout:
                    self._transition(CircuitState.HALF_OPEN)
                else:
                    self.total_rejections += 1
                    logger.debug("Circuit '%s' open, rejecting call", self.name)
                    raise CircuitOpenError(self.name, self.reset_timeout - elapsed)

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_calls >= self.half_open_max:
                    self.total_rejections += 1
                    logger.debug("Circuit '%s' half-open, probe slots taken", self.name)
                    raise CircuitOpenError(self.name, 0.0)
                self._half_open_calls += 1

            self.total_calls += 1
            return self._generation

    def _is_current(self, generation: int | None) -> bool:
        # None: caller reports an outcome outside ``call`` for the current state.
        return generation is None or generation == self._generation

    async def on_success(self, generation: int | None = None) -> None:
        """Record a successful call; close the circuit if it was the probe."""
        async with self._lock:
            self.total_successes += 1
            if not self._is_current(generation):
                logger.debug("Circuit '%s': ignoring stale success", self.name)
                return
            if self._state == CircuitState.HALF_OPEN:
                # Probe succeeded, back to CLOSED
                self._transition(CircuitState.CLOSED)
            elif self._state == CircuitState.CLOSED:
                self._failure_count = 0

    async def on_failure(self, generation: int | None = None) -> None:
        """Record a failed call; potentially open the circuit."""
        async with self._lock:
            self.total_failures += 1
            if not self._is_current(generation):
                logger.debug("Circuit '%s': ignoring stale failure", self.name)
                return
            self._last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                # Probe failed: reopen and restart the reset window
                self._transition(CircuitState.OPEN)
            elif self._state == CircuitState.CLOSED:
                self._failure_count += 1
                if self._failure_count >= self.failure_threshold:
                    self._transition(CircuitState.OPEN)
            else:
                self._failure_count += 1

    async def release(self, generation: int | None = None) -> None:
        """Give back a probe slot without recording an outcome (e.g. cancellation)."""
        async with self._lock:
            if not self._is_current(generation):
                return
            if self._state == CircuitState.HALF_OPEN and self._half_open_calls > 0:
                self._half_open_calls -= 1

    async def reset(self) -> None:
        """Force-reset the circuit breaker to CLOSED state."""
        async with self._lock:
            self._transition(CircuitState.CLOSED)
            self._last_failure_time = None

    def _transition(self, new_state: CircuitState) -> None:
        # Caller holds self._lock.
        old_state = self._state
        self._state = new_state
        self._generation += 1
        self._half_open_calls = 0
        if new_state == CircuitState.CLOSED:
            self._failure_count = 0

        if old_state == new_state:
            return
        if new_state == CircuitState.OPEN:
            logger.warning(
                "Circuit '%s': %s → OPEN (failures: %d)",
                self.name,
                old_state.value.upper(),
                self._failure_count,
            )
        else:
            logger.info("Circuit '%s': %s → %s", self.name, old_state.value.upper(), new_state.value.upper())

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot for health/metrics."""
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "retry_after": round(self.retry_after, 3),
            "total_calls": self.total_calls,
            "total_failures": self.total_failures,
            "total_rejections": self.total_rejections,
            "total_successes": self.total_successes,
        }


class CircuitBreakerRegistry:
    """Manages per-dependency ``CircuitBreaker`` instances.

    Usage::

        registry = CircuitBreakerRegistry(failure_threshold=5, reset_timeout=30.0)
        result = await registry.get("billing-api").call(fetch_invoice)
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 30.0,
        half_open_max: int = 1,
    ) -> None:
        self._threshold = failure_threshold
        self._reset_timeout = reset_timeout
        self._half_open_max = half_open_max
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        """Return (or create) the circuit breaker for *name*."""
        if name not in self._breakers:
            self._breakers[name] = CircuitBreaker(
                name=name,
                failure_threshold=self._threshold,
                reset_timeout=self._reset_timeout,
                half_open_max=self._half_open_max,
            )
        return self._breakers[name]

    def __contains__(self, name: str) -> bool:
        return name in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)

    def all_snapshots(self) -> list[dict]:
        """Return snapshots for every registered breaker."""
        return [cb.snapshot() for cb in self._breakers.values()]

    async def reset_all(self) -> None:
        """Reset every circuit breaker to CLOSED."""
        for cb in self._breakers.values():
            await cb.reset()
