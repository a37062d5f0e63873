"""Compose the primitives around one operation in the canonical order.

    fallback chain  (outermost: primary below, then backups, then default)
      └─ circuit breaker
           └─ retry executor
                └─ timeout guard  (innermost: one deadline per attempt)
                     └─ operation

Each layer is optional.  ``resilient`` is the decorator form for async
functions that take arguments.
"""

from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

from callguard.resilience.circuit_breaker import CircuitBreaker
from callguard.resilience.fallback import _MISSING, FallbackChain
from callguard.resilience.operation import Operation, invoke, operation_name
from callguard.resilience.retry import RetryExecutor, RetryPolicy
from callguard.resilience.timeout import TimeoutGuard

T = TypeVar("T")


def build(
    operation: Operation[T],
    *,
    name: str | None = None,
    timeout: float | TimeoutGuard | None = None,
    retry_policy: RetryPolicy | RetryExecutor | None = None,
    breaker: CircuitBreaker | None = None,
    fallbacks: Sequence[Operation[T]] = (),
    default: Any = _MISSING,
) -> Operation[T]:
    """Return a nullary operation wrapping *operation* in the requested layers."""
    label = name or operation_name(operation)
    wrapped: Operation[T] = operation

    if timeout is not None:
        guard = timeout if isinstance(timeout, TimeoutGuard) else TimeoutGuard(timeout, name=label)
        wrapped = guard.wrap(wrapped)
    if retry_policy is not None:
        executor = (
            retry_policy
            if isinstance(retry_policy, RetryExecutor)
            else RetryExecutor(retry_policy, name=label)
        )
        wrapped = executor.wrap(wrapped)
    if breaker is not None:
        wrapped = breaker.wrap(wrapped)
    if fallbacks or default is not _MISSING:
        wrapped = FallbackChain(wrapped, *fallbacks, name=label, default=default)
    return wrapped


async def protect(operation: Operation[T], **layers: Any) -> T:
    """Run *operation* once through the layers accepted by ``build``."""
    return await invoke(build(operation, **layers))


def resilient(**layers: Any) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator applying ``build`` layers to every call of an async function.

    Usage::

        breaker = CircuitBreaker("inventory")

        @resilient(timeout=2.0, retry_policy=RetryPolicy(max_attempts=3), breaker=breaker)
        async def fetch_stock(sku: str) -> int:
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        func_layers = {"name": func.__name__, **layers}

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await protect(functools.partial(func, *args, **kwargs), **func_layers)

        return wrapper

    return decorator
