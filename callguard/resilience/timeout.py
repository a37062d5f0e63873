"""Timeout guard: race an operation against a deadline.

The operation runs as its own task while the caller waits on it with a
deadline.  Whichever settles first decides the outcome:

    operation settles first  →  its result (or error) is returned unchanged
    deadline passes first    →  ``CallTimeoutError`` carrying the duration

By default the losing operation is **not** cancelled; it keeps running in
the background and its eventual result is discarded.  Pass
``cancel_on_timeout=True`` to cancel it instead.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import TypeVar

from callguard.core.errors import CallTimeoutError
from callguard.resilience.operation import Operation, operation_name

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Strong references to abandoned operations so they are not garbage
# collected mid-flight.
_background_tasks: set[asyncio.Future] = set()


def _discard_result(task: asyncio.Future) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Abandoned operation finished with %s: %s", type(exc).__name__, exc)


async def with_timeout(
    operation: Operation[T],
    timeout: float,
    *,
    name: str | None = None,
    cancel_on_timeout: bool = False,
) -> T:
    """Run *operation* and fail with ``CallTimeoutError`` if it exceeds *timeout*.

    Args:
        operation:         Nullary callable to run.
        timeout:           Deadline in seconds (must be positive).
        name:              Label used in the error and logs.
        cancel_on_timeout: Cancel the operation when the deadline wins.

    Raises:
        ValueError: If *timeout* is not positive.
        CallTimeoutError: If the deadline passes before the operation settles.
    """
    if timeout <= 0:
        raise ValueError(f"timeout must be positive, got {timeout}")
    label = name or operation_name(operation)

    pending = operation()
    if not inspect.isawaitable(pending):
        # Plain callable: it already finished synchronously.
        return pending

    task = asyncio.ensure_future(pending)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        _abandon(task, cancel=cancel_on_timeout)
        raise

    if task in done:
        return task.result()

    logger.warning("Operation '%s' timed out after %ss", label, timeout)
    _abandon(task, cancel=cancel_on_timeout)
    raise CallTimeoutError(label, timeout)


def _abandon(task: asyncio.Future, *, cancel: bool = False) -> None:
    # A cancelled task may still swallow the cancellation and fail later.
    _background_tasks.add(task)
    task.add_done_callback(_discard_result)
    if cancel:
        task.cancel()


class TimeoutGuard:
    """Reusable timeout wrapper bound to one deadline.

    Args:
        timeout:           Deadline in seconds for each call.
        name:              Label used in errors/logs (defaults to the operation's name).
        cancel_on_timeout: Cancel the operation when the deadline wins.
    """

    def __init__(
        self,
        timeout: float,
        *,
        name: str | None = None,
        cancel_on_timeout: bool = False,
    ) -> None:
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self.timeout = timeout
        self.name = name
        self.cancel_on_timeout = cancel_on_timeout

    async def call(self, operation: Operation[T]) -> T:
        return await with_timeout(
            operation,
            self.timeout,
            name=self.name,
            cancel_on_timeout=self.cancel_on_timeout,
        )

    def wrap(self, operation: Operation[T]) -> Operation[T]:
        """Return a nullary coroutine function that runs *operation* under this guard."""
        label = self.name or operation_name(operation)

        async def guarded() -> T:
            return await with_timeout(
                operation,
                self.timeout,
                name=label,
                cancel_on_timeout=self.cancel_on_timeout,
            )

        guarded.__name__ = label
        return guarded
