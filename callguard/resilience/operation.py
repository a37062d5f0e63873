"""The ``Operation`` type shared by every resilience primitive.

An operation is a nullary callable: a coroutine function, or a plain
callable returning either a value or an awaitable.
"""

from __future__ import annotations

import functools
import inspect
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar, Union

T = TypeVar("T")

Operation = Callable[[], Union[Awaitable[T], T]]


async def invoke(operation: Operation[T]) -> T:
    """Call *operation* and await its result if it returned an awaitable."""
    result = operation()
    if inspect.isawaitable(result):
        return await result
    return result


def operation_name(operation: Any, default: str = "operation") -> str:
    """Best-effort human-readable label for *operation* (used in errors/logs)."""
    name = getattr(operation, "name", None)
    if isinstance(name, str) and name:
        return name
    if isinstance(operation, functools.partial):
        return operation_name(operation.func, default)
    func_name = getattr(operation, "__name__", None)
    if isinstance(func_name, str) and func_name != "<lambda>":
        return func_name
    return default
