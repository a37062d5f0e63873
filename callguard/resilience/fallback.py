"""Fallback chain: try a primary operation, then backups in priority order.

    ┌─────────┐  fail  ┌──────────┐  fail  ┌──────────┐  fail  ┌─────────┐
    │ primary │ ─────► │ backup 1 │ ─────► │ backup 2 │ ─────► │ default │
    └─────────┘        └──────────┘        └──────────┘        └─────────┘
        │ ok               │ ok                │ ok           (if supplied,
        ▼                  ▼                   ▼             else raise)
      return             return              return

The first success short-circuits.  Every failure is kept so that, when
all links fail, ``FallbackExhaustedError`` lists each link's error in
order.  A chain is itself a nullary operation, so links can be other
chains, retry executors or breaker-protected calls.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Generic, TypeVar

from callguard.core.errors import FallbackExhaustedError
from callguard.resilience.operation import Operation, invoke, operation_name

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING: Any = object()


class FallbackChain(Generic[T]):
    """Ordered operations: the first is the primary, the rest are fallbacks.

    Stateless across calls; safe to share between concurrent callers.

    Args:
        operations: Primary operation followed by fallbacks, at least one.
        name:       Label used in the aggregate error and logs.
        default:    Static value returned when every link fails.  When
                    omitted, exhaustion raises ``FallbackExhaustedError``.
    """

    def __init__(
        self,
        *operations: Operation[T],
        name: str = "fallback-chain",
        default: Any = _MISSING,
    ) -> None:
        if not operations:
            raise ValueError("FallbackChain needs at least one operation")
        self.links: tuple[Operation[T], ...] = operations
        self.name = name
        self._default = default

    @property
    def has_default(self) -> bool:
        return self._default is not _MISSING

    def labels(self) -> list[str]:
        """Labels for each link, in order (``"link-<n>"`` when unnamed)."""
        return [operation_name(op, f"link-{i}") for i, op in enumerate(self.links, start=1)]

    async def call(self) -> T:
        """Try each link in order and return the first success.

        Raises:
            FallbackExhaustedError: If every link failed and no default was given.
        """
        failures: list[tuple[str, BaseException]] = []
        for label, link in zip(self.labels(), self.links):
            try:
                return await invoke(link)
            except Exception as exc:
                logger.warning("Fallback '%s': link '%s' failed: %s", self.name, label, exc)
                failures.append((label, exc))

        if self.has_default:
            logger.warning(
                "Fallback '%s': all %d link(s) failed, using default value",
                self.name,
                len(failures),
            )
            return self._default
        raise FallbackExhaustedError(self.name, failures)

    async def __call__(self) -> T:
        return await self.call()

    def then(self, *operations: Operation[T]) -> FallbackChain[T]:
        """Return a new chain with *operations* appended after the current links."""
        return FallbackChain(*self.links, *operations, name=self.name, default=self._default)


async def resolve(
    chain: FallbackChain[T] | Sequence[Operation[T]],
    *,
    name: str = "fallback-chain",
    default: Any = _MISSING,
) -> T:
    """Resolve a ``FallbackChain`` or a plain sequence of operations."""
    if not isinstance(chain, FallbackChain):
        chain = FallbackChain(*chain, name=name, default=default)
    return await chain.call()
