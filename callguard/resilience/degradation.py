"""Graceful degradation: optional features that may fail to load.

``FeatureRegistry.load_feature`` runs a loader and records the outcome
instead of raising it: a loader that succeeds marks the feature ACTIVE
with its implementation, a loader that fails marks it DEGRADED with the
error message.  Consumers read through ``use(name, fallback)``, which
returns the implementation or the fallback, so the degrade-to-default
decision lives in one place.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from callguard.resilience.operation import Operation, invoke

logger = logging.getLogger(__name__)


class FeatureStatus(str, Enum):
    """Load outcome of an optional feature."""

    ACTIVE = "active"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class FeatureEntry:
    """Immutable record of the last load of one feature.

    ``implementation`` is only set when ACTIVE; ``error_reason`` only when
    DEGRADED.
    """

    name: str
    status: FeatureStatus
    implementation: Any = None
    error_reason: str | None = None
    loaded_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict:
        """JSON-serializable view (the implementation handle is omitted)."""
        return {
            "name": self.name,
            "status": self.status.value,
            "error_reason": self.error_reason,
            "loaded_at": self.loaded_at.isoformat(),
        }


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class FeatureRegistry:
    """Tracks named optional features as ACTIVE or DEGRADED.

    Entries are created by ``load_feature``, replaced on reload, and never
    deleted.  Writes to the feature map are serialized by a lock.
    """

    def __init__(self) -> None:
        self._features: dict[str, FeatureEntry] = {}
        self._lock = asyncio.Lock()

    async def load_feature(self, name: str, loader: Operation[Any]) -> bool:
        """Run *loader* and record *name* as ACTIVE or DEGRADED.

        Never raises for a failing loader: the failure is recorded and
        ``False`` is returned.  Cancellation still propagates.

        Returns:
            ``True`` if the feature is now ACTIVE.
        """
        try:
            implementation = await invoke(loader)
        except Exception as exc:
            entry = FeatureEntry(name=name, status=FeatureStatus.DEGRADED, error_reason=_describe(exc))
            logger.warning("Feature '%s': DEGRADED (%s)", name, entry.error_reason)
        else:
            entry = FeatureEntry(name=name, status=FeatureStatus.ACTIVE, implementation=implementation)
            logger.info("Feature '%s': ACTIVE", name)

        async with self._lock:
            self._features[name] = entry
        return entry.status == FeatureStatus.ACTIVE

    async def load_features(self, loaders: Mapping[str, Operation[Any]]) -> dict[str, bool]:
        """Load several features concurrently; return ``{name: is_active}``."""
        names = list(loaders)
        results = await asyncio.gather(*(self.load_feature(n, loaders[n]) for n in names))
        return dict(zip(names, results))

    def is_active(self, name: str) -> bool:
        """``True`` iff *name* is ACTIVE; unknown names are simply not active."""
        entry = self._features.get(name)
        return entry is not None and entry.status == FeatureStatus.ACTIVE

    def use(self, name: str, fallback: Any = None) -> Any:
        """Return the implementation of *name* if ACTIVE, otherwise *fallback*."""
        entry = self._features.get(name)
        if entry is not None and entry.status == FeatureStatus.ACTIVE:
            return entry.implementation
        return fallback

    def status(self, name: str) -> FeatureStatus | None:
        """Return the recorded status, or ``None`` for an unknown feature."""
        entry = self._features.get(name)
        return entry.status if entry is not None else None

    def error_reason(self, name: str) -> str | None:
        entry = self._features.get(name)
        return entry.error_reason if entry is not None else None

    def entry(self, name: str) -> FeatureEntry | None:
        return self._features.get(name)

    def active_features(self) -> list[str]:
        return [n for n, e in self._features.items() if e.status == FeatureStatus.ACTIVE]

    def degraded_features(self) -> list[str]:
        return [n for n, e in self._features.items() if e.status == FeatureStatus.DEGRADED]

    def __contains__(self, name: str) -> bool:
        return name in self._features

    def __len__(self) -> int:
        return len(self._features)

    def snapshot(self) -> list[dict]:
        """Return JSON-serializable entries for health/metrics."""
        return [e.to_dict() for e in self._features.values()]
