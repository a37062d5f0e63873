"""Tests for graceful degradation via FeatureRegistry.

Covers:
- Successful loaders mark features ACTIVE with their implementation
- Failing loaders mark features DEGRADED and never raise
- use() / is_active() for unknown, active and degraded features
- Reload overwrites, concurrent loading, snapshots
"""

import asyncio

import pytest

from callguard.resilience.degradation import FeatureEntry, FeatureRegistry, FeatureStatus


async def load_search():
    return {"search": lambda q: [f"Result for: {q}"]}


async def load_recommendations():
    raise RuntimeError("ML service unavailable")


class TestLoadFeature:
    async def test_success_marks_active(self):
        registry = FeatureRegistry()
        assert await registry.load_feature("search", load_search) is True
        assert registry.is_active("search")
        assert registry.status("search") == FeatureStatus.ACTIVE
        assert registry.error_reason("search") is None

    async def test_failure_returns_false_without_raising(self):
        registry = FeatureRegistry()
        assert await registry.load_feature("recs", load_recommendations) is False
        assert registry.is_active("recs") is False
        assert registry.status("recs") == FeatureStatus.DEGRADED
        assert registry.error_reason("recs") == "ML service unavailable"

    async def test_sync_loader_that_raises(self):
        def boom():
            raise Exception("boom")

        registry = FeatureRegistry()
        assert await registry.load_feature("x", boom) is False
        assert registry.is_active("x") is False
        assert registry.use("x", "default") == "default"

    async def test_sync_loader_value(self):
        registry = FeatureRegistry()
        assert await registry.load_feature("flags", lambda: {"beta": True}) is True
        assert registry.use("flags") == {"beta": True}

    async def test_error_without_message_uses_type_name(self):
        async def loader():
            raise KeyError

        registry = FeatureRegistry()
        await registry.load_feature("k", loader)
        assert registry.error_reason("k") == "KeyError"

    async def test_reload_overwrites_entry(self):
        registry = FeatureRegistry()
        await registry.load_feature("recs", load_recommendations)
        assert await registry.load_feature("recs", lambda: ["popular"]) is True
        assert registry.is_active("recs")
        assert registry.use("recs", []) == ["popular"]

        await registry.load_feature("recs", load_recommendations)
        assert registry.use("recs", ["fallback"]) == ["fallback"]
        assert len(registry) == 1

    async def test_cancellation_propagates(self):
        registry = FeatureRegistry()
        task = asyncio.create_task(registry.load_feature("slow", lambda: asyncio.sleep(10)))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert "slow" not in registry


class TestUse:
    async def test_active_returns_implementation(self):
        registry = FeatureRegistry()
        await registry.load_feature("search", load_search)
        impl = registry.use("search")
        assert impl["search"]("shoes") == ["Result for: shoes"]

    async def test_degraded_returns_fallback(self):
        registry = FeatureRegistry()
        await registry.load_feature("recs", load_recommendations)
        assert registry.use("recs", ["Popular Item 1"]) == ["Popular Item 1"]

    def test_unknown_feature(self):
        registry = FeatureRegistry()
        assert registry.is_active("missing") is False
        assert registry.use("missing") is None
        assert registry.use("missing", 0) == 0
        assert registry.status("missing") is None
        assert registry.entry("missing") is None

    async def test_reads_are_idempotent(self):
        registry = FeatureRegistry()
        await registry.load_feature("search", load_search)
        await registry.load_feature("recs", load_recommendations)
        first = [registry.is_active("search"), registry.use("recs", "d"), registry.use("search")]
        for _ in range(3):
            assert [registry.is_active("search"), registry.use("recs", "d"), registry.use("search")] == first


class TestBulkAndSnapshot:
    async def test_load_features_concurrently(self):
        registry = FeatureRegistry()
        results = await registry.load_features(
            {
                "search": load_search,
                "recs": load_recommendations,
                "analytics": lambda: "tracker",
            }
        )
        assert results == {"search": True, "recs": False, "analytics": True}
        assert sorted(registry.active_features()) == ["analytics", "search"]
        assert registry.degraded_features() == ["recs"]

    async def test_snapshot_omits_implementation(self):
        registry = FeatureRegistry()
        await registry.load_feature("search", load_search)
        await registry.load_feature("recs", load_recommendations)
        snaps = {s["name"]: s for s in registry.snapshot()}
        assert snaps["search"]["status"] == "active"
        assert snaps["recs"]["status"] == "degraded"
        assert snaps["recs"]["error_reason"] == "ML service unavailable"
        assert "implementation" not in snaps["search"]
        assert "loaded_at" in snaps["search"]

    async def test_entry_is_immutable(self):
        registry = FeatureRegistry()
        await registry.load_feature("search", load_search)
        entry = registry.entry("search")
        assert isinstance(entry, FeatureEntry)
        with pytest.raises(AttributeError):
            entry.status = FeatureStatus.DEGRADED
