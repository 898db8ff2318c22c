"""Unit tests for the persisted source registry."""

from __future__ import annotations

import asyncio

from scrapers.registry import SourceRegistry
from scrapers.sources import builtin_source_configs
from tests.helpers import open_db


def test_postal_code_resolves_to_county_assessor(tmp_path) -> None:
    """A mapped postal code should resolve to its county portal."""

    async def scenario():
        db = await open_db(tmp_path)
        registry = SourceRegistry(db)
        await registry.initialize()
        found = await registry.resolve_for_postal_code("90210-1234")
        unmapped = await registry.resolve_for_postal_code("00000")
        brooklyn = await registry.resolve_for_postal_code("11201")
        await db.dispose()
        return found, unmapped, brooklyn

    found, unmapped, brooklyn = asyncio.run(scenario())

    assert found.source_id == "los_angeles_ca"
    assert found.rate_limit_requests == 1
    assert found.rate_limit_window_seconds == 2.0
    assert unmapped is None
    assert brooklyn is None


def test_initialize_keeps_counters_and_active_flag(tmp_path) -> None:
    """Re-initializing should not reset outcome counters or deactivation."""

    async def scenario():
        db = await open_db(tmp_path)
        registry = SourceRegistry(db)
        await registry.initialize()
        await registry.record_outcome("cook_il", True)
        await registry.record_outcome("cook_il", False, "HTTP 503")
        await registry.set_active("cook_il", False)
        await registry.initialize()
        source = await registry.get("cook_il")
        stats = {s["source_id"]: s for s in await registry.source_stats()}
        await db.dispose()
        return source, stats["cook_il"]

    source, stats = asyncio.run(scenario())

    assert source.is_active is False
    assert stats["success_count"] == 1
    assert stats["failure_count"] == 1
    assert stats["success_rate"] == 50
    assert stats["last_error"] == "HTTP 503"


def test_list_sources_filters_by_type(tmp_path) -> None:
    """Institutional listings should be listed separately from assessors."""

    async def scenario():
        db = await open_db(tmp_path)
        registry = SourceRegistry(db)
        await registry.initialize()
        institutional = await registry.list_sources(source_type="institutional")
        everything = await registry.list_sources()
        await db.dispose()
        return institutional, everything

    institutional, everything = asyncio.run(scenario())

    assert len(everything) == len(builtin_source_configs())
    assert institutional
    assert all(s.item_locator for s in institutional)
    assert {s.source_id for s in institutional} >= {"cbre:research", "jll:properties"}
