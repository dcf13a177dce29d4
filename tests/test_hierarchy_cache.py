"""Tests for the persisted hierarchy cache.

Run with: pytest tests/test_hierarchy_cache.py -v
"""

import os
import sqlite3
import tempfile

import pytest
import pytest_asyncio

from storage.hierarchy_cache import HierarchyCacheRepository, build_cache_payload, parse_cache_payload
from storage.models import SyncContext
from tests.factories import PAUSED, make_ad_group, make_campaign, make_line_item

CONTEXT = SyncContext("act_1", "2026-10-01", "2026-10-07")


@pytest_asyncio.fixture
async def cache():
    """Create a cache backed by a temporary database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield HierarchyCacheRepository(os.path.join(tmpdir, "cache.db"))


class TestCachePayload:
    """Tests for building and parsing the payload."""

    def test_only_active_campaigns_with_ad_groups(self):
        payload = build_cache_payload([
            make_campaign("c1", [make_ad_group("ag1")]),
            make_campaign("c2", [make_ad_group("ag2")], status=PAUSED),
            make_campaign("c3"),
        ])
        assert list(payload["campaigns"]) == ["c1"]
        assert payload["campaigns"]["c1"]["adGroups"][0]["id"] == "ag1"

    def test_malformed_entries_are_skipped(self):
        parsed = parse_cache_payload({"campaigns": {"c1": "oops", "c2": {"adGroups": [{"id": "ag2"}, 5]}}})
        assert list(parsed) == ["c2"]
        assert [ag.id for ag in parsed["c2"]] == ["ag2"]

    def test_not_a_dict(self):
        assert parse_cache_payload([]) == {}


@pytest.mark.asyncio
class TestHierarchyCacheRepository:
    """Tests for HierarchyCacheRepository."""

    async def test_miss_returns_none(self, cache):
        assert await cache.load(CONTEXT) is None

    async def test_save_then_load(self, cache):
        campaigns = [make_campaign("c1", [make_ad_group("ag1", [make_line_item("li1")], daily_budget=40.0)])]
        assert await cache.save(CONTEXT, campaigns) is True

        loaded = await cache.load(CONTEXT)
        ad_group = loaded["c1"][0]
        assert ad_group.id == "ag1"
        assert ad_group.daily_budget == 40.0
        assert [li.id for li in ad_group.line_items] == ["li1"]

    async def test_entries_are_keyed_by_date_range(self, cache):
        await cache.save(CONTEXT, [make_campaign("c1", [make_ad_group("ag1")])])
        other = SyncContext("act_1", "2026-09-01", "2026-09-07")
        assert await cache.load(other) is None

    async def test_save_overwrites(self, cache):
        await cache.save(CONTEXT, [make_campaign("c1", [make_ad_group("ag1")])])
        await cache.save(CONTEXT, [make_campaign("c1", [make_ad_group("ag2")])])
        loaded = await cache.load(CONTEXT)
        assert [ag.id for ag in loaded["c1"]] == ["ag2"]

    async def test_corrupt_payload_is_a_miss(self, cache):
        await cache.save(CONTEXT, [make_campaign("c1", [make_ad_group("ag1")])])
        conn = sqlite3.connect(cache.db_path)
        conn.execute("UPDATE hierarchy_cache SET payload = 'not json'")
        conn.commit()
        conn.close()
        assert await cache.load(CONTEXT) is None

    async def test_disabled_cache_is_inert(self, cache):
        cache.enabled = False
        assert await cache.save(CONTEXT, [make_campaign("c1", [make_ad_group("ag1")])]) is False
        assert await cache.load(CONTEXT) is None

    async def test_clear(self, cache):
        await cache.save(CONTEXT, [make_campaign("c1", [make_ad_group("ag1")])])
        assert await cache.clear(CONTEXT) == 1
        assert await cache.load(CONTEXT) is None
