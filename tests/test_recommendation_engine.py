"""Tests for the recommendation lifecycle engine.

This module tests:
- Critical recommendations applying on the first click
- The two-click confirm window for everything else
- Apply-all skipping failed items
- Dismissal, stats and savings
- The per-action apply handlers

Run with: pytest tests/test_recommendation_engine.py -v
"""

import asyncio

import pytest

from analytics.recommendation_engine import ApplyPhase, RecommendationEngine, UnknownRecommendationError
from analytics.recommendation_models import (
    ACCOUNT_LEVEL_ID,
    ActionType,
    Recommendation,
    RecommendationAction,
    RecommendationCategory,
    RecommendationSeverity,
    RecommendationStatus,
)
from collectors.errors import ApiError
from services.entity_actions import EntityActions
from services.hierarchy_store import HierarchyStore
from services.notifications import NoticeLevel, Notifier
from storage.models import EntityLevel, EntityStatus
from tests.factories import PAUSED, FakeClock, FakeMutationsClient, make_ad_group, make_campaign

CRITICAL = RecommendationSeverity.CRITICAL
WARNING = RecommendationSeverity.WARNING
OPPORTUNITY = RecommendationSeverity.OPPORTUNITY


def make_rec(
    id,
    severity=WARNING,
    action_type=ActionType.PAUSE_ENTITY,
    entity_id="ag1",
    entity_type=EntityLevel.AD_GROUP,
    category=RecommendationCategory.STATUS,
    impact="Expected savings: ~$40.00/day",
    **action_fields,
):
    return Recommendation(
        id=id,
        severity=severity,
        category=category,
        title=f"Recommendation {id}",
        analysis="",
        recommended_action="",
        impact_estimate=impact,
        action=RecommendationAction(
            type=action_type,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=f"Entity {entity_id}",
            **action_fields,
        ),
    )


class StaticGenerator:
    """Generator returning fresh copies of a fixed recommendation list."""

    def __init__(self, factory):
        self.factory = factory
        self.calls = 0

    def __call__(self, campaigns, hourly=None):
        self.calls += 1
        return self.factory()


@pytest.fixture
def store():
    store = HierarchyStore()
    store.load_campaigns([
        make_campaign("c1", [make_ad_group("ag1", daily_budget=40.0)], daily_budget=100.0),
        make_campaign("c2", [make_ad_group("ag2")], daily_budget=50.0),
    ])
    return store


@pytest.fixture
def client():
    return FakeMutationsClient()


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def clock():
    return FakeClock()


def build_engine(store, client, notifier, clock, recs_factory, **kwargs):
    engine = RecommendationEngine(
        EntityActions(client, store, notifier),
        store,
        notifier,
        generator=StaticGenerator(recs_factory),
        clock=clock,
        **kwargs,
    )
    engine.regenerate()
    return engine


@pytest.mark.asyncio
class TestRequestApply:
    """Tests for the one- and two-click apply flow."""

    async def test_critical_applies_immediately(self, store, client, notifier, clock):
        engine = build_engine(store, client, notifier, clock, lambda: [make_rec("r1", severity=CRITICAL)])

        phase = await engine.request_apply("r1")

        rec = engine.get("r1")
        assert phase == ApplyPhase.IDLE
        assert rec.status == RecommendationStatus.APPLIED
        assert rec.applied_summary == "Paused ad group: Entity ag1"
        assert store.get_ad_group("ag1").status == PAUSED
        assert notifier.recent()[-1].level == NoticeLevel.SUCCESS

    async def test_first_click_only_confirms(self, store, client, notifier, clock):
        engine = build_engine(store, client, notifier, clock, lambda: [make_rec("r1")])

        assert await engine.request_apply("r1") == ApplyPhase.CONFIRMING
        assert engine.phase("r1") == ApplyPhase.CONFIRMING
        assert client.calls == []
        assert engine.get("r1").status == RecommendationStatus.PENDING

    async def test_second_click_within_window_applies(self, store, client, notifier, clock):
        engine = build_engine(store, client, notifier, clock, lambda: [make_rec("r1")])

        await engine.request_apply("r1")
        clock.advance(2.0)
        assert await engine.request_apply("r1") == ApplyPhase.IDLE
        assert engine.get("r1").status == RecommendationStatus.APPLIED
        assert len(client.calls) == 1

    async def test_confirmation_expires(self, store, client, notifier, clock):
        engine = build_engine(store, client, notifier, clock, lambda: [make_rec("r1")])

        await engine.request_apply("r1")
        clock.advance(3.5)
        assert engine.phase("r1") == ApplyPhase.IDLE
        assert await engine.request_apply("r1") == ApplyPhase.CONFIRMING
        assert client.calls == []

    async def test_timer_reverts_confirmation(self, store, client, notifier, clock):
        engine = build_engine(
            store, client, notifier, clock, lambda: [make_rec("r1")], confirm_window_seconds=0.01
        )

        await engine.request_apply("r1")
        await asyncio.sleep(0.05)
        assert engine._phases == {}
        assert engine.phase("r1") == ApplyPhase.IDLE

    async def test_failure_keeps_pending_and_notifies(self, store, client, notifier, clock):
        client.errors["ag1"] = ApiError("Server exploded")
        engine = build_engine(store, client, notifier, clock, lambda: [make_rec("r1", severity=CRITICAL)])

        with pytest.raises(ApiError):
            await engine.request_apply("r1")

        assert engine.get("r1").status == RecommendationStatus.PENDING
        assert engine.phase("r1") == ApplyPhase.IDLE
        assert notifier.recent()[-1].message == 'Could not apply "Recommendation r1": Server exploded'

    async def test_applied_recommendation_is_inert(self, store, client, notifier, clock):
        engine = build_engine(store, client, notifier, clock, lambda: [make_rec("r1", severity=CRITICAL)])
        await engine.request_apply("r1")
        await engine.request_apply("r1")
        assert len(client.calls) == 1

    async def test_unknown_id(self, store, client, notifier, clock):
        engine = build_engine(store, client, notifier, clock, lambda: [])
        with pytest.raises(UnknownRecommendationError):
            await engine.request_apply("nope")


@pytest.mark.asyncio
class TestApplyAll:
    """Tests for apply_all."""

    async def test_failures_are_skipped(self, store, client, notifier, clock):
        client.errors["ag2"] = ApiError("nope")
        engine = build_engine(store, client, notifier, clock, lambda: [
            make_rec("r1", entity_id="ag1"),
            make_rec("r2", entity_id="ag2"),
            make_rec("r3", entity_id="c2", entity_type=EntityLevel.CAMPAIGN),
        ])

        result = await engine.apply_all()

        assert result.applied == ["r1", "r3"]
        assert result.failed == {"r2": "nope"}
        assert engine.get("r2").status == RecommendationStatus.PENDING
        assert engine.applying_all is False

    async def test_severity_order(self, store, client, notifier, clock):
        engine = build_engine(store, client, notifier, clock, lambda: [
            make_rec("r1", severity=OPPORTUNITY, entity_id="ag1"),
            make_rec("r2", severity=CRITICAL, entity_id="ag2"),
        ])
        result = await engine.apply_all()
        assert result.applied == ["r2", "r1"]

    async def test_dismissed_are_not_applied(self, store, client, notifier, clock):
        engine = build_engine(store, client, notifier, clock, lambda: [make_rec("r1")])
        engine.dismiss("r1")
        result = await engine.apply_all()
        assert result.applied == []
        assert client.calls == []


class TestDismissAndStats:
    """Tests for dismissal, regeneration and counters."""

    def test_dismiss(self, store, client, notifier, clock):
        engine = build_engine(store, client, notifier, clock, lambda: [make_rec("r1"), make_rec("r2", severity=CRITICAL)])
        engine.dismiss("r1")
        assert engine.get("r1").status == RecommendationStatus.DISMISSED
        assert [r.id for r in engine.visible()] == ["r2"]
        assert engine.stats() == {
            "total": 1,
            "applied": 0,
            "dismissed": 1,
            "critical": 1,
            "warning": 0,
            "opportunity": 0,
        }

    def test_regenerate_forgets_dismissals_by_default(self, store, client, notifier, clock):
        engine = build_engine(store, client, notifier, clock, lambda: [make_rec("r1")])
        engine.dismiss("r1")
        engine.regenerate()
        assert engine.get("r1").status == RecommendationStatus.PENDING

    def test_remember_dismissed(self, store, client, notifier, clock):
        engine = build_engine(
            store, client, notifier, clock, lambda: [make_rec("r1")], remember_dismissed=True
        )
        engine.dismiss("r1")
        engine.regenerate()
        assert engine.get("r1").status == RecommendationStatus.DISMISSED

    def test_category_filter_and_counts(self, store, client, notifier, clock):
        engine = build_engine(store, client, notifier, clock, lambda: [
            make_rec("r1"),
            make_rec("r2", category=RecommendationCategory.BUDGET, action_type=ActionType.DECREASE_BUDGET),
        ])
        assert [r.id for r in engine.visible(RecommendationCategory.BUDGET)] == ["r2"]
        counts = engine.category_counts()
        assert counts["status"] == 1
        assert counts["budget"] == 1
        assert counts["dayparting"] == 0


@pytest.mark.asyncio
class TestActionHandlers:
    """Tests for what each action type does when applied."""

    async def test_budget_change(self, store, client, notifier, clock):
        engine = build_engine(store, client, notifier, clock, lambda: [make_rec(
            "r1",
            severity=CRITICAL,
            action_type=ActionType.INCREASE_BUDGET,
            entity_id="c1",
            entity_type=EntityLevel.CAMPAIGN,
            new_budget=130.0,
            current_budget=100.0,
        )])
        await engine.request_apply("r1")
        assert store.get_campaign("c1").daily_budget == 130.0
        assert engine.get("r1").applied_summary == "Budget changed: $100.00 → $130.00"

    async def test_reallocation_moves_budget(self, store, client, notifier, clock):
        engine = build_engine(store, client, notifier, clock, lambda: [make_rec(
            "r1",
            severity=CRITICAL,
            action_type=ActionType.REALLOCATE_BUDGET,
            entity_id="c1",
            entity_type=EntityLevel.CAMPAIGN,
            new_budget=115.0,
            current_budget=100.0,
            target_entity_id="c2",
            target_entity_name="Entity c2",
        )])
        await engine.request_apply("r1")
        assert store.get_campaign("c1").daily_budget == 115.0
        assert store.get_campaign("c2").daily_budget == 35.0
        assert engine.get("r1").applied_summary == "Budget reallocated from Entity c2 to Entity c1"

    async def test_dayparting_is_noted_only(self, store, client, notifier, clock):
        engine = build_engine(store, client, notifier, clock, lambda: [make_rec(
            "r1",
            severity=CRITICAL,
            action_type=ActionType.ADJUST_DAYPARTING,
            entity_id=ACCOUNT_LEVEL_ID,
            entity_type=EntityLevel.CAMPAIGN,
            hours=[18, 19, 20],
            budget_multiplier=1.25,
        )])
        await engine.request_apply("r1")
        assert client.calls == []
        assert engine.get("r1").applied_summary == "Day-parting schedule noted: 6pm-8pm at 1.25x budget"

    async def test_enable_entity(self, store, client, notifier, clock):
        store.update_entity("ag2", status=PAUSED)
        engine = build_engine(store, client, notifier, clock, lambda: [make_rec(
            "r1", severity=CRITICAL, action_type=ActionType.ENABLE_ENTITY, entity_id="ag2"
        )])
        await engine.request_apply("r1")
        assert store.get_ad_group("ag2").status == EntityStatus.ACTIVE
        assert engine.get("r1").applied_summary == "Enabled ad group: Entity ag2"

    async def test_estimated_savings_counts_applied_only(self, store, client, notifier, clock):
        engine = build_engine(store, client, notifier, clock, lambda: [
            make_rec("r1", severity=CRITICAL, entity_id="ag1"),
            make_rec("r2", entity_id="ag2", impact="Expected savings: ~$25.00/day"),
        ])
        await engine.request_apply("r1")
        assert engine.estimated_savings() == 40.0
