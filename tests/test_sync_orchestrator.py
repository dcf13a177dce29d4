"""Tests for the staged hierarchy sync.

This module tests:
- The sequential, spaced core preload and its caps
- Failure isolation between campaigns
- Context changes cancelling a running pass
- The actions and issue scan stages
- Expand, retry, bulk status and issue fixes

Run with: pytest tests/test_sync_orchestrator.py -v
"""

import asyncio

import pytest

from collectors.errors import ApiError, RateLimitError
from services.entity_actions import EntityActions
from services.fetch_scheduler import FetchScheduler
from services.hierarchy_store import HierarchyStore
from services.notifications import Notifier
from services.sync_orchestrator import StageState, SyncOrchestrator, SyncState
from storage.models import EntityStatus, FetchStatus, SyncContext
from tests.factories import (
    PAUSED,
    FakeHierarchyClient,
    FakeMutationsClient,
    RecordingSleep,
    ad_group_row,
    line_item_row,
    make_ad_group,
    make_campaign,
    settle,
)

CONTEXT = SyncContext("act_1", "2026-10-01", "2026-10-07")
OTHER_CONTEXT = SyncContext("act_1", "2026-09-01", "2026-09-07")


class ConcurrencyTrackingClient(FakeHierarchyClient):
    """Records the highest number of requests in flight at once."""

    def __init__(self) -> None:
        super().__init__()
        self.in_flight = 0
        self.max_in_flight = 0

    async def _answer(self, kind, node_id, mode):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            return await super()._answer(kind, node_id, mode)
        finally:
            self.in_flight -= 1


class FakeActivitiesClient:
    def __init__(self, events=None, error=None) -> None:
        self.events = events or {}
        self.error = error
        self.calls = []

    async def latest_actions(self, since_days=3, limit=30, timeout=7.0):
        self.calls.append((since_days, limit, timeout))
        if self.error is not None:
            raise self.error
        return self.events


class FakeIssuesClient:
    def __init__(self, rows=None) -> None:
        self.rows = rows or []
        self.error = None

    async def scan_issues(self, timeout=20.0):
        if self.error is not None:
            raise self.error
        return list(self.rows)


class FakeCache:
    def __init__(self) -> None:
        self.entries = {}
        self.saves = 0

    async def load(self, context):
        return self.entries.get(context.cache_key)

    async def save(self, context, campaigns):
        self.saves += 1
        self.entries[context.cache_key] = {
            c.id: list(c.ad_groups) for c in campaigns if c.status == EntityStatus.ACTIVE and c.ad_groups
        }
        return True


@pytest.fixture
def client():
    return ConcurrencyTrackingClient()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def store():
    return HierarchyStore()


@pytest.fixture
def mutations():
    return FakeMutationsClient()


@pytest.fixture
def orchestrator(client, store, sleep, mutations):
    notifier = Notifier()
    scheduler = FetchScheduler(client, store, notifier)
    return SyncOrchestrator(
        scheduler,
        store,
        cache=FakeCache(),
        activities_client=FakeActivitiesClient(),
        issues_client=FakeIssuesClient(),
        entity_actions=EntityActions(mutations, store, notifier),
        notifier=notifier,
        sleep=sleep,
    )


def campaigns(count, paused=()):
    return [
        make_campaign(f"c{i}", status=PAUSED if f"c{i}" in paused else EntityStatus.ACTIVE)
        for i in range(count)
    ]


class TestSyncState:
    """Tests for the blended progress percentage."""

    def test_percent(self):
        assert SyncState().percent == 0
        assert SyncState(core=StageState.LOADING).percent == 40
        assert SyncState(core=StageState.DONE, actions=StageState.LOADING).percent == 85
        assert SyncState(core=StageState.DONE, actions=StageState.DONE).percent == 100

    def test_errors_stage_does_not_move_percent(self):
        assert SyncState(errors=StageState.DONE).percent == 0


@pytest.mark.asyncio
class TestCorePreload:
    """Tests for run_core_preload."""

    async def test_first_active_campaigns_in_order(self, orchestrator, client):
        await orchestrator.start(CONTEXT, campaigns(12, paused={"c1"}))
        await orchestrator.run_core_preload()

        fetched = [node for kind, node, _ in client.calls if kind == "ad_groups"]
        assert fetched == ["c0", "c2", "c3", "c4", "c5", "c6", "c7", "c8"]
        assert orchestrator.state.core == StageState.DONE

    async def test_requests_are_sequential_and_spaced(self, orchestrator, client, sleep):
        client.responses["c0"] = [ad_group_row("ag1", "c0"), ad_group_row("ag2", "c0")]
        client.responses["ag1"] = [line_item_row("li1", "ag1")]
        await orchestrator.start(CONTEXT, campaigns(2))
        await orchestrator.run_core_preload()

        assert client.max_in_flight == 1
        assert [node for _, node, _ in client.calls] == ["c0", "ag1", "ag2", "c1"]
        assert sleep.delays == [0.26, 0.26, 0.36, 0.32]
        assert all(delay >= 0.26 for delay in sleep.delays)

    async def test_ad_groups_per_campaign_are_capped(self, orchestrator, client):
        client.responses["c0"] = [ad_group_row(f"ag{i}", "c0") for i in range(12)]
        await orchestrator.start(CONTEXT, campaigns(1))
        await orchestrator.run_core_preload()

        line_item_calls = [node for kind, node, _ in client.calls if kind == "line_items"]
        assert line_item_calls == [f"ag{i}" for i in range(10)]

    async def test_failed_campaign_does_not_stop_the_pass(self, orchestrator, client, store):
        client.responses["c0"] = ApiError("Unsupported request")
        client.responses["c1"] = [ad_group_row("ag1", "c1")]
        await orchestrator.start(CONTEXT, campaigns(2))
        await orchestrator.run_core_preload()

        assert store.fetch_status("c0") == FetchStatus.ERRORED
        assert store.error_for("c0") == "Unsupported request"
        assert store.fetch_status("c1") == FetchStatus.FETCHED
        assert orchestrator.state.core == StageState.DONE

    async def test_rate_limit_short_circuits_remaining_campaigns(self, orchestrator, client, store):
        client.responses["c0"] = RateLimitError("Rate limited")
        await orchestrator.start(CONTEXT, campaigns(3))
        await orchestrator.run_core_preload()

        assert [node for _, node, _ in client.calls] == ["c0", "c0"]
        assert store.fetch_status("c2") == FetchStatus.ERRORED

    async def test_done_persists_cache(self, orchestrator, client):
        client.responses["c0"] = [ad_group_row("ag1", "c0")]
        await orchestrator.start(CONTEXT, campaigns(1))
        await orchestrator.run_core_preload()
        assert orchestrator.cache.saves == 1


@pytest.mark.asyncio
class TestContextChange:
    """Tests for start() discarding a previous context."""

    async def test_new_range_resets_fetched_marks(self, orchestrator, client, store):
        client.responses["c0"] = [ad_group_row("ag1", "c0")]
        await orchestrator.start(CONTEXT, campaigns(1))
        await orchestrator.run_core_preload()
        assert store.fetch_status("c0") == FetchStatus.FETCHED

        await orchestrator.start(OTHER_CONTEXT, campaigns(1))
        assert store.fetch_status("c0") == FetchStatus.UNFETCHED
        assert orchestrator.state.core == StageState.IDLE

        await orchestrator.expand_campaign("c0")
        assert len([c for c in client.calls if c[1] == "c0"]) == 2

    async def test_running_pass_is_cancelled(self, orchestrator, client, store):
        gate = asyncio.Event()
        client.gates["c0"] = gate
        client.responses["c0"] = [ad_group_row("agOld", "c0")]
        await orchestrator.start(CONTEXT, campaigns(2))
        task = orchestrator.launch_preload()
        await settle()

        await orchestrator.start(OTHER_CONTEXT, campaigns(2))
        gate.set()
        await task

        assert store.get_campaign("c0").ad_groups == []
        assert orchestrator.state.core == StageState.IDLE
        assert "c1" not in [node for _, node, _ in client.calls]

    async def test_start_hydrates_from_cache(self, orchestrator, store):
        orchestrator.cache.entries[CONTEXT.cache_key] = {"c0": [make_ad_group("agCached")]}
        hydrated = await orchestrator.start(CONTEXT, campaigns(1))
        assert hydrated == 1
        assert [ag.id for ag in store.get_campaign("c0").ad_groups] == ["agCached"]
        assert store.fetch_status("c0") == FetchStatus.UNFETCHED

    async def test_refresh_loads_initial_batch(self, orchestrator, client, store):
        client.campaign_rows = [
            {"id": "c9", "name": "Nine", "status": "ACTIVE", "ad_groups": []},
        ]
        await orchestrator.refresh(CONTEXT)
        assert [c.id for c in store.campaigns] == ["c9"]
        assert orchestrator.context == CONTEXT

    async def test_launch_preload_reuses_running_task(self, orchestrator, client):
        gate = asyncio.Event()
        client.gates["c0"] = gate
        await orchestrator.start(CONTEXT, campaigns(1))
        first = orchestrator.launch_preload()
        second = orchestrator.launch_preload()
        assert first is second
        gate.set()
        await first


@pytest.mark.asyncio
class TestActionsStage:
    """Tests for the latest-actions poll."""

    async def test_runs_after_core(self, orchestrator, sleep):
        orchestrator.activities_client.events = {
            "c0": [{"entity_id": "c0", "event_type": "update_status", "description": "Paused"}],
        }
        await orchestrator.start(CONTEXT, campaigns(1))
        await orchestrator.run_preload()

        assert orchestrator.latest_actions["c0"][0].event_type == "update_status"
        assert orchestrator.activities_client.calls == [(3, 30, 7.0)]
        assert 1.2 in sleep.delays
        assert orchestrator.state.percent == 100

    async def test_waits_for_core(self, orchestrator):
        await orchestrator.start(CONTEXT, campaigns(1))
        await orchestrator.run_actions_stage()
        assert orchestrator.activities_client.calls == []
        assert orchestrator.state.actions == StageState.IDLE

    async def test_failure_still_finishes_stage(self, orchestrator):
        orchestrator.activities_client.error = ApiError("nope")
        await orchestrator.start(CONTEXT, campaigns(1))
        await orchestrator.run_preload()
        assert orchestrator.latest_actions == {}
        assert orchestrator.state.actions == StageState.DONE


@pytest.mark.asyncio
class TestIssueReview:
    """Tests for the server issue scan stage."""

    async def test_scan_only_while_open(self, orchestrator):
        orchestrator.issues_client.rows = [{
            "id": "srv-1",
            "kind": "with_issues",
            "severity": "critical",
            "level": "campaign",
            "campaign_id": "c0",
            "reason": "Campaign has delivery/policy issues",
        }]
        await orchestrator.start(CONTEXT, campaigns(1))
        await orchestrator.run_errors_stage()
        assert orchestrator.server_issues == []

        await orchestrator.open_issue_review()
        assert [i.id for i in orchestrator.server_issues] == ["srv-1"]
        assert orchestrator.state.errors == StageState.DONE

    async def test_failed_scan_keeps_last_result(self, orchestrator):
        orchestrator.issues_client.rows = [{
            "id": "srv-1", "kind": "low_quality", "level": "lineitem", "reason": "Low quality ranking",
        }]
        await orchestrator.start(CONTEXT, campaigns(1))
        await orchestrator.open_issue_review()
        orchestrator.issues_client.error = ApiError("scan failed")
        await orchestrator.run_errors_stage()
        assert [i.id for i in orchestrator.server_issues] == ["srv-1"]

    async def test_server_issue_wins_over_local_duplicate(self, orchestrator):
        orchestrator.issues_client.rows = [{
            "id": "srv-1",
            "kind": "policy_rejected",
            "severity": "critical",
            "level": "campaign",
            "campaign_id": "c0",
            "reason": "Campaign rejected by policy",
            "action_label": "Pause Campaign",
        }]
        await orchestrator.start(CONTEXT, [make_campaign("c0", effective_status="DISAPPROVED")])
        await orchestrator.open_issue_review()
        issues = orchestrator.issues()
        assert [i.id for i in issues] == ["srv-1"]

    async def test_fix_issue_pauses_campaign(self, orchestrator, store, mutations):
        await orchestrator.start(CONTEXT, [make_campaign("c0", effective_status="DISAPPROVED")])
        issue = orchestrator.issues()[0]
        fix = await orchestrator.fix_issue(issue.id)
        assert fix.status == EntityStatus.PAUSED
        assert store.get_campaign("c0").status == PAUSED
        assert mutations.calls == [("status", "campaign", "c0", "PAUSED")]

    async def test_fix_unknown_issue(self, orchestrator):
        await orchestrator.start(CONTEXT, campaigns(1))
        with pytest.raises(KeyError):
            await orchestrator.fix_issue("nope")


@pytest.mark.asyncio
class TestUserActions:
    """Tests for expand, retry and bulk status."""

    async def test_expand_fetches_once(self, orchestrator, client):
        client.responses["c0"] = [ad_group_row("ag1", "c0")]
        await orchestrator.start(CONTEXT, campaigns(1))

        assert await orchestrator.expand_campaign("c0") is True
        assert await orchestrator.expand_campaign("c0") is False
        assert await orchestrator.expand_campaign("c0") is True
        assert len(client.calls_for("c0")) == 1
        assert orchestrator.visible_ids() == ["c0", "ag1"]

    async def test_expand_failure_is_recorded_on_node(self, orchestrator, client, store):
        client.responses["c0"] = ApiError("nope")
        await orchestrator.start(CONTEXT, campaigns(1))
        assert await orchestrator.expand_campaign("c0") is True
        assert store.error_for("c0") == "nope"

    async def test_retry_forces_fetch(self, orchestrator, client, store):
        client.responses["c0"] = [ad_group_row("ag1", "c0")]
        await orchestrator.start(CONTEXT, campaigns(1))
        await orchestrator.expand_campaign("c0")
        client.responses["c0"] = [ad_group_row("ag2", "c0")]

        children = await orchestrator.retry("c0")
        assert [ag.id for ag in children] == ["ag2"]

    async def test_retry_raises_on_failure(self, orchestrator, client):
        client.responses["c0"] = ApiError("still broken")
        await orchestrator.start(CONTEXT, campaigns(1))
        with pytest.raises(ApiError):
            await orchestrator.retry("c0")

    async def test_retry_unknown_node(self, orchestrator):
        await orchestrator.start(CONTEXT, campaigns(1))
        with pytest.raises(KeyError):
            await orchestrator.retry("nope")

    async def test_bulk_status_on_selection(self, orchestrator, store, mutations):
        await orchestrator.start(CONTEXT, campaigns(2))
        assert orchestrator.select_all() == ["c0", "c1"]
        result = await orchestrator.bulk_set_status(EntityStatus.PAUSED)
        assert result.succeeded == ["c0", "c1"]
        assert all(c.status == PAUSED for c in store.campaigns)
