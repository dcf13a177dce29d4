"""Staged background sync of the campaign hierarchy.

A sync runs in three independent stages:

- core: for the first N active campaigns (input order), fetch ad-groups,
  then line items for the first M ad-groups of each, one request at a time
  with a fixed pause between siblings. A failing node is recorded on the
  node and the pass moves on.
- actions: after core is done, one small poll of the latest change events.
- errors: the server issue scan, only while the issue review is open.

Changing the account or date range (start()) cancels the running pass
through its CancellationToken, discards the tree and every fetched mark,
and re-seeds from the initial batch plus the hierarchy cache.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable, Optional, Sequence

from analytics.issue_extractor import (
    FixAction,
    Issue,
    extract_issues,
    filter_issues,
    issue_from_dict,
    merge_issues,
    remediation_for,
    sort_issues,
)
from collectors.activities import ActivitiesClient
from collectors.errors import ClassifiedError
from collectors.issues import IssuesClient
from services.entity_actions import BulkStatusResult, EntityActions
from services.fetch_scheduler import CancellationToken, FetchScheduler, StaleResultError
from services.hierarchy_store import HierarchyStore, SelectionState, SortState
from services.notifications import Notifier
from storage.adapters import campaign_from_dict
from storage.hierarchy_cache import HierarchyCacheRepository
from storage.models import (
    Campaign,
    EntityAction,
    EntityLevel,
    EntityStatus,
    HourlyEntry,
    SyncContext,
)

if TYPE_CHECKING:
    from analytics.recommendation_engine import RecommendationEngine

logger = logging.getLogger(__name__)


class StageState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    DONE = "done"


# Contribution of each stage to the blended percentage
CORE_WEIGHTS = {StageState.IDLE: 0, StageState.LOADING: 40, StageState.DONE: 70}
ACTIONS_WEIGHTS = {StageState.IDLE: 0, StageState.LOADING: 15, StageState.DONE: 30}


@dataclass
class SyncState:
    """Progress of the three sync stages."""

    core: StageState = StageState.IDLE
    actions: StageState = StageState.IDLE
    errors: StageState = StageState.IDLE

    @property
    def percent(self) -> int:
        """Coarse blended progress, 0-100."""
        return min(100, CORE_WEIGHTS[self.core] + ACTIONS_WEIGHTS[self.actions])

    def reset(self) -> None:
        self.core = StageState.IDLE
        self.actions = StageState.IDLE
        self.errors = StageState.IDLE

    def to_dict(self) -> dict:
        return {
            "core": self.core.value,
            "actions": self.actions.value,
            "errors": self.errors.value,
            "percent": self.percent,
        }


class SyncOrchestrator:
    """Coordinates the hierarchy store, fetch scheduler and background stages.

    Args:
        scheduler: Issues the per-node child fetches.
        store: The hierarchy being populated.
        cache: Optional warm-start cache.
        activities_client: Source of the latest-actions poll.
        issues_client: Source of server-side issues.
        entity_actions: Mutation service for bulk status and issue fixes.
        recommendations: Regenerated whenever the campaign set changes.
        sleep: Awaitable sleep, injectable for tests.

    Example:
        >>> orchestrator = SyncOrchestrator(scheduler, store, cache=cache)
        >>> await orchestrator.refresh(SyncContext("act_1", "2026-10-01", "2026-10-07"))
        >>> await orchestrator.run_preload()
        >>> orchestrator.state.percent
        100
    """

    def __init__(
        self,
        scheduler: FetchScheduler,
        store: HierarchyStore,
        cache: Optional[HierarchyCacheRepository] = None,
        activities_client: Optional[ActivitiesClient] = None,
        issues_client: Optional[IssuesClient] = None,
        entity_actions: Optional[EntityActions] = None,
        recommendations: Optional["RecommendationEngine"] = None,
        notifier: Optional[Notifier] = None,
        max_active_campaigns: int = 8,
        max_ad_groups_per_campaign: int = 10,
        line_item_spacing_seconds: float = 0.26,
        empty_campaign_spacing_seconds: float = 0.32,
        campaign_spacing_seconds: float = 0.36,
        actions_delay_seconds: float = 1.2,
        actions_window_days: int = 3,
        actions_limit: int = 30,
        poll_timeout_seconds: float = 7.0,
        issues_timeout_seconds: float = 20.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.scheduler = scheduler
        self.store = store
        self.cache = cache
        self.activities_client = activities_client
        self.issues_client = issues_client
        self.entity_actions = entity_actions
        self.recommendations = recommendations
        self.notifier = notifier or scheduler.notifier

        self.max_active_campaigns = max_active_campaigns
        self.max_ad_groups_per_campaign = max_ad_groups_per_campaign
        self.line_item_spacing_seconds = line_item_spacing_seconds
        self.empty_campaign_spacing_seconds = empty_campaign_spacing_seconds
        self.campaign_spacing_seconds = campaign_spacing_seconds
        self.actions_delay_seconds = actions_delay_seconds
        self.actions_window_days = actions_window_days
        self.actions_limit = actions_limit
        self.poll_timeout_seconds = poll_timeout_seconds
        self.issues_timeout_seconds = issues_timeout_seconds
        self._sleep = sleep

        self.context: Optional[SyncContext] = None
        self.token = CancellationToken()
        self.state = SyncState()
        self.selection = SelectionState()
        self.sort = SortState()
        self.hourly: list[HourlyEntry] = []
        self.latest_actions: dict[str, list[EntityAction]] = {}
        self.server_issues: list[Issue] = []
        self.issue_review_open = False
        self._errors_task: Optional[asyncio.Task] = None
        self._preload_task: Optional[asyncio.Task] = None
        self._preload_token = self.token

    # ------------------------------------------------------------------
    # Context changes
    # ------------------------------------------------------------------

    async def start(
        self,
        context: SyncContext,
        campaigns: Iterable[Campaign],
        hourly: Optional[Sequence[HourlyEntry]] = None,
    ) -> int:
        """Discard everything and seed a new account/date range.

        Returns:
            Number of campaigns hydrated from the cache.
        """
        self.token.cancel()
        self.token = CancellationToken()
        self.context = context

        self.scheduler.set_context(context)
        self.scheduler.reset()
        self.store.load_campaigns(campaigns)
        self.selection.reset()
        self.state.reset()
        self.hourly = list(hourly or [])
        self.latest_actions = {}
        self.server_issues = []

        hydrated = 0
        if self.cache is not None:
            cached = await self.cache.load(context)
            if cached:
                hydrated = self.store.hydrate(cached)

        logger.info(
            f"Sync started for {context.account_id} ({context.since or 'na'}..{context.until or 'na'}): "
            f"{len(self.store.campaigns)} campaigns, {hydrated} hydrated from cache"
        )
        self._regenerate_recommendations()
        return hydrated

    async def refresh(
        self,
        context: SyncContext,
        hourly: Optional[Sequence[HourlyEntry]] = None,
    ) -> int:
        """Fetch the initial campaign batch for a context and start() with it."""
        rows = await self.scheduler.client.list_campaigns(context.since, context.until)
        return await self.start(context, [campaign_from_dict(row) for row in rows], hourly)

    def launch_preload(self) -> asyncio.Task:
        """Run the core and actions stages as a background task."""
        running = self._preload_task
        if running is not None and not running.done() and not self._preload_token.cancelled:
            logger.debug("Preload already running")
            return running
        self._preload_token = self.token
        self._preload_task = asyncio.ensure_future(self.run_preload(self.token))
        return self._preload_task

    async def run_preload(self, token: Optional[CancellationToken] = None) -> None:
        token = token or self.token
        await self.run_core_preload(token)
        if not token.cancelled:
            await self.run_actions_stage(token)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def run_core_preload(self, token: Optional[CancellationToken] = None) -> None:
        """Warm the first active campaigns and their first ad-groups."""
        token = token or self.token
        self.state.core = StageState.LOADING

        targets = [c for c in self.store.campaigns if c.status == EntityStatus.ACTIVE]
        targets = targets[: self.max_active_campaigns]
        failures = 0

        for campaign in targets:
            if token.cancelled:
                return
            try:
                ad_groups = await self.scheduler.fetch(campaign.id, EntityLevel.CAMPAIGN, token=token)
            except StaleResultError:
                return
            except ClassifiedError as e:
                failures += 1
                logger.warning(f"Preload skipped campaign {campaign.id}: {e.message}")
                ad_groups = []

            for ad_group in ad_groups[: self.max_ad_groups_per_campaign]:
                if token.cancelled:
                    return
                try:
                    await self.scheduler.fetch(ad_group.id, EntityLevel.AD_GROUP, token=token)
                except StaleResultError:
                    return
                except ClassifiedError as e:
                    failures += 1
                    logger.warning(f"Preload skipped ad-group {ad_group.id}: {e.message}")
                await self._sleep(self.line_item_spacing_seconds)

            if token.cancelled:
                return
            await self._sleep(
                self.campaign_spacing_seconds if ad_groups else self.empty_campaign_spacing_seconds
            )

        if token.cancelled:
            return
        self.state.core = StageState.DONE
        logger.info(f"Core preload done: {len(targets)} campaigns, {failures} failed nodes")
        await self._persist_cache()
        self._regenerate_recommendations()

    async def run_actions_stage(self, token: Optional[CancellationToken] = None) -> None:
        """Poll the latest change events once core is done."""
        token = token or self.token
        if self.state.core != StageState.DONE:
            logger.debug("Actions stage waits for core preload")
            return

        self.state.actions = StageState.LOADING
        try:
            await self._sleep(self.actions_delay_seconds)
            if token.cancelled or self.activities_client is None:
                return
            events = await self.activities_client.latest_actions(
                since_days=self.actions_window_days,
                limit=self.actions_limit,
                timeout=self.poll_timeout_seconds,
            )
            if token.cancelled:
                return
            self.latest_actions = {
                entity_id: [EntityAction(**event) for event in items]
                for entity_id, items in events.items()
            }
            logger.info(f"Loaded latest actions for {len(self.latest_actions)} entities")
        except ClassifiedError as e:
            logger.warning(f"Latest actions unavailable: {e.message}")
        finally:
            if not token.cancelled:
                self.state.actions = StageState.DONE

    def open_issue_review(self) -> Optional[asyncio.Task]:
        """Mark the issue review open and start a server issue scan."""
        self.issue_review_open = True
        if self.issues_client is None:
            return None
        if self._errors_task is not None and not self._errors_task.done():
            return self._errors_task
        self._errors_task = asyncio.ensure_future(self.run_errors_stage(self.token))
        return self._errors_task

    def close_issue_review(self) -> None:
        self.issue_review_open = False
        self.state.errors = StageState.IDLE

    async def run_errors_stage(self, token: Optional[CancellationToken] = None) -> None:
        """Scan server-side issues. Keeps the last good result on failure."""
        token = token or self.token
        if self.issues_client is None or not self.issue_review_open:
            return

        self.state.errors = StageState.LOADING
        try:
            rows = await self.issues_client.scan_issues(timeout=self.issues_timeout_seconds)
            if token.cancelled or not self.issue_review_open:
                return
            self.server_issues = [issue_from_dict(row) for row in rows]
        except ClassifiedError as e:
            logger.warning(f"Issue scan failed, keeping {len(self.server_issues)} known issues: {e.message}")
        finally:
            if not token.cancelled and self.issue_review_open:
                self.state.errors = StageState.DONE

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def expand_campaign(self, campaign_id: str) -> bool:
        """Toggle a campaign open, fetching its ad-groups on first expansion.

        Returns:
            True if the campaign is now expanded.
        """
        expanded = self.selection.toggle_campaign(campaign_id)
        if expanded:
            await self._fetch_on_expand(campaign_id, EntityLevel.CAMPAIGN)
        return expanded

    async def expand_ad_group(self, ad_group_id: str) -> bool:
        """Toggle an ad-group open, fetching its line items on first expansion."""
        expanded = self.selection.toggle_ad_group(ad_group_id)
        if expanded:
            await self._fetch_on_expand(ad_group_id, EntityLevel.AD_GROUP)
        return expanded

    async def retry(self, node_id: str) -> list:
        """Force one fetch for a node, bypassing the fetched mark and cooldown.

        Raises:
            KeyError: Unknown node.
            ClassifiedError: The retry failed (also recorded on the node).
        """
        level = self.store.level_of(node_id)
        if level not in (EntityLevel.CAMPAIGN, EntityLevel.AD_GROUP):
            raise KeyError(node_id)
        children = await self.scheduler.fetch(node_id, level, force_refresh=True, token=self.token)
        await self._persist_cache()
        self._regenerate_recommendations()
        return children

    def visible_ids(self) -> list[str]:
        return self.store.flatten_ids(
            self.selection.expanded_campaigns, self.selection.expanded_ad_groups
        )

    def select_all(self) -> list[str]:
        ids = self.visible_ids()
        self.selection.select_all(ids)
        return ids

    async def bulk_set_status(self, status: EntityStatus) -> BulkStatusResult:
        """Set the status of every selected entity."""
        if self.entity_actions is None:
            raise RuntimeError("No entity actions configured")
        result = await self.entity_actions.bulk_set_status(sorted(self.selection.selected), status)
        self._regenerate_recommendations()
        return result

    def issues(
        self,
        active_campaigns_only: bool = False,
        recent_only: bool = False,
    ) -> list[Issue]:
        """Server issues merged over locally detected ones, critical first."""
        merged = merge_issues(self.server_issues, extract_issues(self.store.campaigns))
        merged = filter_issues(
            merged, active_campaigns_only=active_campaigns_only, recent_only=recent_only
        )
        return sort_issues(merged)

    async def fix_issue(self, issue_id: str) -> FixAction:
        """Apply the one-click fix for an issue.

        Raises:
            KeyError: No issue with this id.
            ClassifiedError: The mutation failed (rolled back).
        """
        if self.entity_actions is None:
            raise RuntimeError("No entity actions configured")
        issue = next((i for i in self.issues() if i.id == issue_id), None)
        if issue is None:
            raise KeyError(issue_id)

        ad_group = self.store.get_ad_group(issue.ad_group_id) if issue.ad_group_id else None
        fix = remediation_for(issue, ad_group.daily_budget if ad_group else None)
        if fix.kind == "set_budget":
            await self.entity_actions.set_budget(fix.entity_id, fix.daily_budget)
        else:
            await self.entity_actions.set_status(fix.entity_id, fix.status)
        logger.info(f"Fixed issue {issue_id} via {fix.kind} on {fix.entity_id}")
        return fix

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _fetch_on_expand(self, node_id: str, level: EntityLevel) -> None:
        if self.scheduler.is_fetched(node_id):
            return
        try:
            await self.scheduler.fetch(node_id, level, token=self.token)
        except StaleResultError:
            return
        except ClassifiedError as e:
            logger.warning(f"Expand of {level.value} {node_id} failed: {e.message}")
            return
        await self._persist_cache()
        self._regenerate_recommendations()

    async def _persist_cache(self) -> None:
        if self.cache is None or self.context is None or self.token.cancelled:
            return
        await self.cache.save(self.context, self.store.campaigns)

    def _regenerate_recommendations(self) -> None:
        if self.recommendations is not None:
            self.recommendations.regenerate(self.store.campaigns, self.hourly or None)
