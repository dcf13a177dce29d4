"""
Recommendation lifecycle management.

The rule generator (analytics.recommendation_rules) decides WHAT to
recommend. This engine owns what happens afterwards:

    pending --dismiss--> dismissed
    pending --apply--> confirming --apply within window--> applying --> applied
    confirming --window elapses--> pending
    critical: pending --apply--> applying --> applied

Applying dispatches on the action type to a handler that performs the
change through EntityActions and returns a human-readable summary.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence

from analytics.recommendation_models import (
    ACCOUNT_LEVEL_ID,
    SEVERITY_ORDER,
    ActionType,
    Recommendation,
    RecommendationAction,
    RecommendationCategory,
    RecommendationSeverity,
    RecommendationStatus,
)
from analytics.recommendation_rules import (
    estimate_savings,
    format_hour_range,
    generate_recommendations,
)
from collectors.errors import ClassifiedError
from services.entity_actions import EntityActions, UnknownEntityError
from services.hierarchy_store import HierarchyStore
from services.notifications import Notifier
from storage.models import Campaign, EntityLevel, EntityStatus, HourlyEntry

logger = logging.getLogger(__name__)


# =============================================================================
# Enums and results
# =============================================================================

class ApplyPhase(str, Enum):
    """Transient UI phase of a pending recommendation."""
    IDLE = "idle"
    CONFIRMING = "confirming"
    APPLYING = "applying"


class UnknownRecommendationError(KeyError):
    """No recommendation with the given id."""


@dataclass
class ApplyAllResult:
    """Outcome of applying every pending recommendation."""
    applied: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"applied": list(self.applied), "failed": dict(self.failed)}


ENTITY_LABELS = {
    EntityLevel.CAMPAIGN: "campaign",
    EntityLevel.AD_GROUP: "ad group",
    EntityLevel.LINE_ITEM: "line item",
}

APPLY_ERRORS = (ClassifiedError, UnknownEntityError, ValueError)

# Handler method per action type; every ActionType must have one.
ACTION_HANDLERS = {
    ActionType.PAUSE_ENTITY: "_apply_status",
    ActionType.ENABLE_ENTITY: "_apply_status",
    ActionType.INCREASE_BUDGET: "_apply_budget",
    ActionType.DECREASE_BUDGET: "_apply_budget",
    ActionType.SCALE_BUDGET: "_apply_budget",
    ActionType.REALLOCATE_BUDGET: "_apply_reallocation",
    ActionType.CHANGE_BID_STRATEGY: "_note_bid_strategy",
    ActionType.REFRESH_CREATIVE: "_note_creative",
    ActionType.ADJUST_TARGETING: "_note_targeting",
    ActionType.ADJUST_DAYPARTING: "_note_dayparting",
}

assert set(ACTION_HANDLERS) == set(ActionType), "unhandled recommendation action type"


def _format_budget(value: Optional[float]) -> str:
    return f"${value:.2f}" if value is not None else "$?"


def _error_text(error: Exception) -> str:
    if isinstance(error, ClassifiedError):
        return error.message
    if isinstance(error, UnknownEntityError):
        return f"Unknown entity {error.args[0]}"
    return str(error)


# =============================================================================
# Engine
# =============================================================================

class RecommendationEngine:
    """Holds the current recommendations and drives apply/dismiss.

    Args:
        actions: Mutation service used by the apply handlers.
        store: Hierarchy the recommendations are generated from.
        notifier: Receives applied / failed notices.
        confirm_window_seconds: How long a non-critical recommendation waits
            for its confirming second apply.
        remember_dismissed: Re-apply dismissals after regeneration, matched
            on (category, action type, entity id).
        generator: Rule function producing recommendations.
        clock: Monotonic clock, injectable for tests.

    Example:
        >>> engine = RecommendationEngine(actions, store)
        >>> engine.regenerate()
        >>> await engine.request_apply("rec-gen-1")
        <ApplyPhase.CONFIRMING: 'confirming'>
    """

    def __init__(
        self,
        actions: EntityActions,
        store: HierarchyStore,
        notifier: Optional[Notifier] = None,
        confirm_window_seconds: float = 3.0,
        remember_dismissed: bool = False,
        generator: Callable[..., list[Recommendation]] = generate_recommendations,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.actions = actions
        self.store = store
        self.notifier = notifier or Notifier()
        self.confirm_window_seconds = confirm_window_seconds
        self.remember_dismissed = remember_dismissed
        self._generator = generator
        self._clock = clock

        self.recommendations: list[Recommendation] = []
        self.applying_all = False
        self._phases: dict[str, ApplyPhase] = {}
        self._confirm_started: dict[str, float] = {}
        self._confirm_timers: dict[str, asyncio.TimerHandle] = {}
        self._dismissed: set[tuple[str, str, str]] = set()

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    def regenerate(
        self,
        campaigns: Optional[Sequence[Campaign]] = None,
        hourly: Optional[Sequence[HourlyEntry]] = None,
    ) -> list[Recommendation]:
        """Replace the recommendation list with a fresh generator run."""
        self._cancel_all_timers()
        self._phases.clear()
        self._confirm_started.clear()

        if campaigns is None:
            campaigns = self.store.campaigns
        self.recommendations = list(self._generator(campaigns, hourly))

        restored = 0
        if self.remember_dismissed:
            for rec in self.recommendations:
                if rec.fingerprint in self._dismissed:
                    rec.status = RecommendationStatus.DISMISSED
                    restored += 1

        logger.info(
            f"Regenerated {len(self.recommendations)} recommendations"
            + (f" ({restored} previously dismissed)" if restored else "")
        )
        return self.recommendations

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, rec_id: str) -> Recommendation:
        for rec in self.recommendations:
            if rec.id == rec_id:
                return rec
        raise UnknownRecommendationError(rec_id)

    def phase(self, rec_id: str) -> ApplyPhase:
        """Current phase, reverting an expired confirmation first."""
        phase = self._phases.get(rec_id, ApplyPhase.IDLE)
        if phase == ApplyPhase.CONFIRMING and self._confirm_expired(rec_id):
            self._revert_confirmation(rec_id)
            return ApplyPhase.IDLE
        return phase

    def visible(self, category: Optional[RecommendationCategory] = None) -> list[Recommendation]:
        """Non-dismissed recommendations, optionally of one category, by severity."""
        recs = [
            r for r in self.recommendations
            if r.status != RecommendationStatus.DISMISSED
            and (category is None or r.category == RecommendationCategory(category))
        ]
        return sorted(recs, key=lambda r: SEVERITY_ORDER[r.severity])

    def pending(self, category: Optional[RecommendationCategory] = None) -> list[Recommendation]:
        return [r for r in self.visible(category) if r.status == RecommendationStatus.PENDING]

    def stats(self) -> dict[str, int]:
        pending = self.pending()
        counts = {
            "total": len(pending),
            "applied": sum(1 for r in self.recommendations if r.status == RecommendationStatus.APPLIED),
            "dismissed": sum(1 for r in self.recommendations if r.status == RecommendationStatus.DISMISSED),
        }
        for severity in RecommendationSeverity:
            counts[severity.value] = sum(1 for r in pending if r.severity == severity)
        return counts

    def category_counts(self) -> dict[str, int]:
        counts = {category.value: 0 for category in RecommendationCategory}
        for rec in self.pending():
            counts[rec.category.value] += 1
        return counts

    def estimated_savings(self) -> float:
        return estimate_savings(self.recommendations)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def dismiss(self, rec_id: str) -> Recommendation:
        rec = self.get(rec_id)
        if rec.status != RecommendationStatus.PENDING:
            return rec
        if self._phases.get(rec_id) == ApplyPhase.APPLYING:
            raise ValueError(f"Recommendation {rec_id} is being applied")
        self._revert_confirmation(rec_id)
        rec.status = RecommendationStatus.DISMISSED
        self._dismissed.add(rec.fingerprint)
        logger.info(f"Dismissed recommendation {rec_id}: {rec.title}")
        return rec

    async def request_apply(self, rec_id: str) -> ApplyPhase:
        """Handle one apply click.

        Critical recommendations apply immediately. Anything else enters
        confirming on the first click and applies on a second click within
        the confirm window.

        Returns:
            The phase after the click (IDLE once applied).

        Raises:
            UnknownRecommendationError: No such recommendation.
            ClassifiedError: The remote change failed (reported, status unchanged).
        """
        rec = self.get(rec_id)
        if rec.status != RecommendationStatus.PENDING:
            return ApplyPhase.IDLE

        current = self.phase(rec_id)
        if current == ApplyPhase.APPLYING:
            return current

        if rec.severity == RecommendationSeverity.CRITICAL or current == ApplyPhase.CONFIRMING:
            self._revert_confirmation(rec_id)
            await self._apply(rec)
            return ApplyPhase.IDLE

        self._phases[rec_id] = ApplyPhase.CONFIRMING
        self._confirm_started[rec_id] = self._clock()
        loop = asyncio.get_running_loop()
        self._confirm_timers[rec_id] = loop.call_later(
            self.confirm_window_seconds, self._revert_confirmation, rec_id
        )
        return ApplyPhase.CONFIRMING

    async def apply_all(self) -> ApplyAllResult:
        """Apply every pending recommendation in severity order, one at a time.

        A failing item is recorded and the loop moves on to the next.
        """
        result = ApplyAllResult()
        if self.applying_all:
            logger.warning("Apply all already running")
            return result

        self.applying_all = True
        try:
            for rec in self.pending():
                if self._phases.get(rec.id) == ApplyPhase.APPLYING:
                    continue
                self._revert_confirmation(rec.id)
                try:
                    await self._apply(rec)
                    result.applied.append(rec.id)
                except APPLY_ERRORS as e:
                    result.failed[rec.id] = _error_text(e)
        finally:
            self.applying_all = False

        logger.info(f"Apply all: {len(result.applied)} applied, {len(result.failed)} failed")
        return result

    async def _apply(self, rec: Recommendation) -> None:
        self._phases[rec.id] = ApplyPhase.APPLYING
        handler = getattr(self, ACTION_HANDLERS[rec.action.type])
        try:
            summary = await handler(rec.action)
        except APPLY_ERRORS as e:
            logger.error(f"Failed to apply recommendation {rec.id} ({rec.title}): {_error_text(e)}")
            self.notifier.error(f'Could not apply "{rec.title}": {_error_text(e)}')
            raise
        finally:
            self._phases.pop(rec.id, None)

        rec.status = RecommendationStatus.APPLIED
        rec.applied_summary = summary
        logger.info(f"Applied recommendation {rec.id}: {summary}")
        self.notifier.success(summary)

    def _confirm_expired(self, rec_id: str) -> bool:
        started = self._confirm_started.get(rec_id)
        return started is not None and self._clock() - started > self.confirm_window_seconds

    def _revert_confirmation(self, rec_id: str) -> None:
        timer = self._confirm_timers.pop(rec_id, None)
        if timer is not None:
            timer.cancel()
        self._confirm_started.pop(rec_id, None)
        if self._phases.get(rec_id) == ApplyPhase.CONFIRMING:
            del self._phases[rec_id]

    def _cancel_all_timers(self) -> None:
        for timer in self._confirm_timers.values():
            timer.cancel()
        self._confirm_timers.clear()

    # -------------------------------------------------------------------------
    # Action handlers
    # -------------------------------------------------------------------------

    async def _apply_status(self, action: RecommendationAction) -> str:
        if action.type == ActionType.PAUSE_ENTITY:
            status, verb = action.new_status or EntityStatus.PAUSED, "Paused"
        else:
            status, verb = action.new_status or EntityStatus.ACTIVE, "Enabled"
        if action.entity_id != ACCOUNT_LEVEL_ID:
            await self.actions.set_status(action.entity_id, status)
        return f"{verb} {ENTITY_LABELS[action.entity_type]}: {action.entity_name}"

    async def _apply_budget(self, action: RecommendationAction) -> str:
        if (
            action.new_budget is not None
            and action.entity_type in (EntityLevel.CAMPAIGN, EntityLevel.AD_GROUP)
            and action.entity_id != ACCOUNT_LEVEL_ID
        ):
            await self.actions.set_budget(action.entity_id, action.new_budget)
        return (
            f"Budget changed: {_format_budget(action.current_budget)} → "
            f"{_format_budget(action.new_budget)}"
        )

    async def _apply_reallocation(self, action: RecommendationAction) -> str:
        if (
            action.new_budget is not None
            and action.entity_type in (EntityLevel.CAMPAIGN, EntityLevel.AD_GROUP)
            and action.entity_id != ACCOUNT_LEVEL_ID
        ):
            await self.actions.set_budget(action.entity_id, action.new_budget)

            shift = action.new_budget - (action.current_budget or 0)
            target = self.store.get_entity(action.target_entity_id) if action.target_entity_id else None
            if target is not None and target.daily_budget is not None and shift > 0:
                await self.actions.set_budget(target.id, max(0.0, target.daily_budget - shift))

        if not action.target_entity_name:
            return f"Budget reallocation noted for {action.entity_name}"
        return f"Budget reallocated from {action.target_entity_name} to {action.entity_name}"

    async def _note_bid_strategy(self, action: RecommendationAction) -> str:
        suggestion = f" (suggested bid {_format_budget(action.suggested_bid)})" if action.suggested_bid else ""
        return f"Bid strategy change noted for {action.entity_name}: {action.new_bid_strategy or 'review'}{suggestion}"

    async def _note_creative(self, action: RecommendationAction) -> str:
        return f"Creative refresh noted for {action.entity_name}"

    async def _note_targeting(self, action: RecommendationAction) -> str:
        return f"Targeting adjustment noted for {action.entity_name}"

    async def _note_dayparting(self, action: RecommendationAction) -> str:
        multiplier = action.budget_multiplier if action.budget_multiplier is not None else 1.0
        return f"Day-parting schedule noted: {format_hour_range(action.hours)} at {multiplier:g}x budget"
