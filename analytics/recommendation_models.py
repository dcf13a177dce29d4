"""Data models for optimization recommendations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from storage.models import EntityLevel, EntityStatus


# =============================================================================
# Enums
# =============================================================================

class RecommendationSeverity(str, Enum):
    """Recommendation urgency. Pending lists sort in this order."""
    CRITICAL = "critical"        # Losing money now, applies without confirmation
    WARNING = "warning"          # Degrading performance
    OPPORTUNITY = "opportunity"  # Room to grow


SEVERITY_ORDER = {
    RecommendationSeverity.CRITICAL: 0,
    RecommendationSeverity.WARNING: 1,
    RecommendationSeverity.OPPORTUNITY: 2,
}


class RecommendationCategory(str, Enum):
    BUDGET = "budget"
    CREATIVE = "creative"
    TARGETING = "targeting"
    BID_STRATEGY = "bid_strategy"
    STATUS = "status"
    DAYPARTING = "dayparting"


class RecommendationStatus(str, Enum):
    """Lifecycle status. applied and dismissed are terminal."""
    PENDING = "pending"
    APPLIED = "applied"
    DISMISSED = "dismissed"


class ActionType(str, Enum):
    """What applying a recommendation does."""
    PAUSE_ENTITY = "pause_entity"
    ENABLE_ENTITY = "enable_entity"
    INCREASE_BUDGET = "increase_budget"
    DECREASE_BUDGET = "decrease_budget"
    SCALE_BUDGET = "scale_budget"
    REALLOCATE_BUDGET = "reallocate_budget"
    CHANGE_BID_STRATEGY = "change_bid_strategy"
    REFRESH_CREATIVE = "refresh_creative"
    ADJUST_TARGETING = "adjust_targeting"
    ADJUST_DAYPARTING = "adjust_dayparting"


# Entity id used by account-wide recommendations
ACCOUNT_LEVEL_ID = "account-level"


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class RecommendationAction:
    """The action a recommendation proposes, with its type-specific payload."""
    type: ActionType
    entity_type: EntityLevel
    entity_id: str
    entity_name: str

    new_status: Optional[EntityStatus] = None
    new_budget: Optional[float] = None
    current_budget: Optional[float] = None
    new_bid_strategy: Optional[str] = None
    suggested_bid: Optional[float] = None
    target_entity_id: Optional[str] = None     # Reallocation source / duplication target
    target_entity_name: Optional[str] = None
    hours: list[int] = field(default_factory=list)  # Day-parting hours
    budget_multiplier: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "new_status": self.new_status.value if self.new_status else None,
            "new_budget": self.new_budget,
            "current_budget": self.current_budget,
            "new_bid_strategy": self.new_bid_strategy,
            "suggested_bid": self.suggested_bid,
            "target_entity_id": self.target_entity_id,
            "target_entity_name": self.target_entity_name,
            "hours": list(self.hours),
            "budget_multiplier": self.budget_multiplier,
        }


@dataclass
class Recommendation:
    """A proposed remediation with its lifecycle status."""
    id: str
    severity: RecommendationSeverity
    category: RecommendationCategory
    title: str
    analysis: str
    recommended_action: str
    impact_estimate: str
    action: RecommendationAction

    status: RecommendationStatus = RecommendationStatus.PENDING
    created_at: str = ""
    applied_summary: Optional[str] = None   # Populated after apply

    def __post_init__(self):
        if not self.created_at:
            self.created_at = datetime.now(timezone.utc).isoformat()

    @property
    def fingerprint(self) -> tuple[str, str, str]:
        """Identity that survives regeneration (ids do not)."""
        return (self.category.value, self.action.type.value, self.action.entity_id)

    def to_dict(self) -> dict:
        """Convert recommendation to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "severity": self.severity.value,
            "category": self.category.value,
            "title": self.title,
            "analysis": self.analysis,
            "recommended_action": self.recommended_action,
            "impact_estimate": self.impact_estimate,
            "action": self.action.to_dict(),
            "status": self.status.value,
            "created_at": self.created_at,
            "applied_summary": self.applied_summary,
        }
