"""Data models for the ads hierarchy.

This module contains all dataclass definitions shared by the store, the
scheduler, the issue extractor and the recommendation engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


class EntityStatus(str, Enum):
    """Configured status of a campaign, ad-group or line-item."""

    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"


class EntityLevel(str, Enum):
    """Position of an entity in the hierarchy."""

    CAMPAIGN = "campaign"
    AD_GROUP = "adgroup"
    LINE_ITEM = "lineitem"


class FetchStatus(str, Enum):
    """Child-fetch state of a campaign or ad-group node."""

    UNFETCHED = "unfetched"
    LOADING = "loading"
    FETCHED = "fetched"
    ERRORED = "errored"


class FetchMode(str, Enum):
    """Fetch profile: full fields with insights, or a reduced field set."""

    FAST = "fast"
    BASIC = "basic"


@dataclass
class PolicyInfo:
    """Policy and delivery review information.

    Attributes:
        effective_status: Platform-computed delivery status string.
        review_feedback: Review feedback text, empty when none.
        issues_info: Issue descriptions reported by the platform.
    """

    effective_status: str = ""
    review_feedback: str = ""
    issues_info: list[str] = field(default_factory=list)


@dataclass
class LineItem:
    """Leaf entity (an individual ad)."""

    id: str
    name: str
    status: EntityStatus = EntityStatus.PAUSED
    metrics: dict[str, float] = field(default_factory=dict)
    policy_info: Optional[PolicyInfo] = None
    creative_type: Optional[str] = None

    level = EntityLevel.LINE_ITEM


@dataclass
class AdGroup:
    """Middle entity. `line_items` is always a list, never None."""

    id: str
    name: str
    status: EntityStatus = EntityStatus.PAUSED
    daily_budget: Optional[float] = None
    lifetime_budget: Optional[float] = None
    bid_amount: Optional[float] = None
    interests: list[str] = field(default_factory=list)
    custom_audiences: list[str] = field(default_factory=list)
    metrics: dict[str, float] = field(default_factory=dict)
    policy_info: Optional[PolicyInfo] = None
    line_items: list[LineItem] = field(default_factory=list)

    level = EntityLevel.AD_GROUP


@dataclass
class Campaign:
    """Top-level entity. `ad_groups` is always a list, never None."""

    id: str
    name: str
    status: EntityStatus = EntityStatus.PAUSED
    objective: Optional[str] = None
    bid_strategy: Optional[str] = None
    daily_budget: Optional[float] = None
    lifetime_budget: Optional[float] = None
    metrics: dict[str, float] = field(default_factory=dict)
    policy_info: Optional[PolicyInfo] = None
    ad_groups: list[AdGroup] = field(default_factory=list)

    level = EntityLevel.CAMPAIGN


Entity = Union[Campaign, AdGroup, LineItem]


@dataclass
class EntityAction:
    """A recent change event on an entity (from the activities feed)."""

    entity_id: str
    event_type: str
    description: str = ""
    actor: Optional[str] = None
    occurred_at: Optional[str] = None


@dataclass
class HourlyEntry:
    """One hour of account performance, used by the day-parting rules."""

    date: str
    hour: int
    spend: float = 0.0
    revenue: float = 0.0
    conversions: float = 0.0


@dataclass(frozen=True)
class SyncContext:
    """The account and date range every fetch and cache entry is scoped to."""

    account_id: str
    since: Optional[str] = None
    until: Optional[str] = None

    @property
    def cache_key(self) -> str:
        return f"ads-manager-hierarchy:{self.account_id}:{self.since or 'na'}:{self.until or 'na'}"
