"""Sync and hierarchy schema models."""

from typing import Optional
from pydantic import BaseModel, Field


class SyncStartRequest(BaseModel):
    """Account and date range to sync."""
    account_id: Optional[str] = None
    since: Optional[str] = Field(default=None, description="Range start (YYYY-MM-DD)")
    until: Optional[str] = Field(default=None, description="Range end (YYYY-MM-DD)")
    preload: bool = True


class SyncStateResponse(BaseModel):
    """Progress of the three sync stages."""
    core: str
    actions: str
    errors: str
    percent: int


class SyncStartResponse(BaseModel):
    """Result of starting a sync."""
    account_id: str
    since: Optional[str] = None
    until: Optional[str] = None
    campaign_count: int
    hydrated_from_cache: int
    state: SyncStateResponse


class EntityActionResponse(BaseModel):
    """A recent change event on an entity."""
    entity_id: str
    event_type: str
    description: str = ""
    actor: Optional[str] = None
    occurred_at: Optional[str] = None


class EntityResponse(BaseModel):
    """One node of the hierarchy (children omitted)."""
    id: str
    name: str
    level: str
    status: str
    daily_budget: Optional[float] = None
    lifetime_budget: Optional[float] = None
    bid_amount: Optional[float] = None
    metrics: dict[str, float] = Field(default_factory=dict)
    effective_status: Optional[str] = None
    fetch_status: str
    error: Optional[str] = None
    child_count: int = 0


class HierarchyResponse(BaseModel):
    """Flattened visible ids plus every loaded entity."""
    ids: list[str]
    entities: list[EntityResponse]
    selected: list[str]
    expanded_campaigns: list[str]
    expanded_ad_groups: list[str]
    sort: dict
    cooldown_remaining_seconds: float


class ExpandResponse(BaseModel):
    """Result of toggling a node open or closed."""
    id: str
    expanded: bool
    fetch_status: str
    error: Optional[str] = None
    children: list[EntityResponse] = Field(default_factory=list)


class SortRequest(BaseModel):
    key: str


class SelectionRequest(BaseModel):
    """Selection change: toggle one id, select all visible, or clear."""
    entity_id: Optional[str] = None
    select_all: bool = False
    clear: bool = False


class SelectionResponse(BaseModel):
    selected: list[str]
    all_selected: bool
    some_selected: bool


class BulkStatusRequest(BaseModel):
    status: str = Field(..., description="ACTIVE or PAUSED")
    ids: Optional[list[str]] = Field(default=None, description="Defaults to the current selection")


class BulkStatusResponse(BaseModel):
    status: str
    succeeded: list[str]
    failed: dict[str, str]


class NoticeResponse(BaseModel):
    """A user-facing notice."""
    level: str
    message: str
    created_at: str
