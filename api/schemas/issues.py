"""Issue review schema models."""

from typing import Optional
from pydantic import BaseModel


class IssueResponse(BaseModel):
    """A detected policy/delivery problem."""
    id: str
    kind: str
    severity: str
    level: str
    reason: str
    details: Optional[str] = None
    suggestion: str
    action_label: str
    entity_status: str
    campaign_status: str
    campaign_id: str
    ad_group_id: str
    line_item_id: str
    campaign_name: str
    ad_group_name: str
    line_item_name: str
    last_updated_at: Optional[str] = None
    source: str


class IssueCountsResponse(BaseModel):
    critical: int
    warning: int
    recent_12h: int


class IssueListResponse(BaseModel):
    issues: list[IssueResponse]
    counts: IssueCountsResponse
    review_open: bool
    stage: str


class IssueFixResponse(BaseModel):
    """The change a one-click fix performed."""
    issue_id: str
    kind: str
    entity_id: str
    level: str
    status: Optional[str] = None
    daily_budget: Optional[float] = None
