"""Recommendation lifecycle schema models."""

from typing import Optional
from pydantic import BaseModel, Field


class RecommendationActionResponse(BaseModel):
    """The action a recommendation proposes."""
    type: str
    entity_type: str
    entity_id: str
    entity_name: str
    new_status: Optional[str] = None
    new_budget: Optional[float] = None
    current_budget: Optional[float] = None
    new_bid_strategy: Optional[str] = None
    suggested_bid: Optional[float] = None
    target_entity_id: Optional[str] = None
    target_entity_name: Optional[str] = None
    hours: list[int] = Field(default_factory=list)
    budget_multiplier: Optional[float] = None


class RecommendationResponse(BaseModel):
    """A recommendation with its lifecycle status and apply phase."""
    id: str
    severity: str
    category: str
    title: str
    analysis: str
    recommended_action: str
    impact_estimate: str
    action: RecommendationActionResponse
    status: str
    created_at: str
    applied_summary: Optional[str] = None
    phase: str = "idle"


class RecommendationStatsResponse(BaseModel):
    """Pending counts by severity and category."""
    total: int
    critical: int
    warning: int
    opportunity: int
    applied: int
    dismissed: int
    by_category: dict[str, int]
    estimated_savings: float
    applying_all: bool


class ApplyResponse(BaseModel):
    id: str
    phase: str
    status: str
    applied_summary: Optional[str] = None


class ApplyAllResponse(BaseModel):
    applied: list[str]
    failed: dict[str, str]
