"""API Schema models for AdSync."""

from .sync import (
    BulkStatusRequest,
    BulkStatusResponse,
    EntityActionResponse,
    EntityResponse,
    ExpandResponse,
    HierarchyResponse,
    NoticeResponse,
    SelectionRequest,
    SelectionResponse,
    SortRequest,
    SyncStartRequest,
    SyncStartResponse,
    SyncStateResponse,
)

from .issues import (
    IssueCountsResponse,
    IssueFixResponse,
    IssueListResponse,
    IssueResponse,
)

from .recommendations import (
    ApplyAllResponse,
    ApplyResponse,
    RecommendationActionResponse,
    RecommendationResponse,
    RecommendationStatsResponse,
)

__all__ = [
    # Sync and hierarchy
    "BulkStatusRequest",
    "BulkStatusResponse",
    "EntityActionResponse",
    "EntityResponse",
    "ExpandResponse",
    "HierarchyResponse",
    "NoticeResponse",
    "SelectionRequest",
    "SelectionResponse",
    "SortRequest",
    "SyncStartRequest",
    "SyncStartResponse",
    "SyncStateResponse",
    # Issues
    "IssueCountsResponse",
    "IssueFixResponse",
    "IssueListResponse",
    "IssueResponse",
    # Recommendations
    "ApplyAllResponse",
    "ApplyResponse",
    "RecommendationActionResponse",
    "RecommendationResponse",
    "RecommendationStatsResponse",
]
