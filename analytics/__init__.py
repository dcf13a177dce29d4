"""AdSync Analytics Module.

Pure analysis over the loaded campaign hierarchy: derived metrics,
policy/delivery issue detection, and threshold-based recommendations with
their apply/dismiss lifecycle.

Example:
    >>> from analytics import extract_issues, generate_recommendations
    >>>
    >>> issues = extract_issues(store.campaigns)
    >>> recs = generate_recommendations(store.campaigns)
    >>> print(f"{len(issues)} issues, {len(recs)} recommendations")
"""

from analytics.metrics import derive_ratio_metrics, metric_value, safe_divide, with_derived_metrics
from analytics.issue_extractor import (
    FixAction,
    Issue,
    IssueIndex,
    IssueKind,
    IssueSeverity,
    build_issue_index,
    extract_issues,
    filter_issues,
    issue_counts,
    issue_from_dict,
    merge_issues,
    remediation_for,
    sort_issues,
)
from analytics.recommendation_models import (
    ActionType,
    Recommendation,
    RecommendationAction,
    RecommendationCategory,
    RecommendationSeverity,
    RecommendationStatus,
)
from analytics.recommendation_rules import estimate_savings, generate_recommendations
from analytics.recommendation_engine import (
    ApplyAllResult,
    ApplyPhase,
    RecommendationEngine,
    UnknownRecommendationError,
)

__all__ = [
    # Metrics
    "derive_ratio_metrics",
    "metric_value",
    "safe_divide",
    "with_derived_metrics",
    # Issues
    "FixAction",
    "Issue",
    "IssueIndex",
    "IssueKind",
    "IssueSeverity",
    "build_issue_index",
    "extract_issues",
    "filter_issues",
    "issue_counts",
    "issue_from_dict",
    "merge_issues",
    "remediation_for",
    "sort_issues",
    # Recommendations
    "ActionType",
    "Recommendation",
    "RecommendationAction",
    "RecommendationCategory",
    "RecommendationSeverity",
    "RecommendationStatus",
    "estimate_savings",
    "generate_recommendations",
    "ApplyAllResult",
    "ApplyPhase",
    "RecommendationEngine",
    "UnknownRecommendationError",
]
