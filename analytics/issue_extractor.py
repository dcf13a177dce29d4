"""Policy and delivery issue detection.

Issues are derived from the status fields of the loaded hierarchy and
merged with the issues reported by the server-side scan. Each issue has
a stable identity key, so the same problem reported by both sources shows
up once.

Detection runs per entity and stops at the first matching rule:

| Condition (effective status, case-insensitive)        | Kind             | Severity |
|-------------------------------------------------------|------------------|----------|
| contains DISAPPROVED or REJECTED                      | policy_rejected  | critical |
| contains WITH_ISSUES, or review feedback, or issues   | with_issues      | critical |
| line items only: contains LEARNING_LIMITED            | learning_limited | warning  |
| line items only: quality_ranking >= 3 and spend >= 20 | low_quality      | warning  |
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

from analytics.metrics import metric_value
from storage.models import (
    AdGroup,
    Campaign,
    Entity,
    EntityLevel,
    EntityStatus,
)

if TYPE_CHECKING:
    from collectors.issues import IssueDict

logger = logging.getLogger(__name__)

RECENT_WINDOW = timedelta(hours=12)
QUALITY_RANKING_THRESHOLD = 3
QUALITY_MIN_SPEND = 20
LEARNING_BUDGET_FACTOR = 1.2


class IssueKind(str, Enum):
    POLICY_REJECTED = "policy_rejected"
    WITH_ISSUES = "with_issues"
    LEARNING_LIMITED = "learning_limited"
    LOW_QUALITY = "low_quality"


class IssueSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"


LEVEL_LABELS = {
    EntityLevel.CAMPAIGN: "Campaign",
    EntityLevel.AD_GROUP: "Ad Group",
    EntityLevel.LINE_ITEM: "Line Item",
}

WITH_ISSUES_SUGGESTIONS = {
    EntityLevel.CAMPAIGN: "Review campaign setup and destination compliance. Pause if budget is leaking.",
    EntityLevel.AD_GROUP: "Review targeting/placements and associated line items. Pause ad group if needed.",
    EntityLevel.LINE_ITEM: "Review feedback and update creative/copy/destination.",
}

POLICY_SUGGESTION = "Fix policy violation in copy/creative and re-enable after approval."
LEARNING_SUGGESTION = "Increase ad group budget to speed up learning."
LEARNING_ACTION_LABEL = "Boost Budget +20%"
QUALITY_SUGGESTION = "Refresh creative/copy and tighten audience-message match."


@dataclass
class Issue:
    """A detected policy/delivery problem on one entity.

    Attributes:
        id: Display id, unique within one source.
        kind: What was detected.
        severity: critical or warning.
        level: Level of the affected entity.
        entity_status: Configured status of the affected entity.
        campaign_status: Configured status of the owning campaign.
        campaign_id, ad_group_id, line_item_id: Position in the tree. Ids
            below the issue's level are empty.
        reason: Short description. Part of the identity key.
        details: Review feedback, issue text or status detail.
        suggestion: What the user should do.
        action_label: Label of the one-click fix.
        last_updated_at: ISO timestamp from the server scan, if any.
        source: "server" or "local".
    """

    id: str
    kind: IssueKind
    severity: IssueSeverity
    level: EntityLevel
    reason: str
    suggestion: str
    action_label: str
    entity_status: str = ""
    campaign_status: str = ""
    campaign_id: str = ""
    ad_group_id: str = ""
    line_item_id: str = ""
    campaign_name: str = ""
    ad_group_name: str = ""
    line_item_name: str = ""
    details: Optional[str] = None
    last_updated_at: Optional[str] = None
    source: str = "local"

    @property
    def key(self) -> tuple[str, str, str, str, str, str]:
        return issue_key(self)

    @property
    def entity_id(self) -> str:
        if self.level == EntityLevel.LINE_ITEM:
            return self.line_item_id
        if self.level == EntityLevel.AD_GROUP:
            return self.ad_group_id
        return self.campaign_id

    def to_dict(self) -> dict:
        data = asdict(self)
        data["kind"] = self.kind.value
        data["severity"] = self.severity.value
        data["level"] = self.level.value
        return data


@dataclass
class IssueIndex:
    """Issues grouped by every entity they sit under."""

    by_campaign: dict[str, list[Issue]] = field(default_factory=dict)
    by_ad_group: dict[str, list[Issue]] = field(default_factory=dict)
    by_line_item: dict[str, list[Issue]] = field(default_factory=dict)

    def for_entity(self, entity_id: str) -> list[Issue]:
        return (
            self.by_campaign.get(entity_id)
            or self.by_ad_group.get(entity_id)
            or self.by_line_item.get(entity_id)
            or []
        )


@dataclass
class FixAction:
    """The mutation that the one-click fix for an issue performs."""

    kind: str  # "set_status" or "set_budget"
    entity_id: str
    level: EntityLevel
    status: Optional[EntityStatus] = None
    daily_budget: Optional[float] = None


def issue_key(issue: Issue) -> tuple[str, str, str, str, str, str]:
    """Identity key: equal keys mean the same issue, whatever the source."""
    return (
        issue.level.value,
        issue.campaign_id or "",
        issue.ad_group_id or "",
        issue.line_item_id or "",
        issue.kind.value,
        issue.reason,
    )


def _status_action_label(level: EntityLevel, status: EntityStatus) -> str:
    verb = "Pause" if status == EntityStatus.ACTIVE else "Enable"
    return f"{verb} {LEVEL_LABELS[level]}"


def _policy_fields(entity: Entity) -> tuple[str, str, list[str]]:
    policy = entity.policy_info
    if policy is None:
        return "", "", []
    return (policy.effective_status or "").upper(), policy.review_feedback or "", list(policy.issues_info)


def _detect(entity: Entity, campaign: Campaign, ad_group: Optional[AdGroup]) -> Optional[Issue]:
    level = entity.level
    label = LEVEL_LABELS[level]
    effective, review, issues_info = _policy_fields(entity)
    joined_issues = " | ".join(issues_info)

    base = {
        "level": level,
        "entity_status": entity.status.value,
        "campaign_status": campaign.status.value,
        "campaign_id": campaign.id,
        "campaign_name": campaign.name,
        "ad_group_id": ad_group.id if ad_group else "",
        "ad_group_name": ad_group.name if ad_group else "",
        "line_item_id": entity.id if level == EntityLevel.LINE_ITEM else "",
        "line_item_name": entity.name if level == EntityLevel.LINE_ITEM else "",
    }

    if "DISAPPROVED" in effective or "REJECTED" in effective:
        return Issue(
            id=f"{level.value}-policy-{entity.id}",
            kind=IssueKind.POLICY_REJECTED,
            severity=IssueSeverity.CRITICAL,
            reason=f"{label} rejected by policy",
            details=review or joined_issues or None,
            suggestion=POLICY_SUGGESTION,
            action_label=_status_action_label(level, entity.status),
            **base,
        )

    if "WITH_ISSUES" in effective or review or issues_info:
        details = review or joined_issues
        if not details and level != EntityLevel.LINE_ITEM:
            details = entity.policy_info.effective_status if entity.policy_info else ""
        return Issue(
            id=f"{level.value}-issues-{entity.id}",
            kind=IssueKind.WITH_ISSUES,
            severity=IssueSeverity.CRITICAL,
            reason=f"{label} has delivery/policy issues",
            details=details or None,
            suggestion=WITH_ISSUES_SUGGESTIONS[level],
            action_label=_status_action_label(level, entity.status),
            **base,
        )

    if level != EntityLevel.LINE_ITEM:
        return None

    if "LEARNING_LIMITED" in effective:
        return Issue(
            id=f"{level.value}-learning-{entity.id}",
            kind=IssueKind.LEARNING_LIMITED,
            severity=IssueSeverity.WARNING,
            reason="Learning limited",
            details="Delivery may be unstable due to insufficient optimization events.",
            suggestion=LEARNING_SUGGESTION,
            action_label=LEARNING_ACTION_LABEL,
            **base,
        )

    quality = metric_value(entity.metrics, "quality_ranking")
    if quality >= QUALITY_RANKING_THRESHOLD and metric_value(entity.metrics, "spend") >= QUALITY_MIN_SPEND:
        return Issue(
            id=f"{level.value}-quality-{entity.id}",
            kind=IssueKind.LOW_QUALITY,
            severity=IssueSeverity.WARNING,
            reason="Low quality ranking",
            details=f"Quality score: {quality:g}",
            suggestion=QUALITY_SUGGESTION,
            action_label=_status_action_label(level, entity.status),
            **base,
        )
    return None


def extract_issues(campaigns: Iterable[Campaign]) -> list[Issue]:
    """Derive issues from the loaded tree, in tree order.

    Args:
        campaigns: The hierarchy. Entities whose children were never
            loaded simply contribute no child issues.

    Returns:
        At most one issue per entity.

    Example:
        >>> campaign = Campaign(id="c1", name="Spring", status=EntityStatus.ACTIVE,
        ...                     policy_info=PolicyInfo(effective_status="DISAPPROVED"))
        >>> [(i.kind.value, i.action_label) for i in extract_issues([campaign])]
        [('policy_rejected', 'Pause Campaign')]
    """
    issues: list[Issue] = []
    for campaign in campaigns:
        issue = _detect(campaign, campaign, None)
        if issue:
            issues.append(issue)
        for ad_group in campaign.ad_groups:
            issue = _detect(ad_group, campaign, ad_group)
            if issue:
                issues.append(issue)
            for item in ad_group.line_items:
                issue = _detect(item, campaign, ad_group)
                if issue:
                    issues.append(issue)
    return issues


def issue_from_dict(data: "IssueDict") -> Issue:
    """Convert a server scan record into an Issue."""
    return Issue(
        id=data.get("id", ""),
        kind=IssueKind(data["kind"]),
        severity=IssueSeverity(data.get("severity", "warning")),
        level=EntityLevel(data["level"]),
        reason=data.get("reason", ""),
        suggestion=data.get("suggestion", ""),
        action_label=data.get("action_label", ""),
        entity_status=data.get("entity_status", ""),
        campaign_status=data.get("campaign_status", ""),
        campaign_id=data.get("campaign_id", ""),
        ad_group_id=data.get("ad_group_id", ""),
        line_item_id=data.get("line_item_id", ""),
        campaign_name=data.get("campaign_name", ""),
        ad_group_name=data.get("ad_group_name", ""),
        line_item_name=data.get("line_item_name", ""),
        details=data.get("details"),
        last_updated_at=data.get("last_updated_at"),
        source="server",
    )


def merge_issues(server: Sequence[Issue], local: Sequence[Issue]) -> list[Issue]:
    """Concatenate server issues before local ones and drop duplicate keys.

    The first occurrence of a key wins, so server data wins ties.
    """
    merged: dict[tuple, Issue] = {}
    for issue in list(server) + list(local):
        merged.setdefault(issue_key(issue), issue)
    return list(merged.values())


def sort_issues(issues: Iterable[Issue]) -> list[Issue]:
    """Critical first, then alphabetically by reason."""
    return sorted(
        issues,
        key=lambda i: (0 if i.severity == IssueSeverity.CRITICAL else 1, i.reason),
    )


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_recent(issue: Issue, now: Optional[datetime] = None) -> bool:
    """True if the issue was updated within the last 12 hours."""
    updated = _parse_timestamp(issue.last_updated_at)
    if updated is None:
        return False
    now = now or datetime.now(timezone.utc)
    return now - updated <= RECENT_WINDOW


def filter_issues(
    issues: Iterable[Issue],
    active_campaigns_only: bool = False,
    recent_only: bool = False,
    now: Optional[datetime] = None,
) -> list[Issue]:
    """Apply the review filters.

    Args:
        active_campaigns_only: Keep issues whose campaign is ACTIVE.
        recent_only: Keep issues updated within 12 hours. Issues without a
            timestamp are dropped by this filter.
    """
    result = []
    for issue in issues:
        if active_campaigns_only and issue.campaign_status != EntityStatus.ACTIVE.value:
            continue
        if recent_only and not is_recent(issue, now):
            continue
        result.append(issue)
    return result


def issue_counts(issues: Iterable[Issue], now: Optional[datetime] = None) -> dict[str, int]:
    """Totals for the review header."""
    counts = {"critical": 0, "warning": 0, "recent_12h": 0}
    for issue in issues:
        if issue.severity == IssueSeverity.CRITICAL:
            counts["critical"] += 1
        else:
            counts["warning"] += 1
        if is_recent(issue, now):
            counts["recent_12h"] += 1
    return counts


def build_issue_index(issues: Iterable[Issue]) -> IssueIndex:
    """Group issues under their campaign, ad-group and line item."""
    index = IssueIndex()
    for issue in issues:
        if issue.campaign_id:
            index.by_campaign.setdefault(issue.campaign_id, []).append(issue)
        if issue.ad_group_id:
            index.by_ad_group.setdefault(issue.ad_group_id, []).append(issue)
        if issue.line_item_id:
            index.by_line_item.setdefault(issue.line_item_id, []).append(issue)
    return index


def remediation_for(issue: Issue, ad_group_budget: Optional[float] = None) -> FixAction:
    """Work out what the one-click fix for an issue does.

    learning_limited raises the parent ad-group's daily budget by 20%
    (rounded to cents, at least 1). Everything else pauses or enables the
    entity at the issue's level, following the action label.

    Args:
        issue: The issue to fix.
        ad_group_budget: Current daily budget of the parent ad-group, used
            for learning_limited.

    Raises:
        ValueError: If the issue does not identify an entity to act on.
    """
    if issue.kind == IssueKind.LEARNING_LIMITED:
        if not issue.ad_group_id:
            raise ValueError(f"Issue {issue.id} has no ad-group to boost")
        current = ad_group_budget or 0.0
        return FixAction(
            kind="set_budget",
            entity_id=issue.ad_group_id,
            level=EntityLevel.AD_GROUP,
            daily_budget=max(1.0, round(current * LEARNING_BUDGET_FACTOR, 2)),
        )

    entity_id = issue.entity_id
    if not entity_id:
        raise ValueError(f"Issue {issue.id} has no entity id at level {issue.level.value}")
    status = EntityStatus.PAUSED if issue.action_label.startswith("Pause") else EntityStatus.ACTIVE
    return FixAction(kind="set_status", entity_id=entity_id, level=issue.level, status=status)
