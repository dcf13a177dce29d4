"""Client for the server-side issue scan.

The scan is heavier than a hierarchy read and is only requested while an
issue review is open.
"""

import logging
from typing import Optional, TypedDict

from collectors.base import BaseAdsPlatformClient
from collectors.hierarchy.parsers import parse_rows

logger = logging.getLogger(__name__)

ISSUES_PATH = "/issues"

# Older scan payloads use the platform's own names for levels and kinds
_LEVEL_ALIASES = {
    "campaign": "campaign",
    "adgroup": "adgroup",
    "adset": "adgroup",
    "lineitem": "lineitem",
    "ad": "lineitem",
}
_KIND_ALIASES = {
    "policy_rejected": "policy_rejected",
    "ad_policy_rejected": "policy_rejected",
    "with_issues": "with_issues",
    "ad_with_issues": "with_issues",
    "learning_limited": "learning_limited",
    "low_quality": "low_quality",
}


class IssueDict(TypedDict, total=False):
    """A policy/delivery issue as reported by the scan endpoint."""

    id: str
    kind: str
    severity: str
    level: str
    entity_status: str
    campaign_status: str
    campaign_id: str
    ad_group_id: str
    line_item_id: str
    campaign_name: str
    ad_group_name: str
    line_item_name: str
    reason: str
    details: Optional[str]
    last_updated_at: Optional[str]
    suggestion: str
    action_label: str


def parse_issue(row: dict) -> Optional[IssueDict]:
    """Normalize one scan row. Rows with an unknown level or kind are dropped."""
    level = _LEVEL_ALIASES.get(str(row.get("level", "")).lower())
    kind = _KIND_ALIASES.get(str(row.get("kind", "")).lower())
    if level is None or kind is None:
        logger.debug(f"Skipping issue row with level={row.get('level')!r} kind={row.get('kind')!r}")
        return None

    severity = str(row.get("severity") or "").lower()
    if severity not in ("critical", "warning"):
        severity = "warning"

    return {
        "id": str(row.get("id") or ""),
        "kind": kind,
        "severity": severity,
        "level": level,
        "entity_status": str(row.get("entityStatus") or ""),
        "campaign_status": str(row.get("campaignStatus") or ""),
        "campaign_id": str(row.get("campaignId") or ""),
        "ad_group_id": str(row.get("adGroupId") or row.get("adSetId") or ""),
        "line_item_id": str(row.get("lineItemId") or row.get("adId") or ""),
        "campaign_name": str(row.get("campaignName") or ""),
        "ad_group_name": str(row.get("adGroupName") or row.get("adSetName") or ""),
        "line_item_name": str(row.get("lineItemName") or row.get("adName") or ""),
        "reason": str(row.get("reason") or ""),
        "details": row.get("details"),
        "last_updated_at": row.get("lastUpdatedAt"),
        "suggestion": str(row.get("suggestion") or ""),
        "action_label": str(row.get("actionLabel") or ""),
    }


class IssuesClient(BaseAdsPlatformClient):
    """Client for the issue scan endpoint."""

    async def scan_issues(self, timeout: float = 20.0) -> list[IssueDict]:
        """Fetch the account's current policy/delivery issues.

        Returns:
            List of IssueDict in server order.
        """
        response = await self._request("GET", ISSUES_PATH, timeout=timeout)
        issues = []
        for row in parse_rows(response):
            issue = parse_issue(row)
            if issue is not None:
                issues.append(issue)
        logger.info(f"Issue scan returned {len(issues)} issues")
        return issues
