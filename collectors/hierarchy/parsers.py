"""Pure parsing functions for hierarchy API responses.

This module contains stateless functions for transforming raw API rows
(camelCase, as the platform proxy returns them) into normalized
CampaignDict / AdGroupDict / LineItemDict structures. The same functions
read persisted cache entries, which use the wire shape.
"""

import logging
from typing import Any, Optional

from collectors.hierarchy.schemas import (
    AdGroupDict,
    CampaignDict,
    EntityStatusLiteral,
    LineItemDict,
    PolicyInfoDict,
)

logger = logging.getLogger(__name__)


def _parse_status(value: Any) -> EntityStatusLiteral:
    """Collapse the platform's configured status to ACTIVE/PAUSED."""
    if isinstance(value, str) and value.upper() == "ACTIVE":
        return "ACTIVE"
    return "PAUSED"


def _parse_number(value: Any) -> Optional[float]:
    """Coerce numeric strings and numbers to float; None for anything else."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def parse_metrics(raw: Any) -> dict[str, float]:
    """Keep only the numeric entries of a metrics bag.

    Args:
        raw: The metrics object from the API (may be missing or malformed).

    Returns:
        Mapping of metric name to float. Non-numeric values are dropped.
    """
    if not isinstance(raw, dict):
        return {}
    metrics: dict[str, float] = {}
    for key, value in raw.items():
        number = _parse_number(value)
        if number is not None:
            metrics[str(key)] = number
    return metrics


def parse_policy_info(raw: Any) -> Optional[PolicyInfoDict]:
    """Normalize the policy info block.

    issuesInfo may arrive as a list of strings or of objects with a
    'message'/'summary' field; both are flattened to strings.
    """
    if not isinstance(raw, dict):
        return None

    issues: list[str] = []
    for item in raw.get("issuesInfo") or []:
        if isinstance(item, str):
            if item:
                issues.append(item)
        elif isinstance(item, dict):
            text = item.get("message") or item.get("summary") or item.get("errorSummary")
            if text:
                issues.append(str(text))

    return {
        "effective_status": str(raw.get("effectiveStatus") or ""),
        "review_feedback": str(raw.get("reviewFeedback") or ""),
        "issues_info": issues,
    }


def parse_line_item(row: dict, ad_group_id: Optional[str] = None) -> LineItemDict:
    """Transform a raw line-item row into a LineItemDict.

    Args:
        row: Raw row from the line-items endpoint.
        ad_group_id: Parent ID to use when the row does not carry one.

    Returns:
        Normalized LineItemDict.
    """
    creative = row.get("creative") if isinstance(row.get("creative"), dict) else {}
    return {
        "id": str(row.get("id", "")),
        "ad_group_id": str(row.get("adGroupId") or ad_group_id or "") or None,
        "name": str(row.get("name") or ""),
        "status": _parse_status(row.get("status")),
        "creative_type": creative.get("type"),
        "metrics": parse_metrics(row.get("metrics")),
        "policy_info": parse_policy_info(row.get("policyInfo")),
    }


def parse_ad_group(row: dict, campaign_id: Optional[str] = None) -> AdGroupDict:
    """Transform a raw ad-group row into an AdGroupDict.

    Embedded line items are parsed too. A missing or null 'lineItems' field
    becomes an empty list.
    """
    ad_group_id = str(row.get("id", ""))
    targeting = row.get("targeting") if isinstance(row.get("targeting"), dict) else {}
    return {
        "id": ad_group_id,
        "campaign_id": str(row.get("campaignId") or campaign_id or "") or None,
        "name": str(row.get("name") or ""),
        "status": _parse_status(row.get("status")),
        "daily_budget": _parse_number(row.get("dailyBudget")),
        "lifetime_budget": _parse_number(row.get("lifetimeBudget")),
        "bid_amount": _parse_number(row.get("bidAmount")),
        "interests": [str(i) for i in targeting.get("interests") or []],
        "custom_audiences": [str(a) for a in targeting.get("customAudiences") or []],
        "metrics": parse_metrics(row.get("metrics")),
        "policy_info": parse_policy_info(row.get("policyInfo")),
        "line_items": [
            parse_line_item(item, ad_group_id)
            for item in row.get("lineItems") or []
            if isinstance(item, dict)
        ],
    }


def parse_campaign(row: dict) -> CampaignDict:
    """Transform a raw campaign row into a CampaignDict."""
    campaign_id = str(row.get("id", ""))
    return {
        "id": campaign_id,
        "name": str(row.get("name") or ""),
        "status": _parse_status(row.get("status")),
        "objective": row.get("objective"),
        "bid_strategy": row.get("bidStrategy"),
        "daily_budget": _parse_number(row.get("dailyBudget")),
        "lifetime_budget": _parse_number(row.get("lifetimeBudget")),
        "metrics": parse_metrics(row.get("metrics")),
        "policy_info": parse_policy_info(row.get("policyInfo")),
        "ad_groups": [
            parse_ad_group(item, campaign_id)
            for item in row.get("adGroups") or []
            if isinstance(item, dict)
        ],
    }


def parse_rows(response: Any) -> list[dict]:
    """Extract the row list from a `{"data": [...]}` envelope.

    Returns an empty list for a missing or null payload, and logs when the
    response is not shaped as expected.
    """
    if isinstance(response, list):
        return [r for r in response if isinstance(r, dict)]
    if isinstance(response, dict):
        data = response.get("data")
        if data is None:
            return []
        if isinstance(data, list):
            return [r for r in data if isinstance(r, dict)]
    logger.warning(f"Unexpected hierarchy response shape: {type(response).__name__}")
    return []
