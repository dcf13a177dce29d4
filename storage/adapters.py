"""Adapters for converting between collector schemas and storage models.

This module provides conversion functions between the TypedDict schemas
returned by the hierarchy collectors and the dataclass models held by the
HierarchyStore, plus the reverse conversion to the wire shape used by the
persisted hierarchy cache.
"""

from typing import TYPE_CHECKING, Optional

from storage.models import (
    AdGroup,
    Campaign,
    EntityStatus,
    LineItem,
    PolicyInfo,
)

if TYPE_CHECKING:
    from collectors.hierarchy.schemas import (
        AdGroupDict,
        CampaignDict,
        LineItemDict,
        PolicyInfoDict,
    )


def _policy_from_dict(data: Optional["PolicyInfoDict"]) -> Optional[PolicyInfo]:
    if not data:
        return None
    return PolicyInfo(
        effective_status=data.get("effective_status", ""),
        review_feedback=data.get("review_feedback", ""),
        issues_info=list(data.get("issues_info", [])),
    )


def line_item_from_dict(data: "LineItemDict") -> LineItem:
    """Convert a LineItemDict from the collector to a LineItem model."""
    return LineItem(
        id=data["id"],
        name=data.get("name", ""),
        status=EntityStatus(data.get("status", "PAUSED")),
        metrics=dict(data.get("metrics", {})),
        policy_info=_policy_from_dict(data.get("policy_info")),
        creative_type=data.get("creative_type"),
    )


def ad_group_from_dict(data: "AdGroupDict") -> AdGroup:
    """Convert an AdGroupDict from the collector to an AdGroup model.

    Example:
        >>> from collectors import HierarchyClient
        >>> from storage.adapters import ad_group_from_dict
        >>>
        >>> rows = await client.list_ad_groups("c1", since, until)
        >>> ad_groups = [ad_group_from_dict(r) for r in rows]
    """
    return AdGroup(
        id=data["id"],
        name=data.get("name", ""),
        status=EntityStatus(data.get("status", "PAUSED")),
        daily_budget=data.get("daily_budget"),
        lifetime_budget=data.get("lifetime_budget"),
        bid_amount=data.get("bid_amount"),
        interests=list(data.get("interests", [])),
        custom_audiences=list(data.get("custom_audiences", [])),
        metrics=dict(data.get("metrics", {})),
        policy_info=_policy_from_dict(data.get("policy_info")),
        line_items=[line_item_from_dict(li) for li in data.get("line_items") or []],
    )


def campaign_from_dict(data: "CampaignDict") -> Campaign:
    """Convert a CampaignDict from the collector to a Campaign model."""
    return Campaign(
        id=data["id"],
        name=data.get("name", ""),
        status=EntityStatus(data.get("status", "PAUSED")),
        objective=data.get("objective"),
        bid_strategy=data.get("bid_strategy"),
        daily_budget=data.get("daily_budget"),
        lifetime_budget=data.get("lifetime_budget"),
        metrics=dict(data.get("metrics", {})),
        policy_info=_policy_from_dict(data.get("policy_info")),
        ad_groups=[ad_group_from_dict(ag) for ag in data.get("ad_groups") or []],
    )


def _policy_to_wire(policy: Optional[PolicyInfo]) -> Optional[dict]:
    if policy is None:
        return None
    return {
        "effectiveStatus": policy.effective_status,
        "reviewFeedback": policy.review_feedback,
        "issuesInfo": list(policy.issues_info),
    }


def line_item_to_wire(item: LineItem) -> dict:
    """Serialize a LineItem to the API wire shape."""
    return {
        "id": item.id,
        "name": item.name,
        "status": item.status.value,
        "creative": {"type": item.creative_type} if item.creative_type else None,
        "metrics": dict(item.metrics),
        "policyInfo": _policy_to_wire(item.policy_info),
    }


def ad_group_to_wire(ad_group: AdGroup) -> dict:
    """Serialize an AdGroup (with its line items) to the API wire shape."""
    return {
        "id": ad_group.id,
        "name": ad_group.name,
        "status": ad_group.status.value,
        "dailyBudget": ad_group.daily_budget,
        "lifetimeBudget": ad_group.lifetime_budget,
        "bidAmount": ad_group.bid_amount,
        "targeting": {
            "interests": list(ad_group.interests),
            "customAudiences": list(ad_group.custom_audiences),
        },
        "metrics": dict(ad_group.metrics),
        "policyInfo": _policy_to_wire(ad_group.policy_info),
        "lineItems": [line_item_to_wire(li) for li in ad_group.line_items],
    }
