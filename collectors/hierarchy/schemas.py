"""Type definitions for hierarchy data structures.

This module contains the TypedDict definitions for the normalized campaign,
ad-group and line-item records produced by the hierarchy parsers.
"""

from typing import Literal, Optional, TypedDict


# Type aliases for entity statuses and fetch profiles
EntityStatusLiteral = Literal["ACTIVE", "PAUSED"]
FetchModeLiteral = Literal["fast", "basic"]


class PolicyInfoDict(TypedDict, total=False):
    """Policy and delivery review information attached to an entity.

    Attributes:
        effective_status: Platform-computed delivery status
            (e.g. 'ACTIVE', 'DISAPPROVED', 'WITH_ISSUES', 'LEARNING_LIMITED').
        review_feedback: Free-text review feedback, empty when none.
        issues_info: Issue descriptions reported by the platform.
    """

    effective_status: str
    review_feedback: str
    issues_info: list[str]


class LineItemDict(TypedDict, total=False):
    """Normalized line-item record.

    Attributes:
        id: Line-item ID.
        ad_group_id: Parent ad-group ID when the platform echoes it.
        name: Display name.
        status: Configured status.
        creative_type: 'image', 'video' or 'carousel' when known.
        metrics: Metric name to numeric value.
        policy_info: Policy/delivery info, None when not returned.
    """

    id: str
    ad_group_id: Optional[str]
    name: str
    status: EntityStatusLiteral
    creative_type: Optional[str]
    metrics: dict[str, float]
    policy_info: Optional[PolicyInfoDict]


class AdGroupDict(TypedDict, total=False):
    """Normalized ad-group record.

    Attributes:
        id: Ad-group ID.
        campaign_id: Parent campaign ID when the platform echoes it.
        name: Display name.
        status: Configured status.
        daily_budget: Daily budget in account currency.
        lifetime_budget: Lifetime budget, None when not set.
        bid_amount: Manual bid, None for automatic bidding.
        interests: Interest targeting IDs.
        custom_audiences: Custom audience IDs.
        metrics: Metric name to numeric value.
        policy_info: Policy/delivery info, None when not returned.
        line_items: Embedded line items (always a list).
    """

    id: str
    campaign_id: Optional[str]
    name: str
    status: EntityStatusLiteral
    daily_budget: Optional[float]
    lifetime_budget: Optional[float]
    bid_amount: Optional[float]
    interests: list[str]
    custom_audiences: list[str]
    metrics: dict[str, float]
    policy_info: Optional[PolicyInfoDict]
    line_items: list[LineItemDict]


class CampaignDict(TypedDict, total=False):
    """Normalized campaign record.

    Attributes:
        id: Campaign ID.
        name: Display name.
        status: Configured status.
        objective: Campaign objective (e.g. 'CONVERSIONS').
        bid_strategy: Bid strategy (e.g. 'LOWEST_COST', 'BID_CAP').
        daily_budget: Daily budget in account currency.
        lifetime_budget: Lifetime budget, None when not set.
        metrics: Metric name to numeric value.
        policy_info: Policy/delivery info, None when not returned.
        ad_groups: Embedded ad-groups (always a list).
    """

    id: str
    name: str
    status: EntityStatusLiteral
    objective: Optional[str]
    bid_strategy: Optional[str]
    daily_budget: Optional[float]
    lifetime_budget: Optional[float]
    metrics: dict[str, float]
    policy_info: Optional[PolicyInfoDict]
    ad_groups: list[AdGroupDict]
