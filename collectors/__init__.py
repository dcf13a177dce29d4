"""Ads Sync - Collectors Module.

This module provides async clients for the ads platform API: hierarchy
reads, status/budget/bid mutations, the latest-actions poll and the
server-side issue scan.

Example:
    >>> from collectors import HierarchyClient, MutationsClient
    >>>
    >>> client = HierarchyClient(
    ...     base_url="https://ads.example.com/api",
    ...     account_id="act_123",
    ... )
    >>> campaigns = await client.list_campaigns("2026-10-01", "2026-10-07")
    >>> ad_groups = await client.list_ad_groups(campaigns[0]["id"], mode="fast")
"""

from collectors.activities import ActivitiesClient, EntityActionDict
from collectors.base import BaseAdsPlatformClient
from collectors.errors import (
    ApiError,
    ClassifiedError,
    FetchTimeoutError,
    MutationError,
    RateLimitError,
)
from collectors.hierarchy.client import HierarchyClient
from collectors.hierarchy.schemas import AdGroupDict, CampaignDict, LineItemDict
from collectors.issues import IssueDict, IssuesClient
from collectors.mutations import MutationsClient

__all__ = [
    # Clients
    "BaseAdsPlatformClient",
    "HierarchyClient",
    "MutationsClient",
    "ActivitiesClient",
    "IssuesClient",
    # Errors
    "ClassifiedError",
    "RateLimitError",
    "FetchTimeoutError",
    "ApiError",
    "MutationError",
    # Schemas
    "CampaignDict",
    "AdGroupDict",
    "LineItemDict",
    "EntityActionDict",
    "IssueDict",
]
