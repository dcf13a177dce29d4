"""Hierarchy-specific client for the ads platform API.

This module provides the HierarchyClient class for reading the
campaign -> ad-group -> line-item tree one level at a time.
"""

import logging
from typing import Optional

from collectors.base import BaseAdsPlatformClient
from collectors.hierarchy.parsers import (
    parse_ad_group,
    parse_campaign,
    parse_line_item,
    parse_rows,
)
from collectors.hierarchy.schemas import (
    AdGroupDict,
    CampaignDict,
    FetchModeLiteral,
    LineItemDict,
)

logger = logging.getLogger(__name__)

CAMPAIGNS_PATH = "/campaigns"
AD_GROUPS_PATH = "/ad-groups"
LINE_ITEMS_PATH = "/line-items"


class HierarchyClient(BaseAdsPlatformClient):
    """Client for reading the campaign hierarchy.

    Every read takes the selected date range and a fetch profile: 'fast'
    returns the full field set with insights, 'basic' a reduced field set
    that the platform serves more reliably.

    Example:
        >>> client = HierarchyClient(
        ...     base_url="https://ads.example.com/api",
        ...     account_id="act_123",
        ... )
        >>> ad_groups = await client.list_ad_groups("c1", "2026-10-01", "2026-10-07")
        >>> for ag in ad_groups:
        ...     print(f"{ag['id']}: {len(ag['line_items'])} line items")
    """

    async def list_campaigns(
        self,
        since: Optional[str] = None,
        until: Optional[str] = None,
        timeout: float = 20.0,
    ) -> list[CampaignDict]:
        """Fetch the initial campaign batch for the date range.

        Args:
            since: Range start (YYYY-MM-DD).
            until: Range end (YYYY-MM-DD).
            timeout: Request timeout in seconds.

        Returns:
            List of CampaignDict, each with a (possibly empty) ad_groups list.
        """
        response = await self._request(
            "GET",
            CAMPAIGNS_PATH,
            params=self._range_params(since, until),
            timeout=timeout,
        )
        campaigns = [parse_campaign(row) for row in parse_rows(response)]
        logger.info(f"Fetched {len(campaigns)} campaigns for {self.account_id}")
        return campaigns

    async def list_ad_groups(
        self,
        campaign_id: str,
        since: Optional[str] = None,
        until: Optional[str] = None,
        mode: FetchModeLiteral = "fast",
        timeout: float = 12.0,
    ) -> list[AdGroupDict]:
        """Fetch the ad-groups of one campaign.

        Args:
            campaign_id: Parent campaign ID.
            since: Range start (YYYY-MM-DD).
            until: Range end (YYYY-MM-DD).
            mode: 'fast' or 'basic' fetch profile.
            timeout: Request timeout in seconds. No retries are made.

        Returns:
            List of AdGroupDict with line_items always present.

        Raises:
            RateLimitError, FetchTimeoutError, ApiError: On failure.
        """
        params = self._range_params(since, until)
        params.update({"campaignId": campaign_id, "mode": mode})
        response = await self._request(
            "GET", AD_GROUPS_PATH, params=params, timeout=timeout, max_retries=0
        )
        return [parse_ad_group(row, campaign_id) for row in parse_rows(response)]

    async def list_line_items(
        self,
        ad_group_id: str,
        since: Optional[str] = None,
        until: Optional[str] = None,
        mode: FetchModeLiteral = "fast",
        timeout: float = 12.0,
    ) -> list[LineItemDict]:
        """Fetch the line-items of one ad-group.

        Args:
            ad_group_id: Parent ad-group ID.
            since: Range start (YYYY-MM-DD).
            until: Range end (YYYY-MM-DD).
            mode: 'fast' or 'basic' fetch profile.
            timeout: Request timeout in seconds. No retries are made.

        Returns:
            List of LineItemDict.

        Raises:
            RateLimitError, FetchTimeoutError, ApiError: On failure.
        """
        params = self._range_params(since, until)
        params.update({"adGroupId": ad_group_id, "mode": mode})
        response = await self._request(
            "GET", LINE_ITEMS_PATH, params=params, timeout=timeout, max_retries=0
        )
        return [parse_line_item(row, ad_group_id) for row in parse_rows(response)]

    @staticmethod
    def _range_params(since: Optional[str], until: Optional[str]) -> dict:
        if since and until:
            return {"since": since, "until": until, "strictDate": "1"}
        return {}
