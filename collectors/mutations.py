"""Write client for entity status, budget and bid changes.

Each mutation takes one id and one new value and either succeeds or
fails as a whole. There are no partial-success semantics.
"""

import logging

from collectors.base import BaseAdsPlatformClient

logger = logging.getLogger(__name__)

# Level -> collection path on the platform API
LEVEL_PATHS = {
    "campaign": "/campaigns",
    "adgroup": "/ad-groups",
    "lineitem": "/line-items",
}

BUDGET_LEVELS = ("campaign", "adgroup")


class MutationsClient(BaseAdsPlatformClient):
    """Client for the ads platform mutation endpoints.

    Every method returns True when the platform confirms the change and
    False when it answers with ``{"success": false}``. Transport failures
    raise the usual classified errors.

    Example:
        >>> client = MutationsClient(base_url="https://ads.example.com/api", account_id="act_123")
        >>> await client.update_status("adgroup", "ag-1", "PAUSED")
        True
    """

    async def update_status(self, level: str, entity_id: str, status: str) -> bool:
        """Set the configured status of a campaign, ad-group or line-item.

        Args:
            level: 'campaign', 'adgroup' or 'lineitem'.
            entity_id: Entity to update.
            status: 'ACTIVE' or 'PAUSED'.

        Raises:
            ValueError: On an unknown level or status.
        """
        status = status.upper()
        if status not in ("ACTIVE", "PAUSED"):
            raise ValueError(f"status must be ACTIVE or PAUSED, got {status!r}")
        path = f"{self._level_path(level)}/{entity_id}/status"
        response = await self._request("POST", path, json={"status": status}, timeout=12.0)
        return self._succeeded(response, path)

    async def update_budget(self, level: str, entity_id: str, daily_budget: float) -> bool:
        """Set the daily budget of a campaign or ad-group.

        Raises:
            ValueError: On a line-item level or a negative budget.
        """
        if level not in BUDGET_LEVELS:
            raise ValueError(f"Budgets can only be set on {BUDGET_LEVELS}, got {level!r}")
        if daily_budget < 0:
            raise ValueError("daily_budget must be non-negative")
        path = f"{self._level_path(level)}/{entity_id}/budget"
        response = await self._request(
            "POST", path, json={"dailyBudget": daily_budget}, timeout=12.0
        )
        return self._succeeded(response, path)

    async def update_bid(self, ad_group_id: str, bid_amount: float) -> bool:
        """Set the bid amount of an ad-group."""
        path = f"{LEVEL_PATHS['adgroup']}/{ad_group_id}/bid"
        response = await self._request(
            "POST", path, json={"bidAmount": bid_amount}, timeout=12.0
        )
        return self._succeeded(response, path)

    @staticmethod
    def _level_path(level: str) -> str:
        try:
            return LEVEL_PATHS[level]
        except KeyError:
            raise ValueError(f"Unknown entity level: {level!r}") from None

    @staticmethod
    def _succeeded(response, path: str) -> bool:
        if isinstance(response, dict) and response.get("success") is False:
            logger.warning(f"Mutation rejected by platform: {path}")
            return False
        return True
