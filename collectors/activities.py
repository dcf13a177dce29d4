"""Client for the recent-activity feed (latest actions per entity)."""

import logging
from typing import Optional, TypedDict

from collectors.base import BaseAdsPlatformClient

logger = logging.getLogger(__name__)

ACTIVITIES_PATH = "/activities"


class EntityActionDict(TypedDict, total=False):
    """One change event on an entity."""

    entity_id: str
    event_type: str
    description: str
    actor: Optional[str]
    occurred_at: Optional[str]


def parse_activities(response) -> dict[str, list[EntityActionDict]]:
    """Normalize the activities payload.

    The endpoint answers ``{"data": {"<entity id>": [event, ...]}}``.
    Malformed entries are skipped.
    """
    data = response.get("data") if isinstance(response, dict) else None
    if not isinstance(data, dict):
        return {}

    result: dict[str, list[EntityActionDict]] = {}
    for entity_id, events in data.items():
        if not isinstance(events, list):
            continue
        parsed: list[EntityActionDict] = []
        for event in events:
            if not isinstance(event, dict):
                continue
            parsed.append({
                "entity_id": str(event.get("entityId") or entity_id),
                "event_type": str(event.get("type") or event.get("eventType") or "unknown"),
                "description": str(event.get("description") or ""),
                "actor": event.get("performedByName") or event.get("performedBy"),
                "occurred_at": event.get("timestamp"),
            })
        result[str(entity_id)] = parsed
    return result


class ActivitiesClient(BaseAdsPlatformClient):
    """Client for the activities endpoint."""

    async def latest_actions(
        self,
        since_days: int = 3,
        limit: int = 30,
        timeout: float = 7.0,
    ) -> dict[str, list[EntityActionDict]]:
        """Fetch recent change events keyed by entity id.

        A lightweight poll: small window, small cap, no retries.

        Args:
            since_days: Look-back window in days.
            limit: Maximum number of events.
            timeout: Request timeout in seconds.
        """
        response = await self._request(
            "GET",
            ACTIVITIES_PATH,
            params={"since": str(since_days), "limit": str(limit)},
            timeout=timeout,
            max_retries=0,
        )
        actions = parse_activities(response)
        logger.info(f"Fetched latest actions for {len(actions)} entities")
        return actions
