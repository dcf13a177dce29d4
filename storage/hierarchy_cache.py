"""Persistent warm-start cache for the loaded hierarchy.

One row per account + date range. The payload only ever holds ACTIVE
campaigns that had at least one ad-group loaded, in the wire shape:

    {"campaigns": {"<campaign id>": {"adGroups": [...]}}}

The cache is advisory. Every read and write failure is logged and
swallowed; callers treat a miss and a failure the same way.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from collectors.hierarchy.parsers import parse_ad_group
from storage.adapters import ad_group_from_dict, ad_group_to_wire
from storage.models import AdGroup, Campaign, EntityStatus, SyncContext
from storage.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

DEFAULT_CACHE_PATH = Path.home() / ".adsync" / "hierarchy_cache.db"


def build_cache_payload(campaigns: Iterable[Campaign]) -> dict:
    """Build the cache entry for the given campaigns.

    Args:
        campaigns: Campaigns currently held by the store.

    Returns:
        Payload with only ACTIVE campaigns that have ad-groups loaded.
    """
    entries = {}
    for campaign in campaigns:
        if campaign.status != EntityStatus.ACTIVE or not campaign.ad_groups:
            continue
        entries[campaign.id] = {
            "adGroups": [ad_group_to_wire(ag) for ag in campaign.ad_groups]
        }
    return {"campaigns": entries}


def parse_cache_payload(payload: dict) -> dict[str, list[AdGroup]]:
    """Turn a cache payload back into ad-group lists keyed by campaign id.

    Entries that are not shaped as expected are skipped.
    """
    campaigns = payload.get("campaigns") if isinstance(payload, dict) else None
    if not isinstance(campaigns, dict):
        return {}

    result: dict[str, list[AdGroup]] = {}
    for campaign_id, entry in campaigns.items():
        if not isinstance(entry, dict):
            continue
        rows = entry.get("adGroups")
        if not isinstance(rows, list):
            continue
        result[str(campaign_id)] = [
            ad_group_from_dict(parse_ad_group(row, str(campaign_id)))
            for row in rows
            if isinstance(row, dict)
        ]
    return result


class HierarchyCacheRepository(BaseRepository[dict]):
    """SQLite-backed hierarchy cache.

    Example:
        >>> cache = HierarchyCacheRepository("~/.adsync/hierarchy_cache.db")
        >>> await cache.save(context, store.campaigns)
        >>> cached = await cache.load(context)
    """

    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS hierarchy_cache (
            cache_key TEXT PRIMARY KEY,
            payload TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """,
    )

    def __init__(self, db_path: str | Path = DEFAULT_CACHE_PATH, enabled: bool = True) -> None:
        super().__init__(db_path)
        self.enabled = enabled

    async def load(self, context: SyncContext) -> Optional[dict[str, list[AdGroup]]]:
        """Read the cached ad-groups for a context.

        Returns:
            Ad-groups keyed by campaign id, or None on a miss or any failure.
        """
        if not self.enabled:
            return None
        try:
            row = await self._execute(
                "SELECT payload FROM hierarchy_cache WHERE cache_key = ?",
                (context.cache_key,),
                fetch="one",
            )
            if row is None:
                logger.debug(f"Hierarchy cache miss for {context.cache_key}")
                return None
            return parse_cache_payload(json.loads(row["payload"]))
        except (sqlite3.Error, OSError, ValueError, KeyError) as e:
            logger.warning(f"Ignoring unreadable hierarchy cache entry: {e}")
            return None

    async def save(self, context: SyncContext, campaigns: Iterable[Campaign]) -> bool:
        """Write the cache entry for a context.

        Returns:
            True if the entry was written.
        """
        if not self.enabled:
            return False
        try:
            payload = json.dumps(build_cache_payload(campaigns))
            await self._execute(
                """
                INSERT INTO hierarchy_cache (cache_key, payload, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(cache_key) DO UPDATE SET
                    payload = excluded.payload,
                    updated_at = excluded.updated_at
                """,
                (context.cache_key, payload, datetime.now(timezone.utc).isoformat()),
            )
            return True
        except (sqlite3.Error, OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to write hierarchy cache: {e}")
            return False

    async def clear(self, context: Optional[SyncContext] = None) -> int:
        """Delete one entry, or every entry when no context is given."""
        try:
            if context is None:
                return await self._execute("DELETE FROM hierarchy_cache")
            return await self._execute(
                "DELETE FROM hierarchy_cache WHERE cache_key = ?",
                (context.cache_key,),
            )
        except (sqlite3.Error, OSError) as e:
            logger.warning(f"Failed to clear hierarchy cache: {e}")
            return 0
