"""Ads Sync - Storage Module.

This module holds the hierarchy data models and the best-effort persistent
cache used for warm starts.

The storage layer is organized as follows:
- models.py: All dataclass definitions
- adapters.py: Collector dict <-> model <-> cache wire conversions
- repositories/: Async SQLite access
- hierarchy_cache.py: The hierarchy cache repository

Example:
    >>> from collectors import HierarchyClient
    >>> from storage import HierarchyCacheRepository, campaign_from_dict
    >>>
    >>> rows = await client.list_campaigns(since, until)
    >>> campaigns = [campaign_from_dict(r) for r in rows]
    >>> cache = HierarchyCacheRepository()
    >>> await cache.save(context, campaigns)
"""

from .adapters import (
    ad_group_from_dict,
    ad_group_to_wire,
    campaign_from_dict,
    line_item_from_dict,
    line_item_to_wire,
)
from .hierarchy_cache import HierarchyCacheRepository, build_cache_payload, parse_cache_payload
from .models import (
    AdGroup,
    Campaign,
    Entity,
    EntityAction,
    EntityLevel,
    EntityStatus,
    FetchMode,
    FetchStatus,
    HourlyEntry,
    LineItem,
    PolicyInfo,
    SyncContext,
)
from .repositories import BaseRepository

__all__ = [
    # Models
    "Campaign",
    "AdGroup",
    "LineItem",
    "Entity",
    "EntityAction",
    "EntityLevel",
    "EntityStatus",
    "FetchMode",
    "FetchStatus",
    "HourlyEntry",
    "PolicyInfo",
    "SyncContext",
    # Repositories
    "BaseRepository",
    "HierarchyCacheRepository",
    # Adapters
    "campaign_from_dict",
    "ad_group_from_dict",
    "line_item_from_dict",
    "ad_group_to_wire",
    "line_item_to_wire",
    "build_cache_payload",
    "parse_cache_payload",
]
