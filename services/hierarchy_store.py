"""In-memory campaign hierarchy with per-node fetch status.

The store holds the campaign -> ad-group -> line-item tree for one account
and date range. Every write replaces a whole branch keyed by node id and
leaves sibling branches untouched, so a late child fetch for one campaign
can never clobber another campaign's children.

Also here: the sort state and comparator used to order entity lists, and
the selection/expansion state used for bulk actions.
"""

from __future__ import annotations

import dataclasses
import logging
from enum import Enum
from typing import Iterable, Optional, Sequence, Union

from analytics.metrics import metric_value, with_derived_metrics
from storage.models import (
    AdGroup,
    Campaign,
    Entity,
    EntityLevel,
    EntityStatus,
    FetchStatus,
    LineItem,
)

logger = logging.getLogger(__name__)


def _normalize_line_item(item: LineItem) -> LineItem:
    return dataclasses.replace(item, metrics=with_derived_metrics(item.metrics))


def _normalize_ad_group(ad_group: AdGroup) -> AdGroup:
    return dataclasses.replace(
        ad_group,
        metrics=with_derived_metrics(ad_group.metrics),
        line_items=[_normalize_line_item(li) for li in ad_group.line_items or []],
    )


def _normalize_campaign(campaign: Campaign) -> Campaign:
    return dataclasses.replace(
        campaign,
        metrics=with_derived_metrics(campaign.metrics),
        ad_groups=[_normalize_ad_group(ag) for ag in campaign.ad_groups or []],
    )


class HierarchyStore:
    """Normalized campaign tree plus fetch status and error per node.

    Example:
        >>> store = HierarchyStore()
        >>> store.load_campaigns(campaigns)
        >>> store.replace_ad_groups("c1", ad_groups)
        >>> store.flatten_ids()
        ['c1', 'ag1', 'li1', 'c2']
    """

    def __init__(self) -> None:
        self._campaigns: list[Campaign] = []
        self._fetch_status: dict[str, FetchStatus] = {}
        self._errors: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Tree
    # ------------------------------------------------------------------

    @property
    def campaigns(self) -> list[Campaign]:
        """The current tree. Treat as read-only; write through the store."""
        return list(self._campaigns)

    def load_campaigns(self, campaigns: Iterable[Campaign]) -> None:
        """Replace the whole tree from an initial batch response.

        Every campaign and ad-group is normalized to carry a child list and
        the derived ratio metrics. All fetch status and errors are reset.
        """
        self._campaigns = [_normalize_campaign(c) for c in campaigns]
        self._fetch_status.clear()
        self._errors.clear()
        logger.info(f"Loaded {len(self._campaigns)} campaigns into hierarchy store")

    def clear(self) -> None:
        self._campaigns = []
        self._fetch_status.clear()
        self._errors.clear()

    def hydrate(self, cached: dict[str, list[AdGroup]]) -> int:
        """Seed ACTIVE campaigns with cached ad-groups for a fast first paint.

        Only campaigns that are ACTIVE and have a non-empty cache entry are
        touched. Hydrated nodes are not marked fetched.

        Returns:
            Number of campaigns hydrated.
        """
        hydrated = 0
        campaigns = []
        for campaign in self._campaigns:
            entry = cached.get(campaign.id)
            if campaign.status == EntityStatus.ACTIVE and entry:
                campaign = dataclasses.replace(
                    campaign, ad_groups=[_normalize_ad_group(ag) for ag in entry]
                )
                hydrated += 1
            campaigns.append(campaign)
        self._campaigns = campaigns
        if hydrated:
            logger.debug(f"Hydrated {hydrated} campaigns from hierarchy cache")
        return hydrated

    def replace_ad_groups(self, campaign_id: str, ad_groups: Sequence[AdGroup]) -> bool:
        """Replace one campaign's ad-group list.

        Line items already loaded for an ad-group are carried over when the
        incoming ad-group arrives without any.

        Returns:
            False if the campaign is not in the tree.
        """
        for index, campaign in enumerate(self._campaigns):
            if campaign.id != campaign_id:
                continue
            previous = {ag.id: ag for ag in campaign.ad_groups}
            merged = []
            for ad_group in ad_groups:
                ad_group = _normalize_ad_group(ad_group)
                existing = previous.get(ad_group.id)
                if not ad_group.line_items and existing is not None and existing.line_items:
                    ad_group = dataclasses.replace(ad_group, line_items=existing.line_items)
                merged.append(ad_group)
            self._replace_campaign_at(index, dataclasses.replace(campaign, ad_groups=merged))
            return True
        logger.debug(f"Dropping ad-groups for unknown campaign {campaign_id}")
        return False

    def replace_line_items(self, ad_group_id: str, line_items: Sequence[LineItem]) -> bool:
        """Replace one ad-group's line-item list.

        Returns:
            False if the ad-group is not in the tree.
        """
        for index, campaign in enumerate(self._campaigns):
            for ag_index, ad_group in enumerate(campaign.ad_groups):
                if ad_group.id != ad_group_id:
                    continue
                ad_groups = list(campaign.ad_groups)
                ad_groups[ag_index] = dataclasses.replace(
                    ad_group, line_items=[_normalize_line_item(li) for li in line_items]
                )
                self._replace_campaign_at(index, dataclasses.replace(campaign, ad_groups=ad_groups))
                return True
        logger.debug(f"Dropping line items for unknown ad-group {ad_group_id}")
        return False

    def update_entity(self, entity_id: str, **changes) -> Optional[Entity]:
        """Apply field changes to one entity by id.

        Returns:
            The entity as it was before the change (for rollback), or None
            if no entity has that id.
        """
        for index, campaign in enumerate(self._campaigns):
            if campaign.id == entity_id:
                self._replace_campaign_at(index, dataclasses.replace(campaign, **changes))
                return campaign
            for ag_index, ad_group in enumerate(campaign.ad_groups):
                if ad_group.id == entity_id:
                    ad_groups = list(campaign.ad_groups)
                    ad_groups[ag_index] = dataclasses.replace(ad_group, **changes)
                    self._replace_campaign_at(
                        index, dataclasses.replace(campaign, ad_groups=ad_groups)
                    )
                    return ad_group
                for li_index, item in enumerate(ad_group.line_items):
                    if item.id == entity_id:
                        line_items = list(ad_group.line_items)
                        line_items[li_index] = dataclasses.replace(item, **changes)
                        ad_groups = list(campaign.ad_groups)
                        ad_groups[ag_index] = dataclasses.replace(ad_group, line_items=line_items)
                        self._replace_campaign_at(
                            index, dataclasses.replace(campaign, ad_groups=ad_groups)
                        )
                        return item
        return None

    def _replace_campaign_at(self, index: int, campaign: Campaign) -> None:
        campaigns = list(self._campaigns)
        campaigns[index] = campaign
        self._campaigns = campaigns

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        return next((c for c in self._campaigns if c.id == campaign_id), None)

    def get_ad_group(self, ad_group_id: str) -> Optional[AdGroup]:
        for campaign in self._campaigns:
            for ad_group in campaign.ad_groups:
                if ad_group.id == ad_group_id:
                    return ad_group
        return None

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        for campaign in self._campaigns:
            if campaign.id == entity_id:
                return campaign
            for ad_group in campaign.ad_groups:
                if ad_group.id == entity_id:
                    return ad_group
                for item in ad_group.line_items:
                    if item.id == entity_id:
                        return item
        return None

    def level_of(self, entity_id: str) -> Optional[EntityLevel]:
        entity = self.get_entity(entity_id)
        return entity.level if entity is not None else None

    def parent_campaign_id(self, ad_group_id: str) -> Optional[str]:
        for campaign in self._campaigns:
            if any(ag.id == ad_group_id for ag in campaign.ad_groups):
                return campaign.id
        return None

    def children_of(self, node_id: str, level: EntityLevel) -> list[Union[AdGroup, LineItem]]:
        """Current children of a campaign or ad-group (empty if unknown)."""
        if level == EntityLevel.CAMPAIGN:
            campaign = self.get_campaign(node_id)
            return list(campaign.ad_groups) if campaign else []
        ad_group = self.get_ad_group(node_id)
        return list(ad_group.line_items) if ad_group else []

    def flatten_ids(
        self,
        expanded_campaigns: Optional[set[str]] = None,
        expanded_ad_groups: Optional[set[str]] = None,
    ) -> list[str]:
        """Ids of every visible entity in tree order.

        With no expansion sets given, every loaded entity is visible.
        """
        ids: list[str] = []
        for campaign in self._campaigns:
            ids.append(campaign.id)
            if expanded_campaigns is not None and campaign.id not in expanded_campaigns:
                continue
            for ad_group in campaign.ad_groups:
                ids.append(ad_group.id)
                if expanded_ad_groups is not None and ad_group.id not in expanded_ad_groups:
                    continue
                ids.extend(item.id for item in ad_group.line_items)
        return ids

    # ------------------------------------------------------------------
    # Fetch status
    # ------------------------------------------------------------------

    def fetch_status(self, node_id: str) -> FetchStatus:
        return self._fetch_status.get(node_id, FetchStatus.UNFETCHED)

    def set_fetch_status(self, node_id: str, status: FetchStatus, error: Optional[str] = None) -> None:
        self._fetch_status[node_id] = status
        if status == FetchStatus.ERRORED:
            self._errors[node_id] = error or "Failed to load"
        else:
            self._errors.pop(node_id, None)

    def clear_fetch_status(self, node_id: str) -> None:
        self._fetch_status.pop(node_id, None)
        self._errors.pop(node_id, None)

    def reset_fetch_status(self) -> None:
        self._fetch_status.clear()
        self._errors.clear()

    def error_for(self, node_id: str) -> Optional[str]:
        return self._errors.get(node_id)

    @property
    def errors(self) -> dict[str, str]:
        return dict(self._errors)

    def ids_with_status(self, status: FetchStatus) -> set[str]:
        return {node_id for node_id, s in self._fetch_status.items() if s == status}


# ----------------------------------------------------------------------
# Sorting
# ----------------------------------------------------------------------


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclasses.dataclass
class SortState:
    """Current sort key and direction.

    Repeated requests on the same key cycle None -> asc -> desc -> None.
    A request on a different key starts at asc.
    """

    key: Optional[str] = None
    direction: Optional[SortDirection] = None

    def toggle(self, key: str) -> "SortState":
        if key != self.key or self.direction is None:
            self.key = key
            self.direction = SortDirection.ASC
        elif self.direction == SortDirection.ASC:
            self.direction = SortDirection.DESC
        else:
            self.key = None
            self.direction = None
        return self

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "direction": self.direction.value if self.direction else None,
        }


def sort_value(entity: Entity, key: str) -> Union[str, float]:
    """The value an entity is ordered by for a sort key.

    name and status compare as strings, budget is the daily budget
    (0 when unset), anything else is read from the metrics bag (0 when
    missing).
    """
    if key == "name":
        return entity.name
    if key == "status":
        return entity.status.value
    if key == "budget":
        return float(getattr(entity, "daily_budget", None) or 0)
    return metric_value(entity.metrics, key)


def compare_entities(a: Entity, b: Entity, key: str) -> int:
    """Three-way comparison on a sort key: -1, 0 or 1."""
    va, vb = sort_value(a, key), sort_value(b, key)
    if va < vb:
        return -1
    if va > vb:
        return 1
    return 0


def sort_entities(entities: Sequence[Entity], state: SortState) -> list:
    """Order entities by the sort state. No direction keeps input order."""
    if state.key is None or state.direction is None:
        return list(entities)
    key = state.key
    return sorted(
        entities,
        key=lambda e: sort_value(e, key),
        reverse=state.direction == SortDirection.DESC,
    )


# ----------------------------------------------------------------------
# Selection and expansion
# ----------------------------------------------------------------------


@dataclasses.dataclass
class SelectionState:
    """Selected entity ids plus expanded campaigns and ad-groups."""

    selected: set[str] = dataclasses.field(default_factory=set)
    expanded_campaigns: set[str] = dataclasses.field(default_factory=set)
    expanded_ad_groups: set[str] = dataclasses.field(default_factory=set)

    def toggle(self, entity_id: str) -> bool:
        """Flip selection of one id. Returns the new selected state."""
        if entity_id in self.selected:
            self.selected.discard(entity_id)
            return False
        self.selected.add(entity_id)
        return True

    def select_all(self, ids: Iterable[str]) -> None:
        self.selected = set(ids)

    def clear(self) -> None:
        self.selected.clear()

    def all_selected(self, ids: Sequence[str]) -> bool:
        return bool(ids) and all(i in self.selected for i in ids)

    def some_selected(self, ids: Sequence[str]) -> bool:
        """True when at least one, but not every, id is selected."""
        count = sum(1 for i in ids if i in self.selected)
        return 0 < count < len(ids)

    def toggle_campaign(self, campaign_id: str) -> bool:
        """Flip expansion of a campaign. Returns True if now expanded."""
        return self._toggle(self.expanded_campaigns, campaign_id)

    def toggle_ad_group(self, ad_group_id: str) -> bool:
        """Flip expansion of an ad-group. Returns True if now expanded."""
        return self._toggle(self.expanded_ad_groups, ad_group_id)

    def reset(self) -> None:
        self.selected.clear()
        self.expanded_campaigns.clear()
        self.expanded_ad_groups.clear()

    @staticmethod
    def _toggle(target: set[str], key: str) -> bool:
        if key in target:
            target.discard(key)
            return False
        target.add(key)
        return True
