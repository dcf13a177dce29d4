"""Optimistic entity mutations.

Every change is two-phase: the store is updated first so the change is
visible immediately, then the platform is called. If the platform call
fails or reports failure, only the touched fields are restored, so child
fetches that landed in the meantime survive the rollback.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from collectors.errors import ClassifiedError, MutationError
from collectors.mutations import MutationsClient
from services.hierarchy_store import HierarchyStore
from services.notifications import Notifier
from storage.models import Entity, EntityLevel, EntityStatus

logger = logging.getLogger(__name__)


class UnknownEntityError(KeyError):
    """No entity with the given id is loaded."""


@dataclass
class BulkStatusResult:
    """Outcome of a bulk status change."""

    status: EntityStatus
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "succeeded": list(self.succeeded),
            "failed": dict(self.failed),
        }


class EntityActions:
    """Status, budget and bid changes with rollback on failure.

    Example:
        >>> actions = EntityActions(mutations_client, store, notifier)
        >>> await actions.set_status("ag-1", EntityStatus.PAUSED)
    """

    def __init__(
        self,
        client: MutationsClient,
        store: HierarchyStore,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.client = client
        self.store = store
        self.notifier = notifier or Notifier()

    async def set_status(self, entity_id: str, status: EntityStatus) -> Entity:
        """Set an entity's status.

        Returns:
            The updated entity.

        Raises:
            UnknownEntityError: No such entity.
            MutationError: The platform reported failure (rolled back).
            ClassifiedError: The request failed (rolled back).
        """
        entity = self._require(entity_id)
        status = EntityStatus(status)
        await self._apply(
            entity,
            {"status": status},
            lambda: self.client.update_status(entity.level.value, entity_id, status.value),
            f"update status of {entity.level.value} {entity_id}",
        )
        return self.store.get_entity(entity_id)

    async def set_budget(self, entity_id: str, daily_budget: float) -> Entity:
        """Set the daily budget of a campaign or ad-group."""
        entity = self._require(entity_id)
        if entity.level == EntityLevel.LINE_ITEM:
            raise ValueError("Line items have no budget")
        budget = round(float(daily_budget), 2)
        if budget < 0:
            raise ValueError("daily_budget must be non-negative")
        await self._apply(
            entity,
            {"daily_budget": budget},
            lambda: self.client.update_budget(entity.level.value, entity_id, budget),
            f"update budget of {entity.level.value} {entity_id}",
        )
        return self.store.get_entity(entity_id)

    async def set_bid(self, ad_group_id: str, bid_amount: float) -> Entity:
        """Set the bid amount of an ad-group."""
        entity = self._require(ad_group_id)
        if entity.level != EntityLevel.AD_GROUP:
            raise ValueError("Bids can only be set on ad-groups")
        await self._apply(
            entity,
            {"bid_amount": float(bid_amount)},
            lambda: self.client.update_bid(ad_group_id, float(bid_amount)),
            f"update bid of ad-group {ad_group_id}",
        )
        return self.store.get_entity(ad_group_id)

    async def bulk_set_status(self, ids: Iterable[str], status: EntityStatus) -> BulkStatusResult:
        """Set the status of many entities, at any level, one at a time.

        A failure on one id is recorded and the rest still run.
        """
        result = BulkStatusResult(status=EntityStatus(status))
        for entity_id in dict.fromkeys(ids):
            try:
                await self.set_status(entity_id, status)
                result.succeeded.append(entity_id)
            except UnknownEntityError:
                result.failed[entity_id] = "Unknown entity"
            except ClassifiedError as e:
                result.failed[entity_id] = e.message
        logger.info(
            f"Bulk status {result.status.value}: {len(result.succeeded)} succeeded, "
            f"{len(result.failed)} failed"
        )
        return result

    def _require(self, entity_id: str) -> Entity:
        entity = self.store.get_entity(entity_id)
        if entity is None:
            raise UnknownEntityError(entity_id)
        return entity

    async def _apply(self, entity: Entity, changes: dict, remote, description: str) -> None:
        previous = {name: getattr(entity, name) for name in changes}
        self.store.update_entity(entity.id, **changes)

        try:
            confirmed = await remote()
            if not confirmed:
                raise MutationError(f"Platform rejected request to {description}")
        except ClassifiedError as e:
            self.store.update_entity(entity.id, **previous)
            logger.error(f"Failed to {description}: {e.message}")
            self.notifier.error(f"Failed to {description}: {e.message}")
            raise
