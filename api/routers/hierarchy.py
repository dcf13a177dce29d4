"""Hierarchy Router - Browse, expand, sort, select and bulk-edit entities."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_orchestrator, http_error
from api.schemas import (
    BulkStatusRequest,
    BulkStatusResponse,
    EntityResponse,
    ExpandResponse,
    HierarchyResponse,
    SelectionRequest,
    SelectionResponse,
    SortRequest,
)
from collectors.errors import ClassifiedError
from services.hierarchy_store import sort_entities
from services.sync_orchestrator import SyncOrchestrator
from storage.models import Campaign, Entity, EntityLevel, EntityStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Hierarchy"])


def _entity_response(orchestrator: SyncOrchestrator, entity: Entity) -> EntityResponse:
    store = orchestrator.store
    if isinstance(entity, Campaign):
        child_count = len(entity.ad_groups)
    else:
        child_count = len(getattr(entity, "line_items", []))
    return EntityResponse(
        id=entity.id,
        name=entity.name,
        level=entity.level.value,
        status=entity.status.value,
        daily_budget=getattr(entity, "daily_budget", None),
        lifetime_budget=getattr(entity, "lifetime_budget", None),
        bid_amount=getattr(entity, "bid_amount", None),
        metrics=dict(entity.metrics),
        effective_status=entity.policy_info.effective_status if entity.policy_info else None,
        fetch_status=store.fetch_status(entity.id).value,
        error=store.error_for(entity.id),
        child_count=child_count,
    )


def _sorted_tree(orchestrator: SyncOrchestrator) -> tuple[list[Entity], list[str]]:
    """Every loaded entity in tree order with each sibling list sorted, plus
    the ids visible under the current expansion state."""
    sort = orchestrator.sort
    selection = orchestrator.selection
    entities: list[Entity] = []
    visible: list[str] = []
    for campaign in sort_entities(orchestrator.store.campaigns, sort):
        entities.append(campaign)
        visible.append(campaign.id)
        campaign_open = campaign.id in selection.expanded_campaigns
        for ad_group in sort_entities(campaign.ad_groups, sort):
            entities.append(ad_group)
            ad_group_open = campaign_open and ad_group.id in selection.expanded_ad_groups
            if campaign_open:
                visible.append(ad_group.id)
            for item in sort_entities(ad_group.line_items, sort):
                entities.append(item)
                if ad_group_open:
                    visible.append(item.id)
    return entities, visible


@router.get("/hierarchy", response_model=HierarchyResponse)
async def get_hierarchy(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """The loaded tree, flattened, with the ids currently visible."""
    entities, visible = _sorted_tree(orchestrator)
    selection = orchestrator.selection
    return HierarchyResponse(
        ids=visible,
        entities=[_entity_response(orchestrator, e) for e in entities],
        selected=sorted(selection.selected),
        expanded_campaigns=sorted(selection.expanded_campaigns),
        expanded_ad_groups=sorted(selection.expanded_ad_groups),
        sort=orchestrator.sort.to_dict(),
        cooldown_remaining_seconds=round(orchestrator.scheduler.cooldown_remaining(), 1),
    )


def _expand_response(orchestrator: SyncOrchestrator, node_id: str, level: EntityLevel, expanded: bool) -> ExpandResponse:
    store = orchestrator.store
    return ExpandResponse(
        id=node_id,
        expanded=expanded,
        fetch_status=store.fetch_status(node_id).value,
        error=store.error_for(node_id),
        children=[
            _entity_response(orchestrator, child)
            for child in sort_entities(store.children_of(node_id, level), orchestrator.sort)
        ],
    )


@router.post("/hierarchy/campaigns/{campaign_id}/expand", response_model=ExpandResponse)
async def expand_campaign(campaign_id: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Toggle a campaign open. The first expansion loads its ad-groups."""
    if orchestrator.store.get_campaign(campaign_id) is None:
        raise HTTPException(status_code=404, detail=f"Campaign {campaign_id} not found")
    expanded = await orchestrator.expand_campaign(campaign_id)
    return _expand_response(orchestrator, campaign_id, EntityLevel.CAMPAIGN, expanded)


@router.post("/hierarchy/ad-groups/{ad_group_id}/expand", response_model=ExpandResponse)
async def expand_ad_group(ad_group_id: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Toggle an ad-group open. The first expansion loads its line items."""
    if orchestrator.store.get_ad_group(ad_group_id) is None:
        raise HTTPException(status_code=404, detail=f"Ad group {ad_group_id} not found")
    expanded = await orchestrator.expand_ad_group(ad_group_id)
    return _expand_response(orchestrator, ad_group_id, EntityLevel.AD_GROUP, expanded)


@router.post("/hierarchy/{node_id}/retry", response_model=ExpandResponse)
async def retry_node(node_id: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Force one reload of a node's children, bypassing the cooldown."""
    level = orchestrator.store.level_of(node_id)
    if level not in (EntityLevel.CAMPAIGN, EntityLevel.AD_GROUP):
        raise HTTPException(status_code=404, detail=f"No campaign or ad group {node_id}")
    try:
        await orchestrator.retry(node_id)
    except ClassifiedError as e:
        raise http_error(e)
    selection = orchestrator.selection
    expanded = node_id in selection.expanded_campaigns or node_id in selection.expanded_ad_groups
    return _expand_response(orchestrator, node_id, level, expanded)


@router.post("/hierarchy/sort")
async def sort_hierarchy(request: SortRequest, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Cycle the sort on a key: ascending, descending, unsorted."""
    return orchestrator.sort.toggle(request.key).to_dict()


@router.post("/hierarchy/selection", response_model=SelectionResponse)
async def update_selection(request: SelectionRequest, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    selection = orchestrator.selection
    if request.clear:
        selection.clear()
    elif request.select_all:
        orchestrator.select_all()
    elif request.entity_id:
        if orchestrator.store.get_entity(request.entity_id) is None:
            raise HTTPException(status_code=404, detail=f"Entity {request.entity_id} not found")
        selection.toggle(request.entity_id)

    ids = orchestrator.visible_ids()
    return SelectionResponse(
        selected=sorted(selection.selected),
        all_selected=selection.all_selected(ids),
        some_selected=selection.some_selected(ids),
    )


@router.post("/hierarchy/bulk-status", response_model=BulkStatusResponse)
async def bulk_status(request: BulkStatusRequest, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Pause or enable many entities, at any level, one at a time."""
    try:
        status = EntityStatus(request.status.upper())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid status: {request.status}")
    if orchestrator.entity_actions is None:
        raise HTTPException(status_code=503, detail="Entity actions not initialized")

    if request.ids is not None:
        result = await orchestrator.entity_actions.bulk_set_status(request.ids, status)
    else:
        result = await orchestrator.bulk_set_status(status)
    return BulkStatusResponse(**result.to_dict())
