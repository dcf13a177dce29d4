"""Sync Router - Start a hierarchy sync and report its progress."""

import logging

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_notifier, get_orchestrator, http_error
from api.schemas import (
    EntityActionResponse,
    NoticeResponse,
    SyncStartRequest,
    SyncStartResponse,
    SyncStateResponse,
)
from collectors.errors import ClassifiedError
from services.notifications import Notifier
from services.sync_orchestrator import SyncOrchestrator
from storage.models import SyncContext

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Sync"])


@router.post("/sync/start", response_model=SyncStartResponse)
async def start_sync(
    request: SyncStartRequest,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Load the campaign batch for an account and date range.

    Discards the previous tree, hydrates from the cache and, unless
    preload is false, starts the staged background preload.
    """
    account_id = request.account_id or orchestrator.scheduler.client.account_id
    context = SyncContext(account_id=account_id, since=request.since, until=request.until)

    try:
        hydrated = await orchestrator.refresh(context)
    except ClassifiedError as e:
        logger.error(f"Failed to start sync for {account_id}: {e.message}")
        raise http_error(e)

    if request.preload:
        orchestrator.launch_preload()

    return SyncStartResponse(
        account_id=account_id,
        since=context.since,
        until=context.until,
        campaign_count=len(orchestrator.store.campaigns),
        hydrated_from_cache=hydrated,
        state=SyncStateResponse(**orchestrator.state.to_dict()),
    )


@router.get("/sync/status", response_model=SyncStateResponse)
async def get_sync_status(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Stage states and the blended percentage."""
    return SyncStateResponse(**orchestrator.state.to_dict())


@router.get("/sync/latest-actions", response_model=dict[str, list[EntityActionResponse]])
async def get_latest_actions(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Recent change events per entity, from the actions stage."""
    return {
        entity_id: [EntityActionResponse(**vars(event)) for event in events]
        for entity_id, events in orchestrator.latest_actions.items()
    }


@router.get("/notices", response_model=list[NoticeResponse])
async def get_notices(
    limit: int = Query(20, ge=1, le=100),
    notifier: Notifier = Depends(get_notifier),
):
    """Most recent user-facing notices, newest last."""
    return [NoticeResponse(**n.to_dict()) for n in notifier.recent(limit)]


@router.delete("/notices")
async def clear_notices(notifier: Notifier = Depends(get_notifier)):
    notifier.clear()
    return {"status": "cleared"}

