"""Issues Router - Policy and delivery issue review."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from analytics.issue_extractor import issue_counts
from api.dependencies import get_orchestrator, http_error
from api.schemas import IssueCountsResponse, IssueFixResponse, IssueListResponse, IssueResponse
from collectors.errors import ClassifiedError
from services.entity_actions import UnknownEntityError
from services.sync_orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Issues"])


@router.get("/issues", response_model=IssueListResponse)
async def list_issues(
    active_campaigns_only: bool = Query(False, description="Only issues under ACTIVE campaigns"),
    recent_only: bool = Query(False, description="Only issues updated within 12 hours"),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Server issues merged with locally detected ones, critical first."""
    issues = orchestrator.issues(active_campaigns_only=active_campaigns_only, recent_only=recent_only)
    return IssueListResponse(
        issues=[IssueResponse(**issue.to_dict()) for issue in issues],
        counts=IssueCountsResponse(**issue_counts(issues)),
        review_open=orchestrator.issue_review_open,
        stage=orchestrator.state.errors.value,
    )


@router.post("/issues/review/open")
async def open_review(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Open the issue review and start a server issue scan."""
    orchestrator.open_issue_review()
    return {"review_open": True, "stage": orchestrator.state.errors.value}


@router.post("/issues/review/close")
async def close_review(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    orchestrator.close_issue_review()
    return {"review_open": False, "stage": orchestrator.state.errors.value}


@router.post("/issues/{issue_id}/fix", response_model=IssueFixResponse)
async def fix_issue(issue_id: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Apply the one-click fix: pause/enable, or boost the ad-group budget."""
    try:
        fix = await orchestrator.fix_issue(issue_id)
    except UnknownEntityError as e:
        raise HTTPException(status_code=404, detail=f"Entity {e.args[0]} is not loaded")
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Issue {issue_id} not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ClassifiedError as e:
        raise http_error(e)

    return IssueFixResponse(
        issue_id=issue_id,
        kind=fix.kind,
        entity_id=fix.entity_id,
        level=fix.level.value,
        status=fix.status.value if fix.status else None,
        daily_budget=fix.daily_budget,
    )
