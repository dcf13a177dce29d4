"""Recommendations Router - List, apply and dismiss recommendations."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from analytics.recommendation_engine import RecommendationEngine, UnknownRecommendationError
from analytics.recommendation_models import Recommendation, RecommendationCategory
from api.dependencies import get_engine, http_error
from api.schemas import (
    ApplyAllResponse,
    ApplyResponse,
    RecommendationResponse,
    RecommendationStatsResponse,
)
from collectors.errors import ClassifiedError
from services.entity_actions import UnknownEntityError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Recommendations"])


def _response(engine: RecommendationEngine, rec: Recommendation) -> RecommendationResponse:
    return RecommendationResponse(**rec.to_dict(), phase=engine.phase(rec.id).value)


def _category(value: Optional[str]) -> Optional[RecommendationCategory]:
    if value is None:
        return None
    try:
        return RecommendationCategory(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid category: {value}")


@router.get("/recommendations", response_model=list[RecommendationResponse])
async def list_recommendations(
    category: Optional[str] = Query(None, description="budget, creative, targeting, bid_strategy, status, dayparting"),
    pending_only: bool = Query(False, description="Hide applied recommendations"),
    engine: RecommendationEngine = Depends(get_engine),
):
    """Non-dismissed recommendations, critical first."""
    selected = _category(category)
    recs = engine.pending(selected) if pending_only else engine.visible(selected)
    return [_response(engine, rec) for rec in recs]


@router.get("/recommendations/stats", response_model=RecommendationStatsResponse)
async def recommendation_stats(engine: RecommendationEngine = Depends(get_engine)):
    return RecommendationStatsResponse(
        **engine.stats(),
        by_category=engine.category_counts(),
        estimated_savings=round(engine.estimated_savings(), 2),
        applying_all=engine.applying_all,
    )


@router.post("/recommendations/apply-all", response_model=ApplyAllResponse)
async def apply_all(engine: RecommendationEngine = Depends(get_engine)):
    """Apply every pending recommendation in order, skipping failures."""
    if engine.applying_all:
        raise HTTPException(status_code=409, detail="Apply all is already running")
    result = await engine.apply_all()
    return ApplyAllResponse(**result.to_dict())


@router.post("/recommendations/{rec_id}/apply", response_model=ApplyResponse)
async def apply_recommendation(rec_id: str, engine: RecommendationEngine = Depends(get_engine)):
    """One apply click. Non-critical recommendations need a second click to confirm."""
    try:
        phase = await engine.request_apply(rec_id)
    except UnknownRecommendationError:
        raise HTTPException(status_code=404, detail=f"Recommendation {rec_id} not found")
    except UnknownEntityError as e:
        raise HTTPException(status_code=404, detail=f"Entity {e.args[0]} is not loaded")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ClassifiedError as e:
        raise http_error(e)

    rec = engine.get(rec_id)
    return ApplyResponse(
        id=rec.id,
        phase=phase.value,
        status=rec.status.value,
        applied_summary=rec.applied_summary,
    )


@router.post("/recommendations/{rec_id}/dismiss", response_model=RecommendationResponse)
async def dismiss_recommendation(rec_id: str, engine: RecommendationEngine = Depends(get_engine)):
    try:
        rec = engine.dismiss(rec_id)
    except UnknownRecommendationError:
        raise HTTPException(status_code=404, detail=f"Recommendation {rec_id} not found")
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _response(engine, rec)
