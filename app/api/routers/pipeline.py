"""
app/api/routers/pipeline.py

Endpoints that push work into the research pipeline.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_pipeline_runtime
from app.pipeline.runtime import PipelineRuntime
from app.pipeline.stages import Stage
from app.schemas.pipeline import DiscoverySearchRequest, StageEnqueuedResponse
from db.repositories.business_repository import BusinessRepository
from db.repositories.reference_repository import ReferenceRepository
from db.session import get_db

router = APIRouter(prefix="/pipeline", tags=["pipeline"])


@router.post(
    "/discovery",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=StageEnqueuedResponse,
)
def trigger_discovery_search(
    payload: DiscoverySearchRequest,
    db: Session = Depends(get_db),
    runtime: PipelineRuntime = Depends(get_pipeline_runtime),
) -> StageEnqueuedResponse:
    """
    Queue a places search for one query in one city.
    """

    if ReferenceRepository(db).get_city(payload.city_id) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown city_id: {payload.city_id}",
        )

    args = {
        "query": payload.query.strip(),
        "city_id": str(payload.city_id),
        "category_id": str(payload.category_id) if payload.category_id else None,
        "source": payload.source.strip().lower(),
    }
    enqueued = runtime.orchestrator.enqueue(Stage.DISCOVERY_SEARCH, args)
    return StageEnqueuedResponse(stage=Stage.DISCOVERY_SEARCH.value, enqueued=enqueued, args=args)


@router.post(
    "/businesses/{business_id}/research",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=StageEnqueuedResponse,
)
def trigger_business_research(
    business_id: UUID,
    db: Session = Depends(get_db),
    runtime: PipelineRuntime = Depends(get_pipeline_runtime),
) -> StageEnqueuedResponse:
    if BusinessRepository(db).get(business_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Business not found: {business_id}",
        )

    args = {"business_id": str(business_id)}
    enqueued = runtime.orchestrator.enqueue(Stage.WEBSITE_CRAWL, args)
    return StageEnqueuedResponse(stage=Stage.WEBSITE_CRAWL.value, enqueued=enqueued, args=args)
