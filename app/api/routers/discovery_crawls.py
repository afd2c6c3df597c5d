"""
app/api/routers/discovery_crawls.py

Discovery crawl launch and status endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_pipeline_runtime
from app.pipeline.runtime import PipelineRuntime
from app.pipeline.stages import Stage
from app.schemas.discovery_crawl import (
    DiscoveryCrawlCreateRequest,
    DiscoveryCrawlListResponse,
    DiscoveryCrawlResponse,
)
from db.models.discovery_crawl import DiscoveryCrawl, DiscoveryCrawlStatus
from db.repositories.discovery_crawl_repository import DiscoveryCrawlRepository
from db.repositories.reference_repository import ReferenceRepository
from db.session import get_db

router = APIRouter(tags=["discovery-crawls"])

_KNOWN_STATUSES = {
    DiscoveryCrawlStatus.CRAWLING,
    DiscoveryCrawlStatus.CRAWLED,
    DiscoveryCrawlStatus.PROCESSING,
    DiscoveryCrawlStatus.COMPLETED,
    DiscoveryCrawlStatus.FAILED,
}


@router.post(
    "/discovery-crawls",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=DiscoveryCrawlResponse,
)
def create_discovery_crawl(
    payload: DiscoveryCrawlCreateRequest,
    db: Session = Depends(get_db),
    runtime: PipelineRuntime = Depends(get_pipeline_runtime),
) -> DiscoveryCrawlResponse:
    """
    Record a new crawl in ``crawling`` and queue its page fetch phase.
    """

    references = ReferenceRepository(db)
    if references.get_region(payload.region_id) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown region_id: {payload.region_id}",
        )
    if payload.city_id is not None and references.get_city(payload.city_id) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown city_id: {payload.city_id}",
        )

    try:
        crawl = DiscoveryCrawlRepository(db).create(
            seed_urls=payload.seed_urls,
            region_id=payload.region_id,
            city_id=payload.city_id,
            max_pages=payload.max_pages,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    db.commit()

    runtime.orchestrator.enqueue(Stage.DISCOVERY_CRAWL, {"crawl_id": crawl.crawl_id})
    return _to_response(crawl)


@router.get("/discovery-crawls", response_model=DiscoveryCrawlListResponse)
def list_discovery_crawls(
    status_filter: str | None = Query(default=None, alias="status", description="Optional status filter"),
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> DiscoveryCrawlListResponse:
    if status_filter is not None and status_filter not in _KNOWN_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown crawl status: {status_filter}",
        )
    crawls = DiscoveryCrawlRepository(db).list_crawls(limit=limit, status=status_filter)
    return DiscoveryCrawlListResponse(crawls=[_to_response(crawl) for crawl in crawls])


@router.get("/discovery-crawls/{crawl_id}", response_model=DiscoveryCrawlResponse)
def get_discovery_crawl(
    crawl_id: str,
    db: Session = Depends(get_db),
) -> DiscoveryCrawlResponse:
    crawl = DiscoveryCrawlRepository(db).get_by_crawl_id(crawl_id)
    if crawl is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Discovery crawl not found: {crawl_id}",
        )
    return _to_response(crawl)


def _to_response(crawl: DiscoveryCrawl) -> DiscoveryCrawlResponse:
    return DiscoveryCrawlResponse(
        crawl_id=crawl.crawl_id,
        status=crawl.status,
        seed_urls=list(crawl.seed_urls or []),
        max_pages=crawl.max_pages,
        pages_crawled=crawl.pages_crawled,
        businesses_created=crawl.businesses_created,
        businesses_skipped=crawl.businesses_skipped,
        businesses_failed=crawl.businesses_failed,
        error=crawl.error,
        region_id=crawl.region_id,
        city_id=crawl.city_id,
        started_at=crawl.started_at,
        crawl_finished_at=crawl.crawl_finished_at,
        processing_started_at=crawl.processing_started_at,
        completed_at=crawl.completed_at,
        created_at=crawl.created_at,
    )
