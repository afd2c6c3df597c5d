"""
Request and response schemas for discovery crawl endpoints.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class DiscoveryCrawlCreateRequest(BaseModel):
    seed_urls: list[str] = Field(..., min_length=1, description="Directory pages to start crawling from")
    region_id: UUID
    city_id: UUID | None = None
    max_pages: int = Field(default=200, ge=1, le=5000)


class DiscoveryCrawlResponse(BaseModel):
    crawl_id: str
    status: str
    seed_urls: list[str] = Field(default_factory=list)
    max_pages: int = Field(..., ge=1)
    pages_crawled: int = Field(..., ge=0)
    businesses_created: int = Field(..., ge=0)
    businesses_skipped: int = Field(..., ge=0)
    businesses_failed: int = Field(..., ge=0)
    error: str | None = None
    region_id: UUID
    city_id: UUID | None = None
    started_at: datetime | None = None
    crawl_finished_at: datetime | None = None
    processing_started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None


class DiscoveryCrawlListResponse(BaseModel):
    crawls: list[DiscoveryCrawlResponse] = Field(default_factory=list)
