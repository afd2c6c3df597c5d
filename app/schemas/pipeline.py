"""
Schemas for pipeline trigger endpoints.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class DiscoverySearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=500)
    city_id: UUID
    category_id: UUID | None = None
    source: str = Field(default="google_maps", min_length=1, max_length=50)


class StageEnqueuedResponse(BaseModel):
    """
    ``enqueued`` is False when an identical job was already pending.
    """

    stage: str
    enqueued: bool
    args: dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    status: str
    scheduler_running: bool
    jobs: int = Field(..., ge=0)
