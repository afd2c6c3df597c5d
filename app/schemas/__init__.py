"""
app/schemas package marker.
"""

from app.schemas.discovery_crawl import (
    DiscoveryCrawlCreateRequest,
    DiscoveryCrawlListResponse,
    DiscoveryCrawlResponse,
)
from app.schemas.pipeline import DiscoverySearchRequest, HealthResponse, StageEnqueuedResponse

__all__ = [
    "DiscoveryCrawlCreateRequest",
    "DiscoveryCrawlListResponse",
    "DiscoveryCrawlResponse",
    "DiscoverySearchRequest",
    "HealthResponse",
    "StageEnqueuedResponse",
]
