"""
app/api/routers package marker.
"""

from app.api.routers.discovery_crawls import router as discovery_crawls_router
from app.api.routers.pipeline import router as pipeline_router

__all__ = [
    "discovery_crawls_router",
    "pipeline_router",
]
