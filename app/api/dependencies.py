"""
app/api/dependencies.py

Shared FastAPI dependencies.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from app.pipeline.runtime import PipelineRuntime


def get_pipeline_runtime(request: Request) -> PipelineRuntime:
    """
    Return the pipeline runtime started by the application lifespan.
    """

    runtime = getattr(request.app.state, "pipeline_runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pipeline runtime is not running.",
        )
    return runtime
