from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request

from app.logging_utils import configure_logging
from app.schemas.pipeline import HealthResponse


def _validate_env() -> None:
    """
    Validate required environment variables at startup.

    Runs before any service or database connection is initialised.
    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.
    """

    from db.config import load_env_files

    load_env_files()

    errors: list[str] = []

    # --- Database URL ---------------------------------------------------
    database_url = os.getenv("DATABASE_URL", "").strip()
    cloud_database_url = os.getenv("CLOUD_DATABASE_URL", "").strip()
    local_database_url = os.getenv("LOCAL_DATABASE_URL", "").strip()
    if not database_url and not cloud_database_url and not local_database_url:
        errors.append(
            "No database URL configured. Set DATABASE_URL, CLOUD_DATABASE_URL or LOCAL_DATABASE_URL."
        )

    # --- Collaborator class paths ----------------------------------------
    for name in (
        "PIPELINE_EXTRACTOR_CLASS",
        "PIPELINE_WEB_SEARCH_CLASS",
        "PIPELINE_ENRICHER_CLASS",
        "PIPELINE_TRANSLATOR_CLASS",
    ):
        value = os.getenv(name, "").strip()
        if value and ":" not in value:
            errors.append(f"{name}='{value}' is not valid. Use 'module.path:ClassName'.")

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _check_db() -> None:
    """Open a session and run SELECT 1. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text

    from db.session import get_session_factory

    try:
        db = get_session_factory()()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except Exception as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema() -> None:
    """
    Compare Base.metadata table names against the live DB schema.

    Every table registered on Base.metadata must exist in the database.
    If any are missing, log a critical error and abort startup so that
    the operator is forced to run migrations before serving traffic.

    Does NOT auto-migrate.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401 (registers all ORM models on Base.metadata)
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    actual: set[str] = set(inspector.get_table_names())
    expected: set[str] = set(Base.metadata.tables.keys())
    missing = expected - actual

    if missing:
        log = logging.getLogger(__name__)
        log.critical(
            "Schema mismatch: %d table(s) defined in ORM metadata are absent from "
            "the database: %s. Run 'alembic upgrade head' and restart.",
            len(missing),
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Validate DB connectivity and schema, start the pipeline on boot; shut it down on exit."""
    _check_db()
    logging.getLogger(__name__).info("Database connectivity confirmed")
    _check_schema()
    logging.getLogger(__name__).info("Database schema validated")

    from app.pipeline.runtime import build_pipeline_runtime

    runtime = build_pipeline_runtime()
    application.state.pipeline_runtime = runtime
    runtime.start()
    try:
        yield
    finally:
        runtime.shutdown(wait=True)
        application.state.pipeline_runtime = None


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    configure_logging()

    application = FastAPI(
        title="Directory Discovery Pipeline API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import discovery_crawls_router, pipeline_router

    application.include_router(discovery_crawls_router)
    application.include_router(pipeline_router)

    @application.get("/health", response_model=HealthResponse)
    def healthcheck(request: Request) -> HealthResponse:
        runtime = getattr(request.app.state, "pipeline_runtime", None)
        scheduler = getattr(runtime, "scheduler", None)
        running = bool(scheduler is not None and scheduler.running)
        return HealthResponse(
            status="ok",
            scheduler_running=running,
            jobs=len(scheduler.get_jobs()) if running else 0,
        )

    return application


app = create_app()
