"""
tests/conftest.py

Shared fixtures for the pipeline test suite.

Everything runs in-process: an in-memory SQLite database stands in for
PostgreSQL, a canned HTTP session stands in for the network, and stage
collaborators are the fakes from ``tests/fakes.py``.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import db.models  # noqa: F401 - registers every model on Base.metadata
from app.config import PipelineSettings, QueueSettings
from app.crawling.artifacts import ArtifactStore
from app.crawling.config.models import CrawlerSettings, PriorityTable
from app.crawling.crawler import SiteCrawler
from app.crawling.prioritizer import LinkPrioritizer
from app.crawling.rate_limiter import PolitenessThrottle
from app.pipeline.collaborators import CollaboratorRegistry
from app.pipeline.runtime import PipelineRuntime, build_pipeline_runtime
from db.base import Base
from db.models.business import Business, BusinessSource, BusinessStatus
from db.models.reference import Category, City, Region
from db.session import session_scope
from tests.fakes import TEST_PRIORITIES, FakeCollaborators, FakeHttpSession, ReferenceIds


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine() -> Iterator[Engine]:
    """
    One shared in-memory SQLite connection with working SAVEPOINTs.
    """

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; take it over.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, _connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(connection: Any) -> None:
        connection.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture()
def reference_ids(session_factory: sessionmaker[Session]) -> ReferenceIds:
    """Galicia with Vigo and Lugo, plus restaurant and hotel categories."""
    with session_scope(session_factory) as session:
        region = Region(name="Galicia", slug="galicia")
        session.add(region)
        session.flush()
        vigo = City(region_id=region.id, name="Vigo", slug="vigo")
        lugo = City(region_id=region.id, name="Lugo", slug="lugo")
        restaurants = Category(name="Restaurants", slug="restaurants")
        hotels = Category(name="Hotels", slug="hotels")
        session.add_all([vigo, lugo, restaurants, hotels])
        session.flush()
        return ReferenceIds(
            region_id=region.id,
            city_id=vigo.id,
            other_city_id=lugo.id,
            category_id=restaurants.id,
        )


@pytest.fixture()
def make_business(
    session_factory: sessionmaker[Session],
    reference_ids: ReferenceIds,
) -> Callable[..., uuid.UUID]:
    def _make(
        name: str = "Casa Pepe",
        *,
        website: str | None = None,
        status: str = BusinessStatus.PENDING,
    ) -> uuid.UUID:
        with session_scope(session_factory) as session:
            business = Business(
                name=name,
                slug=name.lower().replace(" ", "-"),
                region_id=reference_ids.region_id,
                city_id=reference_ids.city_id,
                category_id=reference_ids.category_id,
                website=website,
                status=status,
                source=BusinessSource.MANUAL,
            )
            session.add(business)
            session.flush()
            return business.id

    return _make


# ---------------------------------------------------------------------------
# HTTP and crawling
# ---------------------------------------------------------------------------


@pytest.fixture()
def http() -> FakeHttpSession:
    return FakeHttpSession()


@pytest.fixture()
def crawler_settings() -> CrawlerSettings:
    return CrawlerSettings(
        user_agent="DirectoryResearchBot/test",
        politeness_delay_seconds=0.0,
        website_max_pages=5,
        discovery_max_pages=20,
        discovery_min_content_length=20,
    )


@pytest.fixture()
def prioritizer() -> LinkPrioritizer:
    return LinkPrioritizer(PriorityTable.from_pairs(TEST_PRIORITIES))


@pytest.fixture()
def crawler(
    crawler_settings: CrawlerSettings,
    http: FakeHttpSession,
    prioritizer: LinkPrioritizer,
) -> SiteCrawler:
    return SiteCrawler(
        settings=crawler_settings,
        session=http,  # type: ignore[arg-type]
        prioritizer=prioritizer,
        throttle_factory=lambda: PolitenessThrottle(delay_seconds=0.0),
    )


@pytest.fixture()
def artifacts(tmp_path: Path) -> ArtifactStore:
    return ArtifactStore(
        research_dir=tmp_path / "research",
        discovery_dir=tmp_path / "discovery",
    )


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


@pytest.fixture()
def fakes() -> FakeCollaborators:
    return FakeCollaborators()


@pytest.fixture()
def pipeline_settings(tmp_path: Path) -> PipelineSettings:
    return PipelineSettings(
        research_dir=str(tmp_path / "research"),
        discovery_dir=str(tmp_path / "discovery"),
        queues=QueueSettings(retry_backoff_initial_seconds=0.0),
        scheduler_enabled=False,
        discovery_batch_size=2,
        translation_locales=("en", "es"),
    )


@pytest.fixture()
def build_runtime(
    session_factory: sessionmaker[Session],
    pipeline_settings: PipelineSettings,
    crawler_settings: CrawlerSettings,
    crawler: SiteCrawler,
) -> Callable[..., PipelineRuntime]:
    """
    Build an in-memory pipeline; collaborators default to none at all.
    """

    def _build(collaborators: CollaboratorRegistry | None = None) -> PipelineRuntime:
        return build_pipeline_runtime(
            session_factory=session_factory,
            pipeline_settings=pipeline_settings,
            crawler_settings=crawler_settings,
            collaborators=collaborators or CollaboratorRegistry(),
            crawler=crawler,
            in_memory=True,
        )

    return _build
