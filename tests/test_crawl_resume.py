"""
tests/test_crawl_resume.py

Pytest tests for CrawlResumeSupervisor.

Coverage
--------
- crawling with no pages on disk -> failed ("interrupted with no pages")
- crawling with pages on disk -> crawled with the observed count, processing
  enqueued after the grace delay
- crawled -> processing enqueued
- processing -> rewound to crawled, processing enqueued
- Terminal crawls are not touched
- A second run changes nothing and enqueues nothing new
"""

from __future__ import annotations

from collections.abc import Callable

import pytest
from sqlalchemy.orm import Session, sessionmaker

from app import failure_codes
from app.crawling.artifacts import ArtifactStore
from app.pipeline.queue import InMemoryJobQueue
from app.pipeline.runtime import PipelineRuntime
from app.pipeline.stages import Stage
from db.models.discovery_crawl import DiscoveryCrawlStatus
from db.repositories.discovery_crawl_repository import DiscoveryCrawlRepository
from db.session import session_scope
from tests.fakes import ReferenceIds

SEEDS = ["https://directorio.example/"]


@pytest.fixture()
def runtime(build_runtime: Callable[..., PipelineRuntime]) -> PipelineRuntime:
    return build_runtime()


@pytest.fixture()
def queue(runtime: PipelineRuntime) -> InMemoryJobQueue:
    queue = runtime.orchestrator.queue
    assert isinstance(queue, InMemoryJobQueue)
    return queue


@pytest.fixture()
def make_crawl(
    session_factory: sessionmaker[Session],
    reference_ids: ReferenceIds,
) -> Callable[..., str]:
    """Create a crawl and walk it to ``status``."""

    def _make(crawl_id: str, status: str = DiscoveryCrawlStatus.CRAWLING, pages: int = 0) -> str:
        with session_scope(session_factory) as session:
            repo = DiscoveryCrawlRepository(session)
            repo.create(seed_urls=SEEDS, region_id=reference_ids.region_id, crawl_id=crawl_id)
            if status == DiscoveryCrawlStatus.CRAWLING:
                if pages:
                    repo.update_pages_crawled(crawl_id, pages)
                return crawl_id
            repo.mark_crawled(crawl_id, pages)
            if status in (DiscoveryCrawlStatus.PROCESSING, DiscoveryCrawlStatus.COMPLETED):
                repo.mark_processing(crawl_id)
            if status == DiscoveryCrawlStatus.COMPLETED:
                repo.mark_completed(crawl_id, created=0, skipped=0, failed=0)
            if status == DiscoveryCrawlStatus.FAILED:
                repo.mark_processing(crawl_id)
                repo.mark_failed(crawl_id, "boom")
        return crawl_id

    return _make


def _write_pages(artifacts: ArtifactStore, crawl_id: str, count: int) -> None:
    for index in range(1, count + 1):
        artifacts.write_discovery_page(crawl_id, index, {"url": f"https://directorio.example/{index}"})


def _load(session_factory: sessionmaker[Session], crawl_id: str) -> tuple[str, int, str | None]:
    with session_scope(session_factory) as session:
        crawl = DiscoveryCrawlRepository(session).require(crawl_id)
        return crawl.status, crawl.pages_crawled, crawl.error


class TestCrawlResume:
    def test_crawling_without_pages_fails(
        self,
        runtime: PipelineRuntime,
        queue: InMemoryJobQueue,
        make_crawl: Callable[..., str],
        session_factory: sessionmaker[Session],
    ) -> None:
        make_crawl("empty01")

        report = runtime.resume.run_once()

        assert report.marked_failed == ["empty01"]
        assert _load(session_factory, "empty01") == (
            DiscoveryCrawlStatus.FAILED,
            0,
            failure_codes.INTERRUPTED_WITH_NO_PAGES,
        )
        assert queue.enqueued == []

    def test_crawling_with_pages_becomes_crawled(
        self,
        runtime: PipelineRuntime,
        queue: InMemoryJobQueue,
        make_crawl: Callable[..., str],
        session_factory: sessionmaker[Session],
    ) -> None:
        # The database lags behind the files: 2 recorded, 3 on disk.
        make_crawl("partial01", pages=2)
        _write_pages(runtime.artifacts, "partial01", 3)

        report = runtime.resume.run_once()

        assert report.marked_crawled == ["partial01"]
        assert _load(session_factory, "partial01")[:2] == (DiscoveryCrawlStatus.CRAWLED, 3)
        assert [(record.stage, record.args, record.delay_seconds) for record in queue.enqueued] == [
            (Stage.DISCOVERY_PROCESS, {"crawl_id": "partial01"}, 30.0),
        ]

    def test_crawled_is_enqueued_for_processing(
        self,
        runtime: PipelineRuntime,
        queue: InMemoryJobQueue,
        make_crawl: Callable[..., str],
        session_factory: sessionmaker[Session],
    ) -> None:
        make_crawl("ready01", status=DiscoveryCrawlStatus.CRAWLED, pages=4)

        report = runtime.resume.run_once()

        assert report.enqueued == ["ready01"]
        assert report.marked_crawled == []
        assert _load(session_factory, "ready01")[0] == DiscoveryCrawlStatus.CRAWLED
        assert queue.pending() == [(Stage.DISCOVERY_PROCESS, {"crawl_id": "ready01"})]

    def test_processing_is_rewound(
        self,
        runtime: PipelineRuntime,
        queue: InMemoryJobQueue,
        make_crawl: Callable[..., str],
        session_factory: sessionmaker[Session],
    ) -> None:
        make_crawl("mid01", status=DiscoveryCrawlStatus.PROCESSING, pages=2)
        _write_pages(runtime.artifacts, "mid01", 2)

        report = runtime.resume.run_once()

        assert report.rewound == ["mid01"]
        assert _load(session_factory, "mid01")[:2] == (DiscoveryCrawlStatus.CRAWLED, 2)
        assert queue.pending() == [(Stage.DISCOVERY_PROCESS, {"crawl_id": "mid01"})]

    @pytest.mark.parametrize("status", [DiscoveryCrawlStatus.COMPLETED, DiscoveryCrawlStatus.FAILED])
    def test_terminal_crawls_untouched(
        self,
        runtime: PipelineRuntime,
        queue: InMemoryJobQueue,
        make_crawl: Callable[..., str],
        status: str,
    ) -> None:
        make_crawl("done01", status=status, pages=1)

        report = runtime.resume.run_once()

        assert report.examined == 0
        assert queue.enqueued == []

    def test_second_run_is_harmless(
        self,
        runtime: PipelineRuntime,
        queue: InMemoryJobQueue,
        make_crawl: Callable[..., str],
        session_factory: sessionmaker[Session],
    ) -> None:
        make_crawl("empty01")
        make_crawl("partial01")
        _write_pages(runtime.artifacts, "partial01", 2)

        first = runtime.resume.run_once()
        second = runtime.resume.run_once()

        assert first.marked_failed == ["empty01"]
        assert first.enqueued == ["partial01"]
        assert second.marked_failed == []
        assert second.marked_crawled == []
        assert second.enqueued == []
        assert second.errors == {}
        assert len(queue.enqueued) == 1
        assert _load(session_factory, "empty01")[0] == DiscoveryCrawlStatus.FAILED
        assert _load(session_factory, "partial01")[:2] == (DiscoveryCrawlStatus.CRAWLED, 2)
