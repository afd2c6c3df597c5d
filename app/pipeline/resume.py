"""
app/pipeline/resume.py

Crash recovery for discovery crawls.

Runs once per process start, after a short grace delay. Every crawl that is
not terminal is reconciled against the ``page_*`` files on disk, which are
the durable evidence of how far it got:

  crawling,   pages on disk  -> crawled (observed count), enqueue processing
  crawling,   no pages       -> failed ("interrupted with no pages")
  crawled                    -> enqueue processing
  processing                 -> crawled (observed count), enqueue processing

Repeated runs are harmless: transitions are compare-and-set and the queue
collapses identical processing jobs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from app import failure_codes
from app.crawling.artifacts import ArtifactStore
from app.logging_utils import log_event
from app.pipeline.queue import JobQueue
from app.pipeline.stages import Stage
from db.models.discovery_crawl import DiscoveryCrawlStatus
from db.repositories.discovery_crawl_repository import DiscoveryCrawlRepository
from db.session import session_scope

logger = logging.getLogger(__name__)


@dataclass
class ResumeReport:
    marked_crawled: list[str] = field(default_factory=list)
    marked_failed: list[str] = field(default_factory=list)
    rewound: list[str] = field(default_factory=list)
    enqueued: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def examined(self) -> int:
        touched = {
            *self.marked_crawled,
            *self.marked_failed,
            *self.rewound,
            *self.enqueued,
            *self.errors,
        }
        return len(touched)


class CrawlResumeSupervisor:
    def __init__(
        self,
        *,
        session_factory: Callable[[], Session],
        artifacts: ArtifactStore,
        queue: JobQueue,
        processing_delay_seconds: float = 30.0,
    ) -> None:
        self._session_factory = session_factory
        self._artifacts = artifacts
        self._queue = queue
        self._processing_delay_seconds = processing_delay_seconds

    def run_once(self) -> ResumeReport:
        report = ResumeReport()
        with session_scope(self._session_factory) as session:
            pending = [
                (crawl.crawl_id, crawl.status)
                for crawl in DiscoveryCrawlRepository(session).find_incomplete()
            ]

        log_event(logger, logging.INFO, "crawl_resume_started", incomplete=len(pending))
        for crawl_id, status in pending:
            try:
                self._resume(crawl_id, status, report)
            except Exception as exc:  # noqa: BLE001
                report.errors[crawl_id] = str(exc)
                log_event(
                    logger,
                    logging.ERROR,
                    "crawl_resume_failed",
                    crawl_id=crawl_id,
                    status=status,
                    error=str(exc),
                )

        log_event(
            logger,
            logging.INFO,
            "crawl_resume_finished",
            marked_crawled=len(report.marked_crawled),
            marked_failed=len(report.marked_failed),
            rewound=len(report.rewound),
            enqueued=len(report.enqueued),
            errors=len(report.errors),
        )
        return report

    def _resume(self, crawl_id: str, status: str, report: ResumeReport) -> None:
        if status == DiscoveryCrawlStatus.CRAWLED:
            self._enqueue_processing(crawl_id, status, report)
            return

        pages_on_disk = self._artifacts.count_pages(crawl_id)
        with session_scope(self._session_factory) as session:
            repository = DiscoveryCrawlRepository(session)
            if status == DiscoveryCrawlStatus.CRAWLING and pages_on_disk == 0:
                repository.mark_failed(crawl_id, failure_codes.INTERRUPTED_WITH_NO_PAGES)
                action = "marked_failed"
                report.marked_failed.append(crawl_id)
            else:
                repository.mark_crawled(crawl_id, pages_on_disk)
                action = "marked_crawled" if status == DiscoveryCrawlStatus.CRAWLING else "rewound"
                if action == "marked_crawled":
                    report.marked_crawled.append(crawl_id)
                else:
                    report.rewound.append(crawl_id)

        log_event(
            logger,
            logging.INFO,
            "crawl_resume_action",
            crawl_id=crawl_id,
            status=status,
            action=action,
            pages_on_disk=pages_on_disk,
        )
        if action != "marked_failed":
            self._enqueue_processing(crawl_id, status, report)

    def _enqueue_processing(self, crawl_id: str, status: str, report: ResumeReport) -> None:
        enqueued = self._queue.enqueue(
            Stage.DISCOVERY_PROCESS,
            {"crawl_id": crawl_id},
            delay_seconds=self._processing_delay_seconds,
        )
        if enqueued:
            report.enqueued.append(crawl_id)
        log_event(
            logger,
            logging.INFO,
            "crawl_resume_action",
            crawl_id=crawl_id,
            status=status,
            action="enqueue_processing",
            enqueued=enqueued,
        )
