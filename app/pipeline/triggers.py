"""
app/pipeline/triggers.py

Periodic pulls that keep businesses moving through the pipeline.

Two independent sources feed enrichment: businesses that finished research
(``researched``), and website-less businesses that have sat in ``pending``
longer than a grace window, since they never produce a research result.

Stage jobs only live in the scheduler's memory, so a restart drops whatever
was queued. A third pull re-drives research for businesses that stalled:
``pending`` with a website goes back to ``website_crawl`` and ``researching``
goes back to ``web_search``. Queue uniqueness collapses any job that is in
fact still queued.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from app.pipeline.queue import JobQueue
from app.pipeline.stages import Stage
from db.base import utcnow
from db.models.business import BusinessStatus
from db.repositories.business_repository import BusinessRepository
from db.session import session_scope

logger = logging.getLogger(__name__)


class EnrichmentTriggers:
    def __init__(
        self,
        *,
        session_factory: Callable[[], Session],
        queue: JobQueue,
        batch_size: int = 50,
        pending_grace_minutes: int = 60,
        stalled_grace_minutes: int = 60,
    ) -> None:
        self._session_factory = session_factory
        self._queue = queue
        self._batch_size = batch_size
        self._pending_grace = timedelta(minutes=pending_grace_minutes)
        self._stalled_grace = timedelta(minutes=stalled_grace_minutes)

    def enqueue_researched(self) -> int:
        with session_scope(self._session_factory) as session:
            business_ids = BusinessRepository(session).list_ids_by_status(
                BusinessStatus.RESEARCHED,
                limit=self._batch_size,
            )
        return self._enqueue(Stage.ENRICH, business_ids, trigger="researched")

    def enqueue_pending_without_website(self, now: datetime | None = None) -> int:
        cutoff = (now or utcnow()) - self._pending_grace
        with session_scope(self._session_factory) as session:
            business_ids = BusinessRepository(session).list_pending_without_website(
                created_before=cutoff,
                limit=self._batch_size,
            )
        return self._enqueue(Stage.ENRICH, business_ids, trigger="pending_without_website")

    def redrive_stalled_research(self, now: datetime | None = None) -> int:
        cutoff = (now or utcnow()) - self._stalled_grace
        with session_scope(self._session_factory) as session:
            repository = BusinessRepository(session)
            pending = repository.list_pending_with_website(
                created_before=cutoff,
                limit=self._batch_size,
            )
            researching = repository.list_stale_by_status(
                BusinessStatus.RESEARCHING,
                updated_before=cutoff,
                limit=self._batch_size,
            )
        return self._enqueue(
            Stage.WEBSITE_CRAWL,
            pending,
            trigger="pending_with_website",
        ) + self._enqueue(
            Stage.WEB_SEARCH,
            researching,
            trigger="stalled_researching",
        )

    def _enqueue(self, stage: Stage, business_ids: list, trigger: str) -> int:
        enqueued = sum(
            1
            for business_id in business_ids
            if self._queue.enqueue(stage, {"business_id": str(business_id)})
        )
        logger.info(
            "Pipeline trigger=%s stage=%s candidates=%d enqueued=%d",
            trigger,
            stage.value,
            len(business_ids),
            enqueued,
        )
        return enqueued
