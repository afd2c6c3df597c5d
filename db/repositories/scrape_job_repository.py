"""
Repository for places-search audit records.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Select, select, update
from sqlalchemy.orm import Session

from db.base import utcnow
from db.models.scrape_job import ScrapeJob, ScrapeJobStatus


class ScrapeJobRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_running(
        self,
        *,
        source: str,
        query: str,
        region_id: uuid.UUID | None = None,
        city_id: uuid.UUID | None = None,
        category_id: uuid.UUID | None = None,
    ) -> ScrapeJob:
        job = ScrapeJob(
            source=source,
            query=query,
            status=ScrapeJobStatus.RUNNING,
            region_id=region_id,
            city_id=city_id,
            category_id=category_id,
            started_at=utcnow(),
        )
        self._session.add(job)
        self._session.flush()
        self._session.refresh(job)
        return job

    def get_job(self, job_id: uuid.UUID) -> ScrapeJob | None:
        return self._session.get(ScrapeJob, job_id)

    def list_jobs(
        self,
        *,
        limit: int = 100,
        source: str | None = None,
        status: str | None = None,
    ) -> list[ScrapeJob]:
        stmt: Select[tuple[ScrapeJob]] = select(ScrapeJob)
        if source:
            stmt = stmt.where(ScrapeJob.source == source)
        if status:
            stmt = stmt.where(ScrapeJob.status == status)
        stmt = stmt.order_by(ScrapeJob.created_at.desc()).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def mark_completed(self, job_id: uuid.UUID, *, found: int, created: int) -> bool:
        return self._finish(
            job_id,
            status=ScrapeJobStatus.COMPLETED,
            businesses_found=found,
            businesses_created=created,
        )

    def mark_failed(self, job_id: uuid.UUID, *, error_message: str) -> bool:
        return self._finish(
            job_id,
            status=ScrapeJobStatus.FAILED,
            error_message=error_message[:2000],
        )

    def _finish(self, job_id: uuid.UUID, **values: object) -> bool:
        # Terminal outcome is written once; later calls match no row.
        stmt = (
            update(ScrapeJob)
            .where(ScrapeJob.id == job_id, ScrapeJob.status == ScrapeJobStatus.RUNNING)
            .values(completed_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        job = self.get_job(job_id)
        if job is not None:
            self._session.refresh(job)
        return bool(result.rowcount)
