"""
Repository for discovery crawl lifecycle persistence.

Every state change is a compare-and-set: the UPDATE only matches while the
row still holds the status observed by the caller. A concurrent worker that
already applied the same transition turns the call into a no-op, anything
else is rejected with ``InvalidCrawlTransitionError``.
"""

from __future__ import annotations

import secrets
import uuid
from collections.abc import Sequence
from typing import Any

from sqlalchemy import Select, select, update
from sqlalchemy.orm import Session

from db.base import utcnow
from db.models.discovery_crawl import (
    ALLOWED_CRAWL_TRANSITIONS,
    INCOMPLETE_CRAWL_STATUSES,
    DiscoveryCrawl,
    DiscoveryCrawlStatus,
)
from db.repositories.errors import CrawlNotFoundError, InvalidCrawlTransitionError


def new_crawl_id() -> str:
    return secrets.token_hex(8)


class DiscoveryCrawlRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create(
        self,
        *,
        seed_urls: Sequence[str],
        region_id: uuid.UUID,
        city_id: uuid.UUID | None = None,
        max_pages: int = 200,
        crawl_id: str | None = None,
    ) -> DiscoveryCrawl:
        cleaned = [url.strip() for url in seed_urls if url and url.strip()]
        if not cleaned:
            raise ValueError("A discovery crawl needs at least one seed URL.")

        crawl = DiscoveryCrawl(
            crawl_id=crawl_id or new_crawl_id(),
            status=DiscoveryCrawlStatus.CRAWLING,
            seed_urls=cleaned,
            max_pages=max(1, max_pages),
            pages_crawled=0,
            businesses_created=0,
            businesses_skipped=0,
            businesses_failed=0,
            region_id=region_id,
            city_id=city_id,
            started_at=utcnow(),
        )
        self._session.add(crawl)
        self._session.flush()
        self._session.refresh(crawl)
        return crawl

    def get_by_crawl_id(self, crawl_id: str) -> DiscoveryCrawl | None:
        stmt = select(DiscoveryCrawl).where(DiscoveryCrawl.crawl_id == crawl_id)
        return self._session.scalars(stmt).one_or_none()

    def require(self, crawl_id: str) -> DiscoveryCrawl:
        crawl = self.get_by_crawl_id(crawl_id)
        if crawl is None:
            raise CrawlNotFoundError(crawl_id)
        return crawl

    def list_crawls(
        self,
        *,
        limit: int = 100,
        status: str | None = None,
    ) -> list[DiscoveryCrawl]:
        stmt: Select[tuple[DiscoveryCrawl]] = select(DiscoveryCrawl)
        if status:
            stmt = stmt.where(DiscoveryCrawl.status == status)
        stmt = stmt.order_by(DiscoveryCrawl.created_at.desc()).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def find_incomplete(self) -> list[DiscoveryCrawl]:
        stmt = (
            select(DiscoveryCrawl)
            .where(DiscoveryCrawl.status.in_(INCOMPLETE_CRAWL_STATUSES))
            .order_by(DiscoveryCrawl.started_at.asc(), DiscoveryCrawl.crawl_id.asc())
        )
        return list(self._session.scalars(stmt).all())

    def update_pages_crawled(self, crawl_id: str, pages_crawled: int) -> bool:
        """
        Record crawl progress. Only applies while crawling and only upwards.
        """

        stmt = (
            update(DiscoveryCrawl)
            .where(
                DiscoveryCrawl.crawl_id == crawl_id,
                DiscoveryCrawl.status == DiscoveryCrawlStatus.CRAWLING,
                DiscoveryCrawl.pages_crawled < pages_crawled,
            )
            .values(pages_crawled=pages_crawled)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        return bool(result.rowcount)

    def mark_crawled(self, crawl_id: str, pages_crawled: int) -> DiscoveryCrawl:
        crawl = self.require(crawl_id)
        return self._transition(
            crawl,
            DiscoveryCrawlStatus.CRAWLED,
            pages_crawled=max(crawl.pages_crawled, pages_crawled),
            crawl_finished_at=crawl.crawl_finished_at or utcnow(),
        )

    def mark_processing(self, crawl_id: str) -> DiscoveryCrawl:
        crawl = self.require(crawl_id)
        return self._transition(
            crawl,
            DiscoveryCrawlStatus.PROCESSING,
            processing_started_at=utcnow(),
        )

    def mark_completed(
        self,
        crawl_id: str,
        *,
        created: int,
        skipped: int,
        failed: int,
    ) -> DiscoveryCrawl:
        crawl = self.require(crawl_id)
        return self._transition(
            crawl,
            DiscoveryCrawlStatus.COMPLETED,
            businesses_created=max(crawl.businesses_created, created),
            businesses_skipped=max(crawl.businesses_skipped, skipped),
            businesses_failed=max(crawl.businesses_failed, failed),
            error=None,
            completed_at=utcnow(),
        )

    def mark_failed(self, crawl_id: str, error: str) -> DiscoveryCrawl:
        crawl = self.require(crawl_id)
        return self._transition(
            crawl,
            DiscoveryCrawlStatus.FAILED,
            error=error[:2000],
            completed_at=utcnow(),
        )

    def _transition(
        self,
        crawl: DiscoveryCrawl,
        target: str,
        **values: Any,
    ) -> DiscoveryCrawl:
        current = crawl.status
        if current == target:
            return crawl
        if target not in ALLOWED_CRAWL_TRANSITIONS.get(current, frozenset()):
            raise InvalidCrawlTransitionError(crawl.crawl_id, current, target)

        stmt = (
            update(DiscoveryCrawl)
            .where(DiscoveryCrawl.id == crawl.id, DiscoveryCrawl.status == current)
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        self._session.refresh(crawl)

        if result.rowcount == 0 and crawl.status != target:
            # Someone else moved the row between our read and write.
            raise InvalidCrawlTransitionError(crawl.crawl_id, crawl.status, target)
        return crawl
