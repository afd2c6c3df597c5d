"""
db/models/discovery_crawl.py

Durable lifecycle record for one discovery crawl run.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONType, TimestampMixin


class DiscoveryCrawlStatus:
    CRAWLING = "crawling"
    CRAWLED = "crawled"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_CRAWL_STATUSES: frozenset[str] = frozenset(
    {DiscoveryCrawlStatus.COMPLETED, DiscoveryCrawlStatus.FAILED}
)

INCOMPLETE_CRAWL_STATUSES: tuple[str, ...] = (
    DiscoveryCrawlStatus.CRAWLING,
    DiscoveryCrawlStatus.CRAWLED,
    DiscoveryCrawlStatus.PROCESSING,
)

# processing -> crawled is only used when an interrupted extraction run is
# rewound at startup.
ALLOWED_CRAWL_TRANSITIONS: dict[str, frozenset[str]] = {
    DiscoveryCrawlStatus.CRAWLING: frozenset(
        {DiscoveryCrawlStatus.CRAWLED, DiscoveryCrawlStatus.FAILED}
    ),
    DiscoveryCrawlStatus.CRAWLED: frozenset({DiscoveryCrawlStatus.PROCESSING}),
    DiscoveryCrawlStatus.PROCESSING: frozenset(
        {
            DiscoveryCrawlStatus.COMPLETED,
            DiscoveryCrawlStatus.FAILED,
            DiscoveryCrawlStatus.CRAWLED,
        }
    ),
    DiscoveryCrawlStatus.COMPLETED: frozenset(),
    DiscoveryCrawlStatus.FAILED: frozenset(),
}


class DiscoveryCrawl(Base, TimestampMixin):
    __tablename__ = "discovery_crawls"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    crawl_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="Opaque id, also the artifact directory name",
    )
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=DiscoveryCrawlStatus.CRAWLING,
    )
    seed_urls: Mapped[list[str]] = mapped_column(JSONType, nullable=False)
    max_pages: Mapped[int] = mapped_column(Integer, nullable=False, default=200)
    pages_crawled: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    businesses_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    businesses_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    businesses_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    region_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("regions.id", ondelete="RESTRICT"),
        nullable=False,
    )
    city_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("cities.id", ondelete="SET NULL"),
        nullable=True,
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    crawl_finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    processing_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "(completed_at IS NOT NULL) = (status IN ('completed', 'failed'))",
            name="ck_discovery_crawls_completed_at_terminal",
        ),
        Index("ix_discovery_crawls_status", "status"),
        Index("ix_discovery_crawls_region_id", "region_id"),
        Index("ix_discovery_crawls_created_at", "created_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_CRAWL_STATUSES
