"""
db/models/business.py

Business listing model and its coarse pipeline status.

The pipeline only ever moves ``status`` forward along
``BUSINESS_STATUS_ORDER``; ``failed`` is a separate absorbing state.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONType, TimestampMixin


class BusinessStatus:
    PENDING = "pending"
    RESEARCHING = "researching"
    RESEARCHED = "researched"
    ENRICHED = "enriched"
    VERIFIED = "verified"
    FAILED = "failed"


BUSINESS_STATUS_ORDER: tuple[str, ...] = (
    BusinessStatus.PENDING,
    BusinessStatus.RESEARCHING,
    BusinessStatus.RESEARCHED,
    BusinessStatus.ENRICHED,
    BusinessStatus.VERIFIED,
)

# Website-less businesses never get researched; they are enriched straight
# from pending by the fallback trigger.
BUSINESS_STATUS_SHORTCUTS: frozenset[tuple[str, str]] = frozenset(
    {(BusinessStatus.PENDING, BusinessStatus.ENRICHED)}
)


class BusinessSource:
    GOOGLE_MAPS = "google_maps"
    OPENSTREETMAP = "openstreetmap"
    DISCOVERY_SPIDER = "discovery_spider"
    MANUAL = "manual"
    WEB_SCRAPE = "web_scrape"


def status_rank(status: str) -> int | None:
    """Position of ``status`` in the forward order, None for ``failed``/unknown."""
    try:
        return BUSINESS_STATUS_ORDER.index(status)
    except ValueError:
        return None


def is_forward_step(current: str, target: str) -> bool:
    """
    True when ``current -> target`` is exactly one step forward, a
    whitelisted shortcut, or a move into ``failed`` from a live status.
    """

    if (current, target) in BUSINESS_STATUS_SHORTCUTS:
        return True
    current_rank = status_rank(current)
    if current_rank is None:
        return False
    if target == BusinessStatus.FAILED:
        return current != BusinessStatus.VERIFIED
    target_rank = status_rank(target)
    return target_rank is not None and target_rank == current_rank + 1


class Business(Base, TimestampMixin):
    __tablename__ = "businesses"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False)
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
    category_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
    )
    website: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    address: Mapped[str | None] = mapped_column(String(512), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=BusinessStatus.PENDING,
    )
    source: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=BusinessSource.MANUAL,
        comment="google_maps, openstreetmap, discovery_spider, manual, web_scrape",
    )
    raw_data: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="Source payload the listing was created from",
    )
    enrichment: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    translations: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="Translated fields keyed by locale",
    )
    last_enriched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("region_id", "slug", name="uq_businesses_region_slug"),
        Index("ix_businesses_status", "status"),
        Index("ix_businesses_city_id", "city_id"),
        Index("ix_businesses_status_created_at", "status", "created_at"),
    )
