"""
Repository for business listings consumed and advanced by the pipeline.
"""

from __future__ import annotations

import re
import unicodedata
import uuid
from datetime import datetime
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from sqlalchemy import Select, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.base import utcnow
from db.models.business import Business, BusinessStatus, is_forward_step, status_rank
from db.repositories.errors import BusinessNotFoundError, InvalidStatusTransitionError

_SLUG_STRIP = re.compile(r"[^a-z0-9\s-]")
_SLUG_SPACES = re.compile(r"\s+")
_SLUG_MAX_LENGTH = 100
_WEB_SCHEMES = frozenset({"http", "https"})


def slugify(value: str) -> str:
    """
    Lowercase ASCII slug: accents folded, punctuation dropped, spaces to
    hyphens, capped at 100 chars.
    """

    folded = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    slug = _SLUG_STRIP.sub("", folded.lower())
    slug = _SLUG_SPACES.sub("-", slug.strip())
    slug = re.sub(r"-{2,}", "-", slug).strip("-")
    return slug[:_SLUG_MAX_LENGTH].strip("-")


def normalize_website(value: str | None) -> str | None:
    """
    Crawlable form of a stored website, or None when there is nothing to crawl.

    ``cafe.example`` and ``//cafe.example`` become ``https://cafe.example/``.
    Schemes other than http(s) (``mailto:``, ``tel:``, ``ftp://``) are rejected.
    """

    if value is None:
        return None
    candidate = value.strip()
    if not candidate or any(char.isspace() for char in candidate):
        return None

    if candidate.startswith("//"):
        candidate = f"https:{candidate}"
    elif "://" not in candidate:
        prefix, colon, rest = candidate.partition(":")
        # host:port keeps a dot in the host or digits after the colon.
        if colon and "." not in prefix and not rest[:1].isdigit():
            return None
        candidate = f"https://{candidate}"

    try:
        parts = urlsplit(candidate)
    except ValueError:
        return None
    if parts.scheme.lower() not in _WEB_SCHEMES or not parts.hostname:
        return None
    return urlunsplit((parts.scheme.lower(), parts.netloc, parts.path or "/", parts.query, ""))


class BusinessRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, business_id: uuid.UUID) -> Business | None:
        return self._session.get(Business, business_id)

    def require(self, business_id: uuid.UUID) -> Business:
        business = self.get(business_id)
        if business is None:
            raise BusinessNotFoundError(business_id)
        return business

    def get_by_slug(self, *, region_id: uuid.UUID, slug: str) -> Business | None:
        stmt = select(Business).where(Business.region_id == region_id, Business.slug == slug)
        return self._session.scalars(stmt).one_or_none()

    def create_if_absent(
        self,
        *,
        name: str,
        region_id: uuid.UUID,
        source: str,
        city_id: uuid.UUID | None = None,
        category_id: uuid.UUID | None = None,
        website: str | None = None,
        address: str | None = None,
        phone: str | None = None,
        description: str | None = None,
        raw_data: dict[str, Any] | None = None,
    ) -> tuple[Business, bool]:
        """
        Create a pending business unless one with the same (region, slug)
        exists. Returns the row and whether it was created by this call.
        """

        clean_name = name.strip()
        slug = slugify(clean_name)
        if not clean_name or not slug:
            raise ValueError(f"Business name does not produce a usable slug: {name!r}")

        existing = self.get_by_slug(region_id=region_id, slug=slug)
        if existing is not None:
            return existing, False

        business = Business(
            name=clean_name[:255],
            slug=slug,
            region_id=region_id,
            city_id=city_id,
            category_id=category_id,
            website=normalize_website(website),
            address=address,
            phone=phone,
            description=description,
            status=BusinessStatus.PENDING,
            source=source,
            raw_data=raw_data,
        )
        try:
            with self._session.begin_nested():
                self._session.add(business)
                self._session.flush()
        except IntegrityError:
            # Lost a race with a concurrent insert of the same slug.
            existing = self.get_by_slug(region_id=region_id, slug=slug)
            if existing is None:
                raise
            return existing, False
        return business, True

    def advance_status(self, business_id: uuid.UUID, target: str) -> bool:
        """
        Move a business forward to ``target``.

        Returns False when the business is already at or past ``target``
        (re-run stages never move status backwards). Raises
        ``InvalidStatusTransitionError`` for any other non-forward edge.
        """

        business = self.require(business_id)
        current = business.status
        if current == target:
            return False
        if self._is_behind(current, target):
            return False
        if not is_forward_step(current, target):
            raise InvalidStatusTransitionError(business_id, current, target)

        stmt = (
            update(Business)
            .where(Business.id == business_id, Business.status == current)
            .values(status=target)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        self._session.refresh(business)
        if result.rowcount == 0:
            if business.status == target or self._is_behind(business.status, target):
                return False
            raise InvalidStatusTransitionError(business_id, business.status, target)
        return True

    def mark_failed(self, business_id: uuid.UUID) -> bool:
        business = self.require(business_id)
        if business.status in {BusinessStatus.FAILED, BusinessStatus.VERIFIED}:
            return False
        return self.advance_status(business_id, BusinessStatus.FAILED)

    def save_enrichment(
        self,
        business_id: uuid.UUID,
        enrichment: dict[str, Any],
        *,
        enriched_at: datetime | None = None,
    ) -> Business:
        business = self.require(business_id)
        business.enrichment = enrichment
        business.last_enriched_at = enriched_at or utcnow()
        description = enrichment.get("description")
        if isinstance(description, str) and description.strip():
            business.description = description.strip()
        return business

    def save_translation(
        self,
        business_id: uuid.UUID,
        locale: str,
        fields: dict[str, str],
    ) -> Business:
        business = self.require(business_id)
        translations = dict(business.translations or {})
        translations[locale] = fields
        business.translations = translations
        return business

    def list_ids_by_status(self, status: str, *, limit: int = 100) -> list[uuid.UUID]:
        stmt = (
            select(Business.id)
            .where(Business.status == status)
            .order_by(Business.updated_at.asc())
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())

    def list_pending_without_website(
        self,
        *,
        created_before: datetime,
        limit: int = 100,
    ) -> list[uuid.UUID]:
        stmt: Select[tuple[uuid.UUID]] = (
            select(Business.id)
            .where(
                Business.status == BusinessStatus.PENDING,
                Business.website.is_(None),
                Business.created_at < created_before,
            )
            .order_by(Business.created_at.asc())
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())

    def list_pending_with_website(
        self,
        *,
        created_before: datetime,
        limit: int = 100,
    ) -> list[uuid.UUID]:
        stmt: Select[tuple[uuid.UUID]] = (
            select(Business.id)
            .where(
                Business.status == BusinessStatus.PENDING,
                Business.website.is_not(None),
                Business.website != "",
                Business.created_at < created_before,
            )
            .order_by(Business.created_at.asc())
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())

    def list_stale_by_status(
        self,
        status: str,
        *,
        updated_before: datetime,
        limit: int = 100,
    ) -> list[uuid.UUID]:
        stmt: Select[tuple[uuid.UUID]] = (
            select(Business.id)
            .where(Business.status == status, Business.updated_at < updated_before)
            .order_by(Business.updated_at.asc())
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())

    @staticmethod
    def _is_behind(current: str, target: str) -> bool:
        current_rank = status_rank(current)
        target_rank = status_rank(target)
        if current_rank is None or target_rank is None:
            return False
        return target_rank < current_rank
