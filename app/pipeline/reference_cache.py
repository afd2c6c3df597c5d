"""
app/pipeline/reference_cache.py

TTL cache over the directory's category and city reference rows.

Discovery processing resolves extracted category/city slugs on every batch;
the rows change rarely, so one snapshot is reused until it expires or is
explicitly invalidated.
"""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from db.repositories.reference_repository import ReferenceRepository


@dataclass(frozen=True)
class CityRef:
    id: uuid.UUID
    region_id: uuid.UUID
    name: str
    slug: str


@dataclass(frozen=True)
class CategoryRef:
    id: uuid.UUID
    name: str
    slug: str


class ReferenceDataCache:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_factory = session_factory
        self._ttl_seconds = max(0.0, ttl_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._categories: dict[str, CategoryRef] | None = None
        self._cities: dict[uuid.UUID, dict[str, CityRef]] = {}
        self._loaded_at: float | None = None

    def categories(self) -> dict[str, CategoryRef]:
        """Categories keyed by slug."""
        with self._lock:
            self._expire_if_stale()
            if self._categories is None:
                session = self._session_factory()
                try:
                    rows = ReferenceRepository(session).list_categories()
                    self._categories = {
                        row.slug: CategoryRef(id=row.id, name=row.name, slug=row.slug) for row in rows
                    }
                finally:
                    session.close()
                self._touch()
            return dict(self._categories)

    def cities(self, region_id: uuid.UUID) -> dict[str, CityRef]:
        """Cities of one region keyed by slug."""
        with self._lock:
            self._expire_if_stale()
            cached = self._cities.get(region_id)
            if cached is None:
                session = self._session_factory()
                try:
                    rows = ReferenceRepository(session).list_cities(region_id)
                    cached = {
                        row.slug: CityRef(id=row.id, region_id=row.region_id, name=row.name, slug=row.slug)
                        for row in rows
                    }
                finally:
                    session.close()
                self._cities[region_id] = cached
                self._touch()
            return dict(cached)

    def category(self, slug: str | None) -> CategoryRef | None:
        if not slug:
            return None
        return self.categories().get(slug.strip().lower())

    def city(self, region_id: uuid.UUID, slug: str | None) -> CityRef | None:
        if not slug:
            return None
        return self.cities(region_id).get(slug.strip().lower())

    def invalidate(self) -> None:
        with self._lock:
            self._categories = None
            self._cities = {}
            self._loaded_at = None

    def _touch(self) -> None:
        if self._loaded_at is None:
            self._loaded_at = self._clock()

    def _expire_if_stale(self) -> None:
        if self._loaded_at is None:
            return
        if self._clock() - self._loaded_at >= self._ttl_seconds:
            self._categories = None
            self._cities = {}
            self._loaded_at = None
