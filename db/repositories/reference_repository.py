"""
Read-only lookups over the directory reference tables.
"""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.reference import Category, City, Region


class ReferenceRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_region(self, region_id: uuid.UUID) -> Region | None:
        return self._session.get(Region, region_id)

    def get_city(self, city_id: uuid.UUID) -> City | None:
        return self._session.get(City, city_id)

    def get_category(self, category_id: uuid.UUID) -> Category | None:
        return self._session.get(Category, category_id)

    def list_cities(self, region_id: uuid.UUID | None = None) -> list[City]:
        stmt = select(City).order_by(City.name.asc())
        if region_id is not None:
            stmt = stmt.where(City.region_id == region_id)
        return list(self._session.scalars(stmt).all())

    def list_categories(self) -> list[Category]:
        stmt = select(Category).order_by(Category.slug.asc())
        return list(self._session.scalars(stmt).all())
