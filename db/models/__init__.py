"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.business import Business
from db.models.discovery_crawl import DiscoveryCrawl
from db.models.reference import Category, City, Region
from db.models.scrape_job import ScrapeJob

__all__ = [
    "Business",
    "Category",
    "City",
    "DiscoveryCrawl",
    "Region",
    "ScrapeJob",
]
