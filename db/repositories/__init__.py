"""
Repository layer exports.
"""

from db.repositories.business_repository import BusinessRepository, normalize_website, slugify
from db.repositories.discovery_crawl_repository import DiscoveryCrawlRepository, new_crawl_id
from db.repositories.errors import (
    BusinessNotFoundError,
    CrawlNotFoundError,
    InvalidCrawlTransitionError,
    InvalidStatusTransitionError,
    RepositoryError,
)
from db.repositories.reference_repository import ReferenceRepository
from db.repositories.scrape_job_repository import ScrapeJobRepository

__all__ = [
    "BusinessRepository",
    "DiscoveryCrawlRepository",
    "ReferenceRepository",
    "ScrapeJobRepository",
    "new_crawl_id",
    "normalize_website",
    "slugify",
    "RepositoryError",
    "CrawlNotFoundError",
    "InvalidCrawlTransitionError",
    "BusinessNotFoundError",
    "InvalidStatusTransitionError",
]
