"""
Shared crawl runtime data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class FetchedPage:
    url: str
    final_url: str
    status_code: int
    content_type: str
    html: str


@dataclass
class CrawledPage:
    """
    Extraction result for one fetched page.
    """

    url: str
    title: str | None = None
    description: str | None = None
    language: str | None = None
    content: str = ""
    headings: list[str] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    structured_data: list[dict[str, Any]] = field(default_factory=list)
    testimonials: list[str] = field(default_factory=list)
    awards: list[str] = field(default_factory=list)

    @property
    def content_length(self) -> int:
        return len(self.content)

    def to_summary(self, *, content_limit: int) -> dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "language": self.language,
            "content_length": self.content_length,
            "headings": list(self.headings),
            "content": self.content[:content_limit],
        }


@dataclass
class CrawlResult:
    """
    Aggregate of one site crawl run.
    """

    seed_url: str
    pages: list[CrawledPage] = field(default_factory=list)
    has_english_version: bool = False
    title: str | None = None
    description: str | None = None
    languages_detected: list[str] = field(default_factory=list)
    structured_data: list[dict[str, Any]] = field(default_factory=list)
    testimonials: list[str] = field(default_factory=list)
    awards: list[str] = field(default_factory=list)
    seed_error: str | None = None
    requests_made: int = 0
    crawled_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def pages_crawled(self) -> int:
        return len(self.pages)

    @property
    def total_content_length(self) -> int:
        return sum(page.content_length for page in self.pages)

    @property
    def metadata(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "languages_detected": list(self.languages_detected),
        }

    def to_summary(self, *, content_limit: int = 10_000) -> dict[str, Any]:
        summary: dict[str, Any] = {
            "seed_url": self.seed_url,
            "crawled_at": self.crawled_at.isoformat(),
            "pages_crawled": self.pages_crawled,
            "has_english_version": self.has_english_version,
            "total_content_length": self.total_content_length,
            "metadata": self.metadata,
            "pages": [page.to_summary(content_limit=content_limit) for page in self.pages],
        }
        if self.structured_data:
            summary["structured_data"] = list(self.structured_data)
        if self.testimonials or self.awards:
            summary["social_proof"] = {
                "testimonials": list(self.testimonials),
                "awards": list(self.awards),
            }
        if self.seed_error:
            summary["seed_error"] = self.seed_error
        return summary
