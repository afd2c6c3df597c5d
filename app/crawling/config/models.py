"""
Crawler configuration models.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class PriorityEntry:
    substring: str
    weight: int
    locale: str = "default"


@dataclass(frozen=True)
class PriorityTable:
    """
    Ordered (substring, weight) pairs. A URL scores the weight of the first
    entry whose substring occurs in its lower-cased path and query.
    """

    entries: tuple[PriorityEntry, ...] = ()
    version: str = "inline"

    @classmethod
    def from_pairs(cls, pairs: list[tuple[str, int]] | dict[str, int]) -> "PriorityTable":
        items = pairs.items() if isinstance(pairs, dict) else pairs
        return cls(
            entries=tuple(
                PriorityEntry(substring=substring.lower(), weight=int(weight))
                for substring, weight in items
                if substring
            )
        )

    def score(self, target: str) -> int:
        lowered = target.lower()
        for entry in self.entries:
            if entry.substring in lowered:
                return entry.weight
        return 0


@dataclass(frozen=True)
class CrawlerSettings:
    """
    Runtime settings for site crawling.
    """

    user_agent: str
    timeout_seconds: float = 15.0
    max_redirects: int = 5
    politeness_delay_seconds: float = 0.5
    website_max_pages: int = 20
    discovery_max_pages: int = 200
    discovery_min_content_length: int = 50
    summary_content_limit: int = 10_000
    discovery_content_limit: int = 50_000
    priority_table_path: str = "app/crawling/config/priority_table.json"
    priority_locales: tuple[str, ...] = field(default_factory=lambda: ("en", "es", "gl", "pt"))
