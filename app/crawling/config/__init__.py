"""
Config helpers for site crawling.
"""

from app.crawling.config.loader import (
    get_crawler_settings,
    get_priority_table,
    load_priority_table,
)
from app.crawling.config.models import CrawlerSettings, PriorityEntry, PriorityTable

__all__ = [
    "CrawlerSettings",
    "PriorityEntry",
    "PriorityTable",
    "get_crawler_settings",
    "get_priority_table",
    "load_priority_table",
]
