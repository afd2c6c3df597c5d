"""
HTML parsing for crawled pages.
"""

from app.crawling.parsing.page_parser import PageParser

__all__ = ["PageParser"]
