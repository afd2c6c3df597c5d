"""
BeautifulSoup-based page parser producing ``CrawledPage`` records.
"""

from __future__ import annotations

import re
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, Tag

from app.crawling.errors import PageParseError
from app.crawling.parsing.social_proof import extract_awards, extract_testimonials
from app.crawling.parsing.structured_data import extract_structured_data
from app.crawling.types import CrawledPage

NON_CONTENT_TAGS = ["nav", "footer", "header", "aside"]
NON_TEXT_TAGS = ["script", "style", "noscript", "template", "svg"]
NON_CONTENT_ROLES = ("navigation", "banner", "contentinfo")
SKIPPED_HREF_PREFIXES = ("#", "javascript:", "mailto:", "tel:", "data:")


class PageParser:
    """
    Deterministic extraction of title, description, language, visible
    text, headings, links, structured data and social proof.
    """

    def __init__(self, *, max_headings: int = 20) -> None:
        self._max_headings = max(0, max_headings)

    def parse(self, *, url: str, html: str) -> CrawledPage:
        try:
            soup = BeautifulSoup(html, "html.parser")
        except Exception as exc:  # noqa: BLE001 - bs4 parser errors share no base class
            raise PageParseError(url, f"Unparseable markup: {exc}") from exc

        base_url = self._base_url(soup=soup, page_url=url)
        page = CrawledPage(
            url=url,
            title=self._extract_title(soup),
            description=self._extract_description(soup),
            language=self._extract_language(soup),
            headings=self._extract_headings(soup),
            links=self.extract_links(soup=soup, base_url=base_url),
            structured_data=extract_structured_data(soup, page_url=url),
            testimonials=extract_testimonials(soup),
        )

        self._drop(soup.find_all(NON_TEXT_TAGS))
        page.awards = extract_awards(soup.get_text("\n"))

        self._drop(soup.find_all(NON_CONTENT_TAGS))
        self._drop(soup.find_all(attrs={"role": list(NON_CONTENT_ROLES)}))
        page.content = self._clean_text(soup.get_text(" "))
        return page

    @classmethod
    def extract_links(cls, *, soup: BeautifulSoup, base_url: str) -> list[str]:
        """
        Absolute http(s) links in document order, exact duplicates removed.
        """

        links: list[str] = []
        seen: set[str] = set()
        for anchor in soup.find_all("a", href=True):
            href = str(anchor.get("href", "")).strip()
            if not href or href.lower().startswith(SKIPPED_HREF_PREFIXES):
                continue
            absolute = urljoin(base_url, href)
            if urlsplit(absolute).scheme not in {"http", "https"}:
                continue
            if absolute in seen:
                continue
            seen.add(absolute)
            links.append(absolute)
        return links

    def _extract_headings(self, soup: BeautifulSoup) -> list[str]:
        headings: list[str] = []
        for node in soup.find_all(["h1", "h2", "h3"]):
            text = self._clean_text(node.get_text(" ", strip=True))
            if text:
                headings.append(text)
            if len(headings) >= self._max_headings:
                break
        return headings

    @classmethod
    def _extract_title(cls, soup: BeautifulSoup) -> str | None:
        if soup.title is None:
            return None
        title = cls._clean_text(soup.title.get_text(" ", strip=True))
        return title or None

    @classmethod
    def _extract_description(cls, soup: BeautifulSoup) -> str | None:
        node = soup.find("meta", attrs={"name": re.compile(r"^description$", re.IGNORECASE)})
        if not isinstance(node, Tag):
            return None
        content = cls._clean_text(str(node.get("content", "") or ""))
        return content or None

    @staticmethod
    def _extract_language(soup: BeautifulSoup) -> str | None:
        html_tag = soup.find("html")
        if isinstance(html_tag, Tag):
            lang = str(html_tag.get("lang", "") or "").strip().lower()
            if lang:
                return lang
        meta = soup.find("meta", attrs={"http-equiv": re.compile(r"^content-language$", re.I)})
        if isinstance(meta, Tag):
            lang = str(meta.get("content", "") or "").split(",")[0].strip().lower()
            if lang:
                return lang
        return None

    @staticmethod
    def _base_url(*, soup: BeautifulSoup, page_url: str) -> str:
        base_tag = soup.find("base", href=True)
        if isinstance(base_tag, Tag):
            href = str(base_tag.get("href", "")).strip()
            if href:
                return urljoin(page_url, href)
        return page_url

    @staticmethod
    def _drop(nodes: list[Tag]) -> None:
        for node in nodes:
            # Children of an already removed parent are gone with it.
            if getattr(node, "decomposed", False):
                continue
            node.decompose()

    @staticmethod
    def _clean_text(value: str) -> str:
        return re.sub(r"\s+", " ", value).strip()
