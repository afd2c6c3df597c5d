"""
tests/test_site_crawler.py

Pytest unit tests for SiteCrawler against a canned HTTP session.

Coverage
--------
- Seed plus two internal links within max_pages=3 gives three pages
- A 404 seed is an empty, successful crawl with seed_error set
- max_pages=1 requests only the seed
- Links visited in priority order, duplicates and off-site links skipped
- Failed sub-pages are skipped without failing the crawl
- Transient seed failures raise a retryable SiteCrawlError
- Link following, min_content_length and on_page for discovery crawls
- Crawl summary shape
"""

from __future__ import annotations

import pytest
import requests

from app import failure_codes
from app.crawling.crawler import SiteCrawler
from app.crawling.errors import SiteCrawlError
from app.crawling.types import CrawledPage
from tests.fakes import FakeHttpSession, FakeResponse, html_page

SEED = "https://cafe.example/"
LONG_TEXT = "Traditional Galician cooking with local produce and a sea view terrace."


class TestBasicCrawl:
    def test_seed_and_two_links(self, crawler: SiteCrawler, http: FakeHttpSession) -> None:
        http.add_page(SEED, html_page("Home", LONG_TEXT, links=("/about", "/contact")))
        http.add_page("https://cafe.example/about", html_page("About", LONG_TEXT))
        http.add_page("https://cafe.example/contact", html_page("Contact", LONG_TEXT))

        result = crawler.crawl(SEED, max_pages=3)

        assert result.pages_crawled == 3
        assert [page.title for page in result.pages] == ["Home", "About", "Contact"]
        assert result.seed_error is None
        assert result.requests_made == 3
        assert result.title == "Home"

    def test_404_seed_is_empty_success(self, crawler: SiteCrawler, http: FakeHttpSession) -> None:
        result = crawler.crawl("https://gone.example/", max_pages=5)

        assert result.pages_crawled == 0
        assert result.pages == []
        assert result.seed_error == "http_error(404)"
        assert result.requests_made == 1
        assert result.to_summary()["seed_error"] == "http_error(404)"

    def test_max_pages_one_fetches_only_the_seed(self, crawler: SiteCrawler, http: FakeHttpSession) -> None:
        http.add_page(SEED, html_page("Home", LONG_TEXT, links=("/about", "/contact")))

        result = crawler.crawl(SEED, max_pages=1)

        assert result.pages_crawled == 1
        assert http.requested == [SEED]

    def test_never_exceeds_request_budget(self, crawler: SiteCrawler, http: FakeHttpSession) -> None:
        links = tuple(f"/page-{index}" for index in range(10))
        http.add_page(SEED, html_page("Home", LONG_TEXT, links=links))
        for link in links:
            http.add_page(f"https://cafe.example{link}", html_page(link, LONG_TEXT))

        result = crawler.crawl(SEED, max_pages=4)

        assert len(http.requested) == 4
        assert result.pages_crawled == 4


# ---------------------------------------------------------------------------
# Frontier ordering and dedupe
# ---------------------------------------------------------------------------


class TestFrontier:
    def test_priority_order(self, crawler: SiteCrawler, http: FakeHttpSession) -> None:
        http.add_page(SEED, html_page("Home", LONG_TEXT, links=("/random", "/contact", "/about")))
        for path in ("/random", "/contact", "/about"):
            http.add_page(f"https://cafe.example{path}", html_page(path, LONG_TEXT))

        crawler.crawl(SEED, max_pages=4)

        assert http.requested == [
            SEED,
            "https://cafe.example/about",
            "https://cafe.example/contact",
            "https://cafe.example/random",
        ]

    def test_url_variants_are_fetched_once(self, crawler: SiteCrawler, http: FakeHttpSession) -> None:
        links = (
            "/About",
            "/about/",
            "https://www.cafe.example/about#team",
            "/?utm_source=x",
            "https://elsewhere.example/about",
            "/menu.pdf",
        )
        http.add_page(SEED, html_page("Home", LONG_TEXT, links=links))
        http.add_page("https://cafe.example/About", html_page("About", LONG_TEXT))

        result = crawler.crawl(SEED, max_pages=10)

        assert http.requested == [SEED, "https://cafe.example/About"]
        assert result.pages_crawled == 2

    def test_failed_subpage_is_skipped(
        self,
        crawler: SiteCrawler,
        http: FakeHttpSession,
    ) -> None:
        http.add_page(SEED, html_page("Home", LONG_TEXT, links=("/about", "/contact")))
        http.add_error("https://cafe.example/about", requests.Timeout("slow"))
        http.add_page("https://cafe.example/contact", html_page("Contact", LONG_TEXT))

        result = crawler.crawl(SEED, max_pages=3)

        assert [page.title for page in result.pages] == ["Home", "Contact"]
        assert result.seed_error is None


# ---------------------------------------------------------------------------
# Seed failures
# ---------------------------------------------------------------------------


class TestSeedFailures:
    def test_transport_failure_is_retryable(self, crawler: SiteCrawler, http: FakeHttpSession) -> None:
        http.add_error(SEED, requests.ConnectionError("refused"))

        with pytest.raises(SiteCrawlError) as exc_info:
            crawler.crawl(SEED, max_pages=3)

        assert exc_info.value.retryable
        assert exc_info.value.code == failure_codes.TRANSPORT

    def test_server_error_is_retryable(self, crawler: SiteCrawler, http: FakeHttpSession) -> None:
        http.add_page(SEED, "oops", status_code=503)

        with pytest.raises(SiteCrawlError) as exc_info:
            crawler.crawl(SEED, max_pages=3)

        assert exc_info.value.retryable
        assert exc_info.value.code == failure_codes.HTTP

    def test_redirected_seed_allows_new_host(self, crawler: SiteCrawler, http: FakeHttpSession) -> None:
        http.routes["http://cafe.example/"] = FakeResponse(
            "https://www.cafe-galicia.example/",
            text=html_page("Home", LONG_TEXT, links=("/about",)),
        )
        http.add_page("https://www.cafe-galicia.example/about", html_page("About", LONG_TEXT))

        result = crawler.crawl("http://cafe.example/", max_pages=2)

        assert [page.url for page in result.pages] == [
            "https://www.cafe-galicia.example/",
            "https://www.cafe-galicia.example/about",
        ]


# ---------------------------------------------------------------------------
# Discovery mode
# ---------------------------------------------------------------------------


class TestDiscoveryMode:
    def test_follows_links_beyond_the_seed(self, crawler: SiteCrawler, http: FakeHttpSession) -> None:
        http.add_page(SEED, html_page("Directory", LONG_TEXT, links=("/listings",)))
        http.add_page(
            "https://cafe.example/listings",
            html_page("Listings", LONG_TEXT, links=("/listings/o-porto",)),
        )
        http.add_page("https://cafe.example/listings/o-porto", html_page("O Porto", LONG_TEXT))

        without = crawler.crawl(SEED, max_pages=10)
        http.requested.clear()
        following = crawler.crawl(SEED, max_pages=10, follow_links=True)

        assert without.pages_crawled == 2
        assert following.pages_crawled == 3

    def test_thin_pages_are_not_recorded(self, crawler: SiteCrawler, http: FakeHttpSession) -> None:
        http.add_page(SEED, html_page("Directory", LONG_TEXT, links=("/empty",)))
        http.add_page("https://cafe.example/empty", "<html><body>.</body></html>")
        seen: list[tuple[str, int]] = []

        def on_page(page: CrawledPage, count: int) -> None:
            seen.append((page.url, count))

        result = crawler.crawl(
            SEED,
            max_pages=5,
            follow_links=True,
            min_content_length=40,
            on_page=on_page,
        )

        assert result.pages_crawled == 1
        assert result.requests_made == 2
        assert seen == [(SEED, 1)]

    def test_allowed_hosts_extend_the_site(self, crawler: SiteCrawler, http: FakeHttpSession) -> None:
        http.add_page(SEED, html_page("Directory", LONG_TEXT, links=("https://mirror.example/listing",)))
        http.add_page("https://mirror.example/listing", html_page("Listing", LONG_TEXT))

        result = crawler.crawl(SEED, max_pages=5, allowed_hosts={"mirror.example"})

        assert result.pages_crawled == 2


class TestSummary:
    def test_summary_shape(self, crawler: SiteCrawler, http: FakeHttpSession) -> None:
        http.add_page(SEED, html_page("Home", LONG_TEXT, links=("/en/about",)))
        http.add_page("https://cafe.example/en/about", html_page("About", LONG_TEXT))

        summary = crawler.crawl(SEED, max_pages=2).to_summary(content_limit=10)

        assert summary["seed_url"] == SEED
        assert summary["pages_crawled"] == 2
        assert summary["has_english_version"] is True
        assert summary["metadata"]["languages_detected"] == ["en"]
        assert all(len(page["content"]) <= 10 for page in summary["pages"])
        assert "seed_error" not in summary
