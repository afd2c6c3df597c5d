"""
Per-target site crawler.

Fetches a seed page, ranks its same-host links against the priority table
and visits the best ones sequentially within a page budget. Individual page
failures are logged and skipped; only a seed failure can fail the crawl.
"""

from __future__ import annotations

import heapq
import logging
from collections.abc import Callable, Collection, Iterable
from urllib.parse import urlsplit

import requests

from app import failure_codes
from app.crawling.config.loader import get_priority_table
from app.crawling.config.models import CrawlerSettings
from app.crawling.errors import FetchError, FetchErrorKind, PageParseError, SiteCrawlError
from app.crawling.fetcher import PageFetcher
from app.crawling.parsing.page_parser import PageParser
from app.crawling.parsing.social_proof import merge_capped
from app.crawling.parsing.structured_data import dedupe_records
from app.crawling.prioritizer import LinkPrioritizer, dedup_key, fetchable_url, host_key
from app.crawling.rate_limiter import PolitenessThrottle
from app.crawling.types import CrawledPage, CrawlResult
from app.logging_utils import log_event

logger = logging.getLogger(__name__)

ENGLISH_URL_PATTERNS = ("/en/", "/en-", "/english/", "?lang=en", "&lang=en", "/en.html")
SOCIAL_PROOF_CAP = 10

# Upper bound on queued URLs when links are followed past the seed page.
FOLLOW_FRONTIER_FACTOR = 5

PageCallback = Callable[[CrawledPage, int], None]


def signals_english(page: CrawledPage) -> bool:
    lowered_url = page.url.lower()
    if any(pattern in lowered_url for pattern in ENGLISH_URL_PATTERNS):
        return True
    return bool(page.language and page.language.startswith("en"))


class _Frontier:
    """
    Max-priority queue of not-yet-visited URLs. Ties pop in discovery order.
    """

    def __init__(
        self,
        *,
        prioritizer: LinkPrioritizer,
        allowed_hosts: Collection[str],
        seen: set[str],
        capacity: int,
    ) -> None:
        self._prioritizer = prioritizer
        self._allowed_hosts = allowed_hosts
        self._seen = seen
        self._capacity = max(0, capacity)
        self._admitted = 0
        self._sequence = 0
        self._heap: list[tuple[int, int, str]] = []

    def offer(self, links: Iterable[str]) -> int:
        chosen = self._prioritizer.select(
            links,
            allowed_hosts=self._allowed_hosts,
            seen=self._seen,
            limit=self._capacity - self._admitted,
        )
        for url in chosen:
            self._seen.add(dedup_key(url))
            heapq.heappush(self._heap, (-self._prioritizer.score(url), self._sequence, url))
            self._sequence += 1
        self._admitted += len(chosen)
        return len(chosen)

    def pop(self) -> str | None:
        if not self._heap:
            return None
        return heapq.heappop(self._heap)[2]

    def __len__(self) -> int:
        return len(self._heap)


class SiteCrawler:
    """
    Drives fetcher, parser and prioritizer across one target.
    """

    def __init__(
        self,
        *,
        settings: CrawlerSettings,
        fetcher: PageFetcher | None = None,
        parser: PageParser | None = None,
        prioritizer: LinkPrioritizer | None = None,
        throttle_factory: Callable[[], PolitenessThrottle] | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._settings = settings
        self._fetcher = fetcher or PageFetcher(settings=settings, session=session)
        self._parser = parser or PageParser()
        self._prioritizer = prioritizer or LinkPrioritizer(
            get_priority_table(settings.priority_table_path, settings.priority_locales)
        )
        self._throttle_factory = throttle_factory or (
            lambda: PolitenessThrottle(delay_seconds=settings.politeness_delay_seconds)
        )

    def crawl(
        self,
        seed_url: str,
        *,
        max_pages: int,
        allowed_hosts: Collection[str] | None = None,
        follow_links: bool = False,
        min_content_length: int = 0,
        on_page: PageCallback | None = None,
    ) -> CrawlResult:
        """
        Crawl one target with at most ``max_pages`` GET requests.

        Raises ``SiteCrawlError`` when the seed fails transiently (retryable)
        or cannot be parsed. A permanently unavailable seed (403/404/410/451
        or non-HTML) returns an empty result with ``seed_error`` set.
        """

        budget = max(1, max_pages)
        seed = fetchable_url(seed_url)
        hosts = {host_key(urlsplit(seed).hostname)}
        hosts.update(host_key(host) for host in allowed_hosts or ())
        seen = {dedup_key(seed)}
        recorded: set[str] = set()
        throttle = self._throttle_factory()
        result = CrawlResult(seed_url=seed)

        throttle.wait(seed)
        try:
            fetched = self._fetcher.fetch(seed)
        except FetchError as exc:
            if exc.is_permanent:
                result.seed_error = exc.describe()
                result.requests_made = 1
                log_event(
                    logger,
                    logging.INFO,
                    "seed_unavailable",
                    seed_url=seed,
                    error=exc.describe(),
                )
                return result
            code = failure_codes.HTTP
            if exc.kind is FetchErrorKind.TRANSPORT_ERROR:
                code = failure_codes.TRANSPORT
            raise SiteCrawlError(code, f"Seed fetch failed for {seed}: {exc}", retryable=True) from exc

        # Follow a redirected seed onto its new host (http -> https, apex -> www, ...).
        hosts.add(host_key(urlsplit(fetched.final_url).hostname))
        seen.add(dedup_key(fetched.final_url))
        try:
            seed_page = self._parser.parse(url=fetched.final_url, html=fetched.html)
        except PageParseError as exc:
            raise SiteCrawlError(failure_codes.NO_SEED_CONTENT, str(exc), retryable=False) from exc

        self._record(result, seed_page, recorded, min_content_length, on_page)

        capacity = budget - 1
        if follow_links:
            capacity = budget * FOLLOW_FRONTIER_FACTOR
        frontier = _Frontier(
            prioritizer=self._prioritizer,
            allowed_hosts=hosts,
            seen=seen,
            capacity=capacity,
        )
        frontier.offer(seed_page.links)

        attempts = 1
        failed_pages = 0
        while attempts < budget:
            url = frontier.pop()
            if url is None:
                break
            attempts += 1
            throttle.wait(url)
            try:
                fetched = self._fetcher.fetch(url)
                page = self._parser.parse(url=fetched.final_url, html=fetched.html)
            except (FetchError, PageParseError) as exc:
                failed_pages += 1
                log_event(
                    logger,
                    logging.WARNING,
                    "page_fetch_failed",
                    seed_url=seed,
                    page_url=url,
                    error=str(exc),
                )
                continue

            self._record(result, page, recorded, min_content_length, on_page)
            if follow_links:
                frontier.offer(page.links)

        result.requests_made = attempts
        log_event(
            logger,
            logging.INFO,
            "site_crawl_completed",
            seed_url=seed,
            pages_crawled=result.pages_crawled,
            failed_pages=failed_pages,
            requests=attempts,
            has_english_version=result.has_english_version,
        )
        return result

    @staticmethod
    def _record(
        result: CrawlResult,
        page: CrawledPage,
        recorded: set[str],
        min_content_length: int,
        on_page: PageCallback | None,
    ) -> None:
        key = dedup_key(page.url)
        if key in recorded:
            return
        if page.content_length < min_content_length:
            logger.debug(
                "Skipping thin page url=%s content_length=%d",
                page.url,
                page.content_length,
            )
            return
        recorded.add(key)

        result.pages.append(page)
        result.title = result.title or page.title
        result.description = result.description or page.description
        if page.language and page.language not in result.languages_detected:
            result.languages_detected.append(page.language)
        result.has_english_version = result.has_english_version or signals_english(page)
        result.structured_data = dedupe_records([*result.structured_data, *page.structured_data])
        result.testimonials = merge_capped(result.testimonials, page.testimonials, cap=SOCIAL_PROOF_CAP)
        result.awards = merge_capped(result.awards, page.awards, cap=SOCIAL_PROOF_CAP)

        if on_page is not None:
            on_page(page, result.pages_crawled)
