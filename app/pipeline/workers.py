"""
app/pipeline/workers.py

Stage workers: the work done by each pipeline stage for one job payload.

Workers never enqueue anything and never change business status; they
report a ``StageResult`` and the orchestrator decides what follows. Each
worker opens its own short-lived sessions, one at a time, so nothing
database-bound is held open across network calls.

Job payloads
------------
  discovery_search   {query, city_id, category_id?, source?}
  discovery_crawl    {crawl_id}
  discovery_process  {crawl_id}
  website_crawl      {business_id}
  web_search         {business_id}
  enrich             {business_id}
  translate          {business_id}
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Any
from urllib.parse import urlsplit

from sqlalchemy.orm import Session

from app import failure_codes
from app.config import PipelineSettings
from app.crawling.artifacts import ArtifactStore
from app.crawling.config.models import CrawlerSettings
from app.crawling.crawler import SiteCrawler
from app.crawling.errors import SiteCrawlError
from app.crawling.prioritizer import host_key
from app.crawling.types import CrawledPage
from app.logging_utils import log_event
from app.pipeline.collaborators import BusinessCandidate, CollaboratorConfigError, CollaboratorRegistry
from app.pipeline.reference_cache import ReferenceDataCache
from app.pipeline.stages import Stage, StageResult
from db.base import utcnow
from db.models.business import BusinessSource
from db.models.discovery_crawl import DiscoveryCrawlStatus
from db.repositories.business_repository import BusinessRepository, normalize_website
from db.repositories.discovery_crawl_repository import DiscoveryCrawlRepository
from db.repositories.reference_repository import ReferenceRepository
from db.repositories.scrape_job_repository import ScrapeJobRepository
from db.session import session_scope

logger = logging.getLogger(__name__)

DISCOVERY_PAGE_MAX_HEADINGS = 30
EXTRACTOR_PAGE_CONTENT_LIMIT = 15_000
EXTRACTOR_PAGE_MAX_HEADINGS = 15
LOCAL_MEDIA_SITES = ("lavozdegalicia.es", "farodevigo.es", "atlantico.net")
DEFAULT_SEARCH_CITY = "Galicia"
DEFAULT_SEARCH_CATEGORY = "business"


class StageError(Exception):
    """A stage could not finish. ``retryable`` tells the queue whether to try again."""

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


def build_search_queries(name: str, city: str | None, category: str | None) -> list[str]:
    city_name = city or DEFAULT_SEARCH_CITY
    category_name = category or DEFAULT_SEARCH_CATEGORY
    media = " OR ".join(f"site:{site}" for site in LOCAL_MEDIA_SITES)
    return [
        f'"{name}" {city_name} {category_name} reviews opinions',
        f'"{name}" {city_name} {media}',
    ]


def discovery_page_payload(page: CrawledPage, *, content_limit: int) -> dict[str, Any]:
    return {
        "url": page.url,
        "title": page.title,
        "description": page.description,
        "language": page.language,
        "headings": page.headings[:DISCOVERY_PAGE_MAX_HEADINGS],
        "content_length": page.content_length,
        "content": page.content[:content_limit],
        "structured_data": list(page.structured_data),
        "crawled_at": utcnow().isoformat(),
    }


def _required_str(args: dict[str, Any], key: str) -> str:
    value = args.get(key)
    if value is None or not str(value).strip():
        raise StageError(f"Job payload is missing '{key}'.", retryable=False)
    return str(value).strip()


def _required_uuid(args: dict[str, Any], key: str) -> uuid.UUID:
    raw = _required_str(args, key)
    try:
        return uuid.UUID(raw)
    except ValueError as exc:
        raise StageError(f"Job payload '{key}' is not a UUID: {raw!r}", retryable=False) from exc


def _optional_uuid(args: dict[str, Any], key: str) -> uuid.UUID | None:
    if args.get(key) in (None, ""):
        return None
    return _required_uuid(args, key)


def _as_candidate(item: BusinessCandidate | dict[str, Any]) -> BusinessCandidate:
    if isinstance(item, BusinessCandidate):
        return item
    if isinstance(item, dict):
        return BusinessCandidate.from_mapping(item)
    raise StageError(f"Unsupported candidate type: {type(item).__name__}")


def _chunks(items: list[dict[str, Any]], size: int) -> list[list[dict[str, Any]]]:
    size = max(1, size)
    return [items[index:index + size] for index in range(0, len(items), size)]


class StageWorkers:
    def __init__(
        self,
        *,
        session_factory: Callable[[], Session],
        crawler: SiteCrawler,
        artifacts: ArtifactStore,
        collaborators: CollaboratorRegistry,
        reference_cache: ReferenceDataCache,
        crawler_settings: CrawlerSettings,
        pipeline_settings: PipelineSettings,
    ) -> None:
        self._session_factory = session_factory
        self._crawler = crawler
        self._artifacts = artifacts
        self._collaborators = collaborators
        self._reference_cache = reference_cache
        self._crawler_settings = crawler_settings
        self._pipeline_settings = pipeline_settings
        self._handlers: dict[Stage, Callable[[dict[str, Any]], StageResult]] = {
            Stage.DISCOVERY_SEARCH: self.discovery_search,
            Stage.DISCOVERY_CRAWL: self.discovery_crawl,
            Stage.DISCOVERY_PROCESS: self.discovery_process,
            Stage.WEBSITE_CRAWL: self.website_crawl,
            Stage.WEB_SEARCH: self.web_search,
            Stage.ENRICH: self.enrich,
            Stage.TRANSLATE: self.translate,
        }

    def run(self, stage: Stage, args: dict[str, Any]) -> StageResult:
        return self._handlers[Stage(stage)](args)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discovery_search(self, args: dict[str, Any]) -> StageResult:
        """
        Places search for one query in one city, audited as a ScrapeJob.
        """

        query = _required_str(args, "query")
        city_id = _required_uuid(args, "city_id")
        category_id = _optional_uuid(args, "category_id")
        source = str(args.get("source") or BusinessSource.GOOGLE_MAPS).strip().lower()

        with session_scope(self._session_factory) as session:
            references = ReferenceRepository(session)
            city = references.get_city(city_id)
            if city is None:
                raise StageError(f"City not found: {city_id}", retryable=False)
            category = references.get_category(category_id) if category_id else None
            city_name = city.name
            region_id = city.region_id
            category_name = category.name if category else None
            job = ScrapeJobRepository(session).create_running(
                source=source,
                query=query,
                region_id=region_id,
                city_id=city_id,
                category_id=category_id,
            )
            job_id = job.id

        client = self._collaborators.places_client(source)
        if client is None:
            with session_scope(self._session_factory) as session:
                ScrapeJobRepository(session).mark_failed(
                    job_id,
                    error_message=f"No places search client configured for source '{source}'.",
                )
            return StageResult.halted(failure_codes.NO_COLLABORATOR, scrape_job_id=str(job_id))

        try:
            candidates = [
                _as_candidate(item)
                for item in client.search(query, city=city_name, category=category_name)
            ]
            created_ids: list[uuid.UUID] = []
            with session_scope(self._session_factory) as session:
                businesses = BusinessRepository(session)
                for candidate in candidates:
                    if not candidate.name.strip():
                        continue
                    try:
                        business, created = businesses.create_if_absent(
                            name=candidate.name,
                            region_id=region_id,
                            source=source,
                            city_id=city_id,
                            category_id=category_id,
                            website=candidate.website,
                            address=candidate.address,
                            phone=candidate.phone,
                            description=candidate.description,
                            raw_data={**candidate.raw, "query": query, "scrape_job_id": str(job_id)},
                        )
                    except ValueError as exc:
                        logger.warning("Skipping places candidate name=%r: %s", candidate.name, exc)
                        continue
                    if created:
                        created_ids.append(business.id)
                ScrapeJobRepository(session).mark_completed(
                    job_id,
                    found=len(candidates),
                    created=len(created_ids),
                )
        except Exception as exc:
            with session_scope(self._session_factory) as session:
                ScrapeJobRepository(session).mark_failed(job_id, error_message=str(exc))
            raise

        result = StageResult.succeeded(
            scrape_job_id=str(job_id),
            found=len(candidates),
            created=len(created_ids),
        )
        result.next_args = [{"business_id": str(business_id)} for business_id in created_ids]
        return result

    def discovery_crawl(self, args: dict[str, Any]) -> StageResult:
        """
        Crawl a directory's seed URLs, persisting every page as it arrives.
        """

        crawl_id = _required_str(args, "crawl_id")
        with session_scope(self._session_factory) as session:
            crawl = DiscoveryCrawlRepository(session).require(crawl_id)
            status = crawl.status
            seed_urls = list(crawl.seed_urls or [])
            max_pages = crawl.max_pages
            metadata = {
                "crawl_id": crawl.crawl_id,
                "seed_urls": seed_urls,
                "max_pages": max_pages,
                "region_id": str(crawl.region_id),
                "city_id": str(crawl.city_id) if crawl.city_id else None,
                "started_at": crawl.started_at.isoformat() if crawl.started_at else None,
            }

        if status != DiscoveryCrawlStatus.CRAWLING:
            log_event(logger, logging.INFO, "discovery_crawl_not_crawling", crawl_id=crawl_id, status=status)
            return StageResult.halted("not_crawling", status=status)

        self._artifacts.write_crawl_metadata(crawl_id, metadata)
        seed_hosts = {host_key(urlsplit(url).hostname) for url in seed_urls}
        seed_hosts.discard("")
        content_limit = self._crawler_settings.discovery_content_limit
        page_count = self._artifacts.count_pages(crawl_id)
        requests_left = max(0, max_pages - page_count)
        seed_errors: list[str] = []

        def on_page(page: CrawledPage, _: int) -> None:
            nonlocal page_count
            page_count += 1
            self._artifacts.write_discovery_page(
                crawl_id,
                page_count,
                discovery_page_payload(page, content_limit=content_limit),
            )
            with session_scope(self._session_factory) as progress_session:
                DiscoveryCrawlRepository(progress_session).update_pages_crawled(crawl_id, page_count)

        for seed_url in seed_urls:
            if requests_left <= 0:
                break
            try:
                result = self._crawler.crawl(
                    seed_url,
                    max_pages=requests_left,
                    allowed_hosts=seed_hosts,
                    follow_links=True,
                    min_content_length=self._crawler_settings.discovery_min_content_length,
                    on_page=on_page,
                )
            except SiteCrawlError as exc:
                seed_errors.append(f"{seed_url}: {exc}")
                log_event(
                    logger,
                    logging.WARNING,
                    "discovery_seed_failed",
                    crawl_id=crawl_id,
                    seed_url=seed_url,
                    code=exc.code,
                    error=str(exc),
                )
                requests_left -= 1
                continue
            requests_left -= max(1, result.requests_made)
            if result.seed_error:
                seed_errors.append(f"{seed_url}: {result.seed_error}")

        pages_on_disk = self._artifacts.count_pages(crawl_id)
        with session_scope(self._session_factory) as session:
            repository = DiscoveryCrawlRepository(session)
            if pages_on_disk == 0:
                detail = "; ".join(seed_errors) or "no seed produced content"
                repository.mark_failed(crawl_id, f"{failure_codes.NO_PAGES_CRAWLED}: {detail}")
                return StageResult.halted(failure_codes.NO_PAGES_CRAWLED, seed_errors=seed_errors)
            repository.mark_crawled(crawl_id, pages_on_disk)

        result = StageResult.succeeded(pages_crawled=pages_on_disk, seed_errors=seed_errors)
        result.next_args = [{"crawl_id": crawl_id}]
        return result

    def discovery_process(self, args: dict[str, Any]) -> StageResult:
        """
        Turn crawled discovery pages into pending businesses.

        Safe to repeat: businesses that already exist are counted as skipped.
        """

        crawl_id = _required_str(args, "crawl_id")
        with session_scope(self._session_factory) as session:
            repository = DiscoveryCrawlRepository(session)
            crawl = repository.require(crawl_id)
            if crawl.is_terminal:
                return StageResult.halted("already_terminal", status=crawl.status)
            repository.mark_processing(crawl_id)
            region_id = crawl.region_id
            default_city_id = crawl.city_id

        if not self._artifacts.crawl_dir_exists(crawl_id):
            with session_scope(self._session_factory) as session:
                DiscoveryCrawlRepository(session).mark_failed(
                    crawl_id,
                    failure_codes.CRAWL_DIRECTORY_NOT_FOUND,
                )
            return StageResult.halted(failure_codes.CRAWL_DIRECTORY_NOT_FOUND)

        extractor = self._collaborators.extractor
        if extractor is None:
            raise CollaboratorConfigError("No business extractor configured for discovery processing.")

        pages = self._artifacts.read_pages(crawl_id)
        category_slugs = sorted(self._reference_cache.categories())
        city_slugs = sorted(self._reference_cache.cities(region_id))
        created_ids: list[uuid.UUID] = []
        skipped = 0
        failed = 0

        batches = _chunks(pages, self._pipeline_settings.discovery_batch_size)
        for batch_number, batch in enumerate(batches, start=1):
            prepared = [
                {
                    "url": page.get("url"),
                    "title": page.get("title"),
                    "headings": list(page.get("headings") or [])[:EXTRACTOR_PAGE_MAX_HEADINGS],
                    "content": str(page.get("content") or "")[:EXTRACTOR_PAGE_CONTENT_LIMIT],
                }
                for page in batch
            ]
            try:
                extracted = [
                    _as_candidate(item)
                    for item in extractor.extract(prepared, categories=category_slugs, cities=city_slugs)
                ]
            except Exception as exc:  # noqa: BLE001
                failed += len(batch)
                log_event(
                    logger,
                    logging.WARNING,
                    "discovery_batch_failed",
                    crawl_id=crawl_id,
                    batch=batch_number,
                    batches=len(batches),
                    error=str(exc),
                )
                continue

            for candidate in extracted:
                outcome, business_id = self._import_candidate(
                    candidate,
                    crawl_id=crawl_id,
                    region_id=region_id,
                    default_city_id=default_city_id,
                )
                if outcome == "created" and business_id is not None:
                    created_ids.append(business_id)
                elif outcome == "skipped":
                    skipped += 1
                else:
                    failed += 1

        with session_scope(self._session_factory) as session:
            DiscoveryCrawlRepository(session).mark_completed(
                crawl_id,
                created=len(created_ids),
                skipped=skipped,
                failed=failed,
            )

        log_event(
            logger,
            logging.INFO,
            "discovery_process_completed",
            crawl_id=crawl_id,
            pages=len(pages),
            created=len(created_ids),
            skipped=skipped,
            failed=failed,
        )
        result = StageResult.succeeded(created=len(created_ids), skipped=skipped, failed=failed)
        result.next_args = [{"business_id": str(business_id)} for business_id in created_ids]
        return result

    def _import_candidate(
        self,
        candidate: BusinessCandidate,
        *,
        crawl_id: str,
        region_id: uuid.UUID,
        default_city_id: uuid.UUID | None,
    ) -> tuple[str, uuid.UUID | None]:
        if not candidate.name.strip():
            return "failed", None

        city = self._reference_cache.city(region_id, candidate.city_slug)
        category = self._reference_cache.category(candidate.category_slug)
        try:
            with session_scope(self._session_factory) as session:
                business, created = BusinessRepository(session).create_if_absent(
                    name=candidate.name,
                    region_id=city.region_id if city else region_id,
                    source=BusinessSource.DISCOVERY_SPIDER,
                    city_id=city.id if city else default_city_id,
                    category_id=category.id if category else None,
                    website=candidate.website,
                    address=candidate.address,
                    phone=candidate.phone,
                    description=candidate.description,
                    raw_data={
                        "source_url": candidate.source_url,
                        "crawl_id": crawl_id,
                        "discovered_at": utcnow().isoformat(),
                    },
                )
                business_id = business.id
        except ValueError as exc:
            logger.warning("Discovery candidate rejected crawl_id=%s name=%r: %s", crawl_id, candidate.name, exc)
            return "failed", None
        return ("created" if created else "skipped"), business_id

    # ------------------------------------------------------------------
    # Research
    # ------------------------------------------------------------------

    def website_crawl(self, args: dict[str, Any]) -> StageResult:
        business_id = _required_uuid(args, "business_id")
        with session_scope(self._session_factory) as session:
            website = BusinessRepository(session).require(business_id).website

        if not website or not website.strip():
            return StageResult.skipped(failure_codes.NO_WEBSITE)
        seed = normalize_website(website)
        if seed is None:
            logger.warning("Website not crawlable business_id=%s website=%r", business_id, website)
            return StageResult.skipped(failure_codes.INVALID_WEBSITE)

        result = self._crawler.crawl(seed, max_pages=self._crawler_settings.website_max_pages)
        path = self._artifacts.write_website_summary(
            business_id,
            result.to_summary(content_limit=self._crawler_settings.summary_content_limit),
        )
        return StageResult.succeeded(
            pages_crawled=result.pages_crawled,
            seed_error=result.seed_error,
            artifact=str(path),
        )

    def web_search(self, args: dict[str, Any]) -> StageResult:
        business_id = _required_uuid(args, "business_id")
        with session_scope(self._session_factory) as session:
            business = BusinessRepository(session).require(business_id)
            references = ReferenceRepository(session)
            city = references.get_city(business.city_id) if business.city_id else None
            category = references.get_category(business.category_id) if business.category_id else None
            queries = build_search_queries(
                business.name,
                city.name if city else None,
                category.name if category else None,
            )

        payload: dict[str, Any] = {
            "searched_at": utcnow().isoformat(),
            "total_queries": 0,
            "successful": 0,
            "failed": 0,
            "queries": [],
        }
        client = self._collaborators.web_search
        if client is None:
            self._artifacts.write_search_results(business_id, payload)
            return StageResult.skipped(failure_codes.NO_COLLABORATOR)

        last_error: Exception | None = None
        payload["total_queries"] = len(queries)
        for query in queries:
            try:
                results = client.search(query)
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                payload["failed"] += 1
                logger.warning("Web search query failed business_id=%s query=%r: %s", business_id, query, exc)
                continue
            payload["successful"] += 1
            payload["queries"].append({"query": query, "results": list(results or [])})

        if payload["successful"] == 0 and last_error is not None:
            raise StageError(f"All web search queries failed: {last_error}") from last_error

        self._artifacts.write_search_results(business_id, payload)
        return StageResult.succeeded(successful=payload["successful"], failed=payload["failed"])

    # ------------------------------------------------------------------
    # Enrichment and translation
    # ------------------------------------------------------------------

    def enrich(self, args: dict[str, Any]) -> StageResult:
        business_id = _required_uuid(args, "business_id")
        enricher = self._collaborators.enricher
        if enricher is None:
            return StageResult.skipped(failure_codes.NO_COLLABORATOR)

        with session_scope(self._session_factory) as session:
            business = BusinessRepository(session).require(business_id)
            references = ReferenceRepository(session)
            city = references.get_city(business.city_id) if business.city_id else None
            category = references.get_category(business.category_id) if business.category_id else None
            snapshot = {
                "id": str(business.id),
                "name": business.name,
                "website": business.website,
                "address": business.address,
                "phone": business.phone,
                "description": business.description,
                "city": city.name if city else None,
                "category": category.name if category else None,
            }

        enrichment = enricher.enrich(
            snapshot,
            website=self._artifacts.read_website_summary(business_id),
            search=self._artifacts.read_search_results(business_id),
        )
        if not isinstance(enrichment, dict):
            raise StageError(f"Enricher returned {type(enrichment).__name__}, expected a mapping.")

        with session_scope(self._session_factory) as session:
            BusinessRepository(session).save_enrichment(business_id, enrichment)
        return StageResult.succeeded(fields=sorted(enrichment))

    def translate(self, args: dict[str, Any]) -> StageResult:
        business_id = _required_uuid(args, "business_id")
        translator = self._collaborators.translator
        if translator is None:
            return StageResult.skipped(failure_codes.NO_COLLABORATOR)

        with session_scope(self._session_factory) as session:
            business = BusinessRepository(session).require(business_id)
            fields = {"name": business.name}
            if business.description:
                fields["description"] = business.description
            for key, value in (business.enrichment or {}).items():
                if isinstance(value, str) and value.strip() and key not in fields:
                    fields[key] = value

        translated_locales: list[str] = []
        for locale in self._pipeline_settings.translation_locales:
            translated = translator.translate(dict(fields), target_locale=locale)
            with session_scope(self._session_factory) as session:
                BusinessRepository(session).save_translation(business_id, locale, dict(translated))
            translated_locales.append(locale)
        return StageResult.succeeded(locales=translated_locales)
