"""
tests/fakes.py

Test doubles shared across the suite: canned HTTP responses, stage
collaborators and small database helpers.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from app.pipeline.collaborators import BusinessCandidate, CollaboratorRegistry
from db.models.business import Business
from db.session import session_scope


TEST_PRIORITIES = {"about": 10, "contact": 7, "menu": 5}


@dataclass(frozen=True)
class ReferenceIds:
    region_id: uuid.UUID
    city_id: uuid.UUID
    other_city_id: uuid.UUID
    category_id: uuid.UUID


def load_business(factory: sessionmaker[Session], business_id: uuid.UUID) -> Business:
    with session_scope(factory) as session:
        business = session.get(Business, business_id)
        assert business is not None
        return business


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


def html_page(
    title: str,
    body: str = "",
    *,
    links: tuple[str, ...] = (),
    lang: str = "en",
) -> str:
    anchors = "".join(f'<a href="{href}">{href}</a>' for href in links)
    return (
        f'<html lang="{lang}"><head><title>{title}</title>'
        f'<meta name="description" content="{title} description"></head>'
        f"<body><nav>{anchors}</nav><main><h1>{title}</h1><p>{body}</p></main></body></html>"
    )


class FakeResponse:
    def __init__(
        self,
        url: str,
        *,
        status_code: int = 200,
        text: str = "",
        content_type: str = "text/html; charset=utf-8",
    ) -> None:
        self.url = url
        self.status_code = status_code
        self.text = text
        self.headers = {"Content-Type": content_type}


class FakeHttpSession:
    """
    Stand-in for ``requests.Session``. Routes map a URL to a response or to
    an exception instance to raise; unknown URLs answer 404.
    """

    def __init__(self, routes: dict[str, FakeResponse | Exception] | None = None) -> None:
        self.routes: dict[str, FakeResponse | Exception] = dict(routes or {})
        self.requested: list[str] = []
        self.max_redirects = 30

    def add_page(self, url: str, html: str, *, status_code: int = 200) -> None:
        self.routes[url] = FakeResponse(url, status_code=status_code, text=html)

    def add_error(self, url: str, error: Exception) -> None:
        self.routes[url] = error

    def get(self, url: str, **_: Any) -> FakeResponse:
        self.requested.append(url)
        route = self.routes.get(url)
        if isinstance(route, Exception):
            raise route
        if route is None:
            return FakeResponse(url, status_code=404, text="not found")
        return route


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class FakePlacesClient:
    def __init__(self, candidates: list[BusinessCandidate] | None = None) -> None:
        self.candidates = list(candidates or [])
        self.calls: list[tuple[str, str | None, str | None]] = []

    def search(
        self,
        query: str,
        *,
        city: str | None = None,
        category: str | None = None,
    ) -> list[BusinessCandidate]:
        self.calls.append((query, city, category))
        return list(self.candidates)


class TitleExtractor:
    """One candidate per page, named after the page title."""

    def __init__(self, *, fail_batches: set[int] | None = None) -> None:
        self.fail_batches = set(fail_batches or ())
        self.batches: list[list[dict[str, Any]]] = []

    def extract(
        self,
        pages: list[dict[str, Any]],
        *,
        categories: list[str],
        cities: list[str],
    ) -> list[dict[str, Any]]:
        self.batches.append(pages)
        if len(self.batches) in self.fail_batches:
            raise RuntimeError("extraction service unavailable")
        return [
            {
                "name": page["title"],
                "city_slug": "lugo" if "lugo" in (page.get("url") or "") else None,
                "category_slug": categories[0] if categories else None,
                "source_url": page.get("url"),
            }
            for page in pages
            if page.get("title")
        ]


class FakeWebSearch:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.queries: list[str] = []

    def search(self, query: str) -> list[dict[str, Any]]:
        self.queries.append(query)
        if self.fail:
            raise RuntimeError("search quota exceeded")
        return [{"title": "A review", "url": "https://reviews.example/1", "snippet": query}]


class FakeEnricher:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    def enrich(
        self,
        business: dict[str, Any],
        *,
        website: dict[str, Any] | None,
        search: dict[str, Any] | None,
    ) -> dict[str, Any]:
        self.calls.append({"business": business, "website": website, "search": search})
        return {
            "description": f"{business['name']} is a well known place.",
            "highlights": "Seafood",
            "has_website_summary": website is not None,
        }


class FakeTranslator:
    def translate(self, fields: dict[str, str], *, target_locale: str) -> dict[str, str]:
        return {key: f"[{target_locale}] {value}" for key, value in fields.items()}


@dataclass
class FakeCollaborators:
    places: FakePlacesClient = field(default_factory=FakePlacesClient)
    extractor: TitleExtractor = field(default_factory=TitleExtractor)
    web_search: FakeWebSearch = field(default_factory=FakeWebSearch)
    enricher: FakeEnricher = field(default_factory=FakeEnricher)
    translator: FakeTranslator = field(default_factory=FakeTranslator)

    def registry(self) -> CollaboratorRegistry:
        return CollaboratorRegistry(
            places_clients={"google_maps": self.places},
            extractor=self.extractor,
            web_search=self.web_search,
            enricher=self.enricher,
            translator=self.translator,
        )

