"""
app/pipeline/collaborators.py

Narrow interfaces to the external services the pipeline hands work to.

Places search, page-to-listing extraction, web search, enrichment and
translation are vendor integrations that live outside this package. Stage
workers only see these protocols; concrete classes are configured as
``module.path:ClassName`` strings and loaded at startup.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from app.config import CollaboratorSettings

logger = logging.getLogger(__name__)


class CollaboratorConfigError(Exception):
    """Raised when a stage needs a collaborator that is missing or unusable."""

    retryable = False


@dataclass
class BusinessCandidate:
    """
    A listing found by places search or extracted from crawled pages.
    """

    name: str
    website: str | None = None
    address: str | None = None
    phone: str | None = None
    description: str | None = None
    city_slug: str | None = None
    category_slug: str | None = None
    source_url: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, payload: dict[str, Any]) -> BusinessCandidate:
        def _text(key: str) -> str | None:
            value = payload.get(key)
            if value is None:
                return None
            text = str(value).strip()
            return text or None

        return cls(
            name=_text("name") or "",
            website=_text("website"),
            address=_text("address"),
            phone=_text("phone"),
            description=_text("description"),
            city_slug=_text("city_slug") or _text("city"),
            category_slug=_text("category_slug") or _text("category"),
            source_url=_text("source_url"),
            raw=dict(payload),
        )


@runtime_checkable
class PlacesSearchClient(Protocol):
    def search(
        self,
        query: str,
        *,
        city: str | None = None,
        category: str | None = None,
    ) -> list[BusinessCandidate]: ...


@runtime_checkable
class BusinessExtractor(Protocol):
    def extract(
        self,
        pages: list[dict[str, Any]],
        *,
        categories: list[str],
        cities: list[str],
    ) -> list[BusinessCandidate | dict[str, Any]]: ...


@runtime_checkable
class WebSearchClient(Protocol):
    def search(self, query: str) -> list[dict[str, Any]]: ...


@runtime_checkable
class BusinessEnricher(Protocol):
    def enrich(
        self,
        business: dict[str, Any],
        *,
        website: dict[str, Any] | None,
        search: dict[str, Any] | None,
    ) -> dict[str, Any]: ...


@runtime_checkable
class Translator(Protocol):
    def translate(self, fields: dict[str, str], *, target_locale: str) -> dict[str, str]: ...


@dataclass
class CollaboratorRegistry:
    """
    The collaborators available to stage workers. Any of them may be absent.
    """

    places_clients: dict[str, PlacesSearchClient] = field(default_factory=dict)
    extractor: BusinessExtractor | None = None
    web_search: WebSearchClient | None = None
    enricher: BusinessEnricher | None = None
    translator: Translator | None = None

    def places_client(self, source: str) -> PlacesSearchClient | None:
        return self.places_clients.get(source.strip().lower())

    @classmethod
    def from_settings(cls, settings: CollaboratorSettings) -> CollaboratorRegistry:
        places_clients = {
            source: _instantiate(path, PlacesSearchClient)
            for source, path in settings.places_clients.items()
        }
        registry = cls(
            places_clients=places_clients,
            extractor=_instantiate_optional(settings.extractor_class, BusinessExtractor),
            web_search=_instantiate_optional(settings.web_search_class, WebSearchClient),
            enricher=_instantiate_optional(settings.enricher_class, BusinessEnricher),
            translator=_instantiate_optional(settings.translator_class, Translator),
        )
        logger.info(
            "Collaborators loaded places=%s extractor=%s web_search=%s enricher=%s translator=%s",
            sorted(places_clients),
            registry.extractor is not None,
            registry.web_search is not None,
            registry.enricher is not None,
            registry.translator is not None,
        )
        return registry


def _instantiate_optional(path: str | None, protocol: type) -> Any:
    if not path:
        return None
    return _instantiate(path, protocol)


def _instantiate(path: str, protocol: type) -> Any:
    loaded = load_class(path)
    instance = loaded()
    if not isinstance(instance, protocol):
        raise CollaboratorConfigError(
            f"Class '{path}' does not implement {protocol.__name__}."
        )
    return instance


def load_class(path: str) -> type:
    if ":" not in path:
        raise CollaboratorConfigError(f"Invalid collaborator class '{path}'. Use 'module.path:ClassName'.")

    module_path, class_name = path.split(":", 1)
    try:
        module = importlib.import_module(module_path)
    except ImportError as exc:
        raise CollaboratorConfigError(f"Unable to import collaborator module '{module_path}'.") from exc
    loaded = getattr(module, class_name, None)
    if loaded is None or not isinstance(loaded, type):
        raise CollaboratorConfigError(f"Unable to resolve collaborator class '{path}'.")
    return loaded
