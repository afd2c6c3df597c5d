"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache

from db.config import load_env_files, resolve_project_path


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _get_mapping_env(name: str) -> dict[str, str]:
    """
    Read ``key=value,key=value`` pairs. Malformed tokens are ignored.
    """

    raw = _get_optional_str_env(name)
    if raw is None:
        return {}
    mapping: dict[str, str] = {}
    for token in raw.split(","):
        key, sep, value = token.partition("=")
        if sep and key.strip() and value.strip():
            mapping[key.strip().lower()] = value.strip()
    return mapping


@dataclass(frozen=True)
class QueueSettings:
    """
    Worker concurrency per named queue and the retry backoff curve.
    """

    scraper_concurrency: int = 2
    discovery_concurrency: int = 2
    research_concurrency: int = 3
    enrichment_concurrency: int = 5
    translations_concurrency: int = 3
    retry_backoff_initial_seconds: float = 30.0
    retry_backoff_multiplier: float = 2.0
    retry_backoff_max_seconds: float = 900.0

    def concurrency_for(self, queue_name: str) -> int:
        return max(1, int(getattr(self, f"{queue_name}_concurrency", 1)))

    def backoff_seconds(self, attempt: int) -> float:
        delay = self.retry_backoff_initial_seconds * (
            self.retry_backoff_multiplier ** max(0, attempt - 1)
        )
        return min(delay, self.retry_backoff_max_seconds)


@dataclass(frozen=True)
class CollaboratorSettings:
    """
    ``module.path:ClassName`` import paths for external integrations.
    """

    places_clients: dict[str, str] = field(default_factory=dict)
    extractor_class: str | None = None
    web_search_class: str | None = None
    enricher_class: str | None = None
    translator_class: str | None = None


@dataclass(frozen=True)
class PipelineSettings:
    """
    Runtime settings for the discovery and research pipeline.
    """

    research_dir: str
    discovery_dir: str
    queues: QueueSettings = field(default_factory=QueueSettings)
    collaborators: CollaboratorSettings = field(default_factory=CollaboratorSettings)
    scheduler_enabled: bool = True
    resume_grace_seconds: float = 5.0
    resume_processing_delay_seconds: float = 30.0
    enrich_researched_interval_minutes: int = 5
    enrich_pending_interval_minutes: int = 10
    pending_without_website_grace_minutes: int = 60
    research_redrive_interval_minutes: int = 15
    stalled_research_grace_minutes: int = 60
    trigger_batch_size: int = 50
    discovery_batch_size: int = 5
    reference_cache_ttl_seconds: float = 300.0
    translation_locales: tuple[str, ...] = ("en", "es")


@lru_cache(maxsize=1)
def get_pipeline_settings() -> PipelineSettings:
    """
    Return cached pipeline settings from environment variables.
    """

    locales_raw = _get_str_env("PIPELINE_TRANSLATION_LOCALES", "en,es")
    locales = tuple(
        locale.strip().lower() for locale in locales_raw.split(",") if locale.strip()
    )

    return PipelineSettings(
        research_dir=str(resolve_project_path(_get_str_env("PIPELINE_RESEARCH_DIR", "data/research"))),
        discovery_dir=str(
            resolve_project_path(_get_str_env("PIPELINE_DISCOVERY_DIR", "data/discovery"))
        ),
        queues=QueueSettings(
            scraper_concurrency=max(1, _get_int_env("PIPELINE_QUEUE_SCRAPER_CONCURRENCY", 2)),
            discovery_concurrency=max(1, _get_int_env("PIPELINE_QUEUE_DISCOVERY_CONCURRENCY", 2)),
            research_concurrency=max(1, _get_int_env("PIPELINE_QUEUE_RESEARCH_CONCURRENCY", 3)),
            enrichment_concurrency=max(1, _get_int_env("PIPELINE_QUEUE_ENRICHMENT_CONCURRENCY", 5)),
            translations_concurrency=max(
                1,
                _get_int_env("PIPELINE_QUEUE_TRANSLATIONS_CONCURRENCY", 3),
            ),
            retry_backoff_initial_seconds=max(
                0.0,
                _get_float_env("PIPELINE_RETRY_BACKOFF_INITIAL_SECONDS", 30.0),
            ),
            retry_backoff_multiplier=max(1.0, _get_float_env("PIPELINE_RETRY_BACKOFF_MULTIPLIER", 2.0)),
            retry_backoff_max_seconds=max(
                0.0,
                _get_float_env("PIPELINE_RETRY_BACKOFF_MAX_SECONDS", 900.0),
            ),
        ),
        collaborators=CollaboratorSettings(
            places_clients=_get_mapping_env("PIPELINE_PLACES_CLIENTS"),
            extractor_class=_get_optional_str_env("PIPELINE_EXTRACTOR_CLASS"),
            web_search_class=_get_optional_str_env("PIPELINE_WEB_SEARCH_CLASS"),
            enricher_class=_get_optional_str_env("PIPELINE_ENRICHER_CLASS"),
            translator_class=_get_optional_str_env("PIPELINE_TRANSLATOR_CLASS"),
        ),
        scheduler_enabled=_get_bool_env("PIPELINE_SCHEDULER_ENABLED", True),
        resume_grace_seconds=max(0.0, _get_float_env("PIPELINE_RESUME_GRACE_SECONDS", 5.0)),
        resume_processing_delay_seconds=max(
            0.0,
            _get_float_env("PIPELINE_RESUME_PROCESSING_DELAY_SECONDS", 30.0),
        ),
        enrich_researched_interval_minutes=max(
            1,
            _get_int_env("PIPELINE_ENRICH_RESEARCHED_INTERVAL_MINUTES", 5),
        ),
        enrich_pending_interval_minutes=max(
            1,
            _get_int_env("PIPELINE_ENRICH_PENDING_INTERVAL_MINUTES", 10),
        ),
        pending_without_website_grace_minutes=max(
            0,
            _get_int_env("PIPELINE_PENDING_WITHOUT_WEBSITE_GRACE_MINUTES", 60),
        ),
        research_redrive_interval_minutes=max(
            1,
            _get_int_env("PIPELINE_RESEARCH_REDRIVE_INTERVAL_MINUTES", 15),
        ),
        stalled_research_grace_minutes=max(
            0,
            _get_int_env("PIPELINE_STALLED_RESEARCH_GRACE_MINUTES", 60),
        ),
        trigger_batch_size=max(1, _get_int_env("PIPELINE_TRIGGER_BATCH_SIZE", 50)),
        discovery_batch_size=max(1, _get_int_env("PIPELINE_DISCOVERY_BATCH_SIZE", 5)),
        reference_cache_ttl_seconds=max(
            0.0,
            _get_float_env("PIPELINE_REFERENCE_CACHE_TTL_SECONDS", 300.0),
        ),
        translation_locales=locales or ("en", "es"),
    )
