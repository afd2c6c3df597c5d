"""
Environment + JSON config loader for site crawling.
"""

from __future__ import annotations

import json
import os
from collections.abc import Sequence
from functools import lru_cache
from pathlib import Path

from db.config import load_env_files, resolve_project_path

from app.crawling.config.models import CrawlerSettings, PriorityEntry, PriorityTable

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; DirectoryResearchBot/1.0)"


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    stripped = raw.strip()
    return stripped if stripped else default


def _get_csv_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    values = tuple(item.strip().lower() for item in raw.split(",") if item.strip())
    return values or default


@lru_cache(maxsize=1)
def get_crawler_settings() -> CrawlerSettings:
    """
    Return cached crawler settings from environment variables.
    """

    load_env_files()
    table_path = _get_str_env(
        "CRAWLER_PRIORITY_TABLE_PATH",
        "app/crawling/config/priority_table.json",
    )
    return CrawlerSettings(
        user_agent=_get_str_env("CRAWLER_USER_AGENT", DEFAULT_USER_AGENT),
        timeout_seconds=max(1.0, _get_float_env("CRAWLER_TIMEOUT_SECONDS", 15.0)),
        max_redirects=max(0, _get_int_env("CRAWLER_MAX_REDIRECTS", 5)),
        politeness_delay_seconds=max(
            0.0,
            _get_float_env("CRAWLER_POLITENESS_DELAY_SECONDS", 0.5),
        ),
        website_max_pages=max(1, _get_int_env("CRAWLER_WEBSITE_MAX_PAGES", 20)),
        discovery_max_pages=max(1, _get_int_env("CRAWLER_DISCOVERY_MAX_PAGES", 200)),
        discovery_min_content_length=max(
            0,
            _get_int_env("CRAWLER_DISCOVERY_MIN_CONTENT_LENGTH", 50),
        ),
        summary_content_limit=max(100, _get_int_env("CRAWLER_SUMMARY_CONTENT_LIMIT", 10_000)),
        discovery_content_limit=max(
            100,
            _get_int_env("CRAWLER_DISCOVERY_CONTENT_LIMIT", 50_000),
        ),
        priority_table_path=str(resolve_project_path(table_path)),
        priority_locales=_get_csv_env("CRAWLER_PRIORITY_LOCALES", ("en", "es", "gl", "pt")),
    )


@lru_cache(maxsize=8)
def get_priority_table(path: str, locales: tuple[str, ...]) -> PriorityTable:
    """
    Load a priority table once per (path, locales) combination.
    """

    return load_priority_table(path=path, locales=locales)


def load_priority_table(*, path: str | Path, locales: Sequence[str]) -> PriorityTable:
    """
    Load locale sections from a versioned priority table file.

    Sections are merged in the order of ``locales``; a substring that was
    already contributed by an earlier section keeps its first weight.
    """

    resolved = resolve_project_path(str(path))
    if not resolved.exists():
        raise FileNotFoundError(f"Priority table file not found: {resolved}")

    raw_data = json.loads(resolved.read_text(encoding="utf-8"))
    if not isinstance(raw_data, dict):
        raise ValueError("Invalid priority table: top level must be an object.")

    sections = raw_data.get("locales", {})
    if not isinstance(sections, dict):
        raise ValueError("Invalid priority table: 'locales' must be an object.")

    entries: list[PriorityEntry] = []
    seen: set[str] = set()
    for locale in locales:
        section = sections.get(locale)
        if section is None:
            continue
        for substring, weight in _normalize_section(section):
            if substring in seen:
                continue
            seen.add(substring)
            entries.append(PriorityEntry(substring=substring, weight=weight, locale=locale))

    version = str(raw_data.get("version", "unversioned")).strip() or "unversioned"
    return PriorityTable(entries=tuple(entries), version=version)


def _normalize_section(section: object) -> list[tuple[str, int]]:
    if isinstance(section, dict):
        items: list[object] = [[key, value] for key, value in section.items()]
    elif isinstance(section, list):
        items = section
    else:
        raise ValueError("Invalid priority table section: expected a list of [substring, weight].")

    normalized: list[tuple[str, int]] = []
    for item in items:
        if not isinstance(item, (list, tuple)) or len(item) != 2:
            continue
        substring, weight = item
        if not isinstance(substring, str) or not substring.strip():
            continue
        parsed_weight = _optional_int(weight)
        if parsed_weight is None:
            continue
        normalized.append((substring.strip().lower(), parsed_weight))
    return normalized


def _optional_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
