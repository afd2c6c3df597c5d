"""
On-disk crawl artifacts.

Research layout (one directory per business)::

    <research_dir>/<business_id>/website.json
    <research_dir>/<business_id>/search.json

Discovery layout (one directory per crawl run)::

    <discovery_dir>/<crawl_id>/metadata.json
    <discovery_dir>/<crawl_id>/page_0001.json
    ...

The ``page_*`` files double as durable crawl progress: the resume
supervisor counts them to decide what an interrupted crawl should do next.
"""

from __future__ import annotations

import json
import re
import uuid
from pathlib import Path
from typing import Any

WEBSITE_SUMMARY_FILE = "website.json"
SEARCH_RESULTS_FILE = "search.json"
CRAWL_METADATA_FILE = "metadata.json"
PAGE_FILE_PREFIX = "page_"

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class ArtifactStorageError(Exception):
    """Raised when an artifact cannot be written or read back."""


def page_file_name(index: int) -> str:
    return f"{PAGE_FILE_PREFIX}{index:04d}.json"


class ArtifactStore:
    """
    Filesystem store for crawl summaries and discovery page evidence.
    """

    def __init__(self, *, research_dir: str | Path, discovery_dir: str | Path) -> None:
        self.research_dir = Path(research_dir)
        self.discovery_dir = Path(discovery_dir)

    # ------------------------------------------------------------------
    # Per-business research artifacts
    # ------------------------------------------------------------------

    def business_dir(self, business_id: uuid.UUID | str) -> Path:
        return self.research_dir / self._safe_id(str(business_id))

    def write_website_summary(self, business_id: uuid.UUID | str, summary: dict[str, Any]) -> Path:
        return self._write_json(self.business_dir(business_id) / WEBSITE_SUMMARY_FILE, summary)

    def read_website_summary(self, business_id: uuid.UUID | str) -> dict[str, Any] | None:
        return self._read_json(self.business_dir(business_id) / WEBSITE_SUMMARY_FILE)

    def write_search_results(self, business_id: uuid.UUID | str, payload: dict[str, Any]) -> Path:
        return self._write_json(self.business_dir(business_id) / SEARCH_RESULTS_FILE, payload)

    def read_search_results(self, business_id: uuid.UUID | str) -> dict[str, Any] | None:
        return self._read_json(self.business_dir(business_id) / SEARCH_RESULTS_FILE)

    # ------------------------------------------------------------------
    # Per-crawl discovery artifacts
    # ------------------------------------------------------------------

    def crawl_dir(self, crawl_id: str) -> Path:
        return self.discovery_dir / self._safe_id(crawl_id)

    def crawl_dir_exists(self, crawl_id: str) -> bool:
        return self.crawl_dir(crawl_id).is_dir()

    def write_crawl_metadata(self, crawl_id: str, metadata: dict[str, Any]) -> Path:
        return self._write_json(self.crawl_dir(crawl_id) / CRAWL_METADATA_FILE, metadata)

    def read_crawl_metadata(self, crawl_id: str) -> dict[str, Any] | None:
        return self._read_json(self.crawl_dir(crawl_id) / CRAWL_METADATA_FILE)

    def write_discovery_page(self, crawl_id: str, index: int, payload: dict[str, Any]) -> Path:
        if index < 1:
            raise ValueError("Discovery page numbering starts at 1.")
        return self._write_json(self.crawl_dir(crawl_id) / page_file_name(index), payload)

    def page_paths(self, crawl_id: str) -> list[Path]:
        directory = self.crawl_dir(crawl_id)
        if not directory.is_dir():
            return []
        return sorted(
            path
            for path in directory.iterdir()
            if path.is_file() and path.name.startswith(PAGE_FILE_PREFIX) and path.suffix == ".json"
        )

    def count_pages(self, crawl_id: str) -> int:
        return len(self.page_paths(crawl_id))

    def read_pages(self, crawl_id: str) -> list[dict[str, Any]]:
        pages: list[dict[str, Any]] = []
        for path in self.page_paths(crawl_id):
            payload = self._read_json(path)
            if isinstance(payload, dict):
                pages.append(payload)
        return pages

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _safe_id(value: str) -> str:
        if not _SAFE_ID.match(value):
            raise ValueError(f"Unsafe artifact id: {value!r}")
        return value

    @staticmethod
    def _write_json(path: Path, payload: dict[str, Any]) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(f"{path.suffix}.tmp")
        try:
            with tmp_path.open("w", encoding="utf-8") as handle:
                json.dump(payload, handle, ensure_ascii=False, indent=2, default=str)
            tmp_path.replace(path)
        except OSError as exc:
            raise ArtifactStorageError(f"Failed to write artifact {path}: {exc}") from exc
        finally:
            if tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError:
                    pass
        return path

    @staticmethod
    def _read_json(path: Path) -> dict[str, Any] | None:
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ArtifactStorageError(f"Failed to read artifact {path}: {exc}") from exc
        return payload if isinstance(payload, dict) else None
