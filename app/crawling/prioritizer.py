"""
Link filtering, URL normalization and keyword-weighted prioritization.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable
from urllib.parse import parse_qsl, urlencode, urldefrag, urlsplit

from app.crawling.config.models import PriorityTable

SKIP_EXTENSIONS = (
    ".pdf",
    ".jpg",
    ".jpeg",
    ".png",
    ".gif",
    ".svg",
    ".webp",
    ".ico",
    ".css",
    ".js",
    ".xml",
    ".zip",
    ".mp3",
    ".mp4",
    ".doc",
    ".docx",
)

SKIP_PATH_PATTERNS = (
    "/wp-admin",
    "/wp-login",
    "/admin",
    "/login",
    "/cart",
    "/checkout",
    "/error",
    "/404",
    "/500",
    "/feed",
    "/rss",
)

# Query parameters that never change page content.
TRACKING_PARAMS = frozenset(
    {
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_term",
        "utm_content",
        "gclid",
        "fbclid",
        "msclkid",
        "mc_cid",
        "mc_eid",
    }
)


def host_key(host: str | None) -> str:
    lowered = (host or "").strip().lower().rstrip(".")
    return lowered[4:] if lowered.startswith("www.") else lowered


def _clean_query(query: str) -> str:
    if not query:
        return ""
    kept = [
        (key, value)
        for key, value in parse_qsl(query, keep_blank_values=True)
        if key.lower() not in TRACKING_PARAMS
    ]
    return urlencode(kept)


def dedup_key(url: str) -> str:
    """
    Key under which two URLs count as the same page: scheme, ``www.``,
    case, fragment, trailing slash and tracking parameters are ignored.
    """

    parts = urlsplit(url.strip())
    host = host_key(parts.hostname)
    if parts.port and parts.port not in (80, 443):
        host = f"{host}:{parts.port}"
    path = parts.path.rstrip("/")
    query = _clean_query(parts.query)
    key = f"{host}{path}"
    if query:
        key = f"{key}?{query}"
    return key.lower()


def fetchable_url(url: str) -> str:
    """URL as it should be requested: fragment removed, tracking params dropped."""
    without_fragment, _ = urldefrag(url.strip())
    parts = urlsplit(without_fragment)
    return parts._replace(query=_clean_query(parts.query)).geturl()


def is_crawlable(url: str, allowed_hosts: Collection[str]) -> bool:
    parts = urlsplit(url)
    if parts.scheme.lower() not in {"http", "https"}:
        return False
    if host_key(parts.hostname) not in allowed_hosts:
        return False

    path = parts.path.lower()
    if path.endswith(SKIP_EXTENSIONS):
        return False
    return not any(pattern in path for pattern in SKIP_PATH_PATTERNS)


class LinkPrioritizer:
    """
    Scores same-host candidates against a priority table and returns a
    capped frontier in visit order.
    """

    def __init__(self, table: PriorityTable) -> None:
        self.table = table

    def score(self, url: str) -> int:
        parts = urlsplit(url)
        target = parts.path
        if parts.query:
            target = f"{target}?{parts.query}"
        return self.table.score(target)

    def select(
        self,
        candidates: Iterable[str],
        *,
        allowed_hosts: Collection[str],
        seen: Collection[str],
        limit: int,
    ) -> list[str]:
        """
        Filter, dedupe (against ``seen`` and within the batch), rank by
        score descending with ties in discovery order, and cap to ``limit``.
        ``seen`` is not modified.
        """

        if limit <= 0:
            return []

        batch_keys: set[str] = set()
        scored: list[tuple[int, str]] = []
        for candidate in candidates:
            if not is_crawlable(candidate, allowed_hosts):
                continue
            key = dedup_key(candidate)
            if key in seen or key in batch_keys:
                continue
            batch_keys.add(key)
            url = fetchable_url(candidate)
            scored.append((self.score(url), url))

        ranked = sorted(scored, key=lambda item: item[0], reverse=True)
        return [url for _, url in ranked[:limit]]
