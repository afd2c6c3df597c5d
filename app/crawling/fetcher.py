"""
Single-request HTML fetcher with failure classification.

Retries are deliberately absent: transient failures bubble up as
``FetchError`` and the job queue decides whether to run the task again.
"""

from __future__ import annotations

import logging

import requests

from app.crawling.config.models import CrawlerSettings
from app.crawling.errors import FetchError, FetchErrorKind
from app.crawling.types import FetchedPage

logger = logging.getLogger(__name__)

HTML_CONTENT_TYPES = frozenset({"text/html", "application/xhtml+xml"})


class PageFetcher:
    """
    Issues one polite, timeout-bounded GET per call.
    """

    def __init__(
        self,
        *,
        settings: CrawlerSettings,
        session: requests.Session | None = None,
    ) -> None:
        self._settings = settings
        self._session = session or requests.Session()
        self._session.max_redirects = settings.max_redirects
        self.request_headers = {
            "User-Agent": settings.user_agent,
            "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.5",
            "Accept-Language": "en;q=0.9,es;q=0.8,gl;q=0.7,*;q=0.5",
        }

    def fetch(self, url: str) -> FetchedPage:
        try:
            response = self._session.get(
                url,
                headers=self.request_headers,
                timeout=self._settings.timeout_seconds,
                allow_redirects=True,
            )
        except requests.TooManyRedirects as exc:
            raise FetchError(
                FetchErrorKind.TRANSPORT_ERROR,
                url,
                f"More than {self._settings.max_redirects} redirects: {exc}",
            ) from exc
        except requests.Timeout as exc:
            raise FetchError(
                FetchErrorKind.TRANSPORT_ERROR,
                url,
                f"Timed out after {self._settings.timeout_seconds}s: {exc}",
            ) from exc
        except requests.RequestException as exc:
            raise FetchError(FetchErrorKind.TRANSPORT_ERROR, url, str(exc)) from exc

        if response.status_code != 200:
            raise FetchError(
                FetchErrorKind.HTTP_ERROR,
                url,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        raw_content_type = response.headers.get("Content-Type", "") or ""
        mime_type = raw_content_type.split(";", 1)[0].strip().lower()
        if mime_type and mime_type not in HTML_CONTENT_TYPES:
            raise FetchError(
                FetchErrorKind.NOT_HTML,
                url,
                f"Unsupported content type {mime_type!r}",
                status_code=response.status_code,
            )

        try:
            html = response.text
        except (UnicodeDecodeError, LookupError) as exc:
            raise FetchError(
                FetchErrorKind.NOT_HTML,
                url,
                f"Undecodable body: {exc}",
                status_code=response.status_code,
            ) from exc

        logger.debug("Fetched url=%s final_url=%s bytes=%d", url, response.url, len(html))
        if not html or not html.strip():
            raise FetchError(
                FetchErrorKind.NOT_HTML,
                url,
                "Empty response body",
                status_code=response.status_code,
            )

        return FetchedPage(
            url=url,
            final_url=str(response.url or url),
            status_code=response.status_code,
            content_type=mime_type or "text/html",
            html=html,
        )
