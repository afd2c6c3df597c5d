"""
Typed failures raised by the fetch / parse / crawl layers.
"""

from __future__ import annotations

from enum import Enum

PERMANENT_HTTP_STATUSES = frozenset({403, 404, 410, 451})


class FetchErrorKind(str, Enum):
    TRANSPORT_ERROR = "transport_error"
    HTTP_ERROR = "http_error"
    NOT_HTML = "not_html"


class FetchError(Exception):
    """
    One failed GET. ``is_permanent`` tells callers whether retrying the
    same URL later could possibly help.
    """

    def __init__(
        self,
        kind: FetchErrorKind,
        url: str,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.url = url
        self.status_code = status_code

    @property
    def is_permanent(self) -> bool:
        if self.kind is FetchErrorKind.NOT_HTML:
            return True
        if self.kind is FetchErrorKind.HTTP_ERROR:
            return self.status_code in PERMANENT_HTTP_STATUSES
        return False

    def describe(self) -> str:
        if self.kind is FetchErrorKind.HTTP_ERROR:
            return f"http_error({self.status_code})"
        return self.kind.value


class PageParseError(Exception):
    """Raised when fetched markup cannot be turned into a page record."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"{message} url={url}")
        self.url = url


class SiteCrawlError(Exception):
    """
    Whole-crawl failure. Only raised when the seed page gives nothing to
    crawl from; per-page problems never surface here.
    """

    def __init__(self, code: str, message: str, *, retryable: bool) -> None:
        super().__init__(message)
        self.code = code
        self.retryable = retryable
