"""
Repository-layer exceptions for the discovery pipeline.

Exceptions carry a ``retryable`` flag read by the job queue: lifecycle
defects must fail loudly once rather than be retried into the same error.
"""

from __future__ import annotations


class RepositoryError(Exception):
    """Base exception for repository failures."""

    retryable = True


class CrawlNotFoundError(RepositoryError):
    """Raised when a crawl_id has no lifecycle record."""

    retryable = False

    def __init__(self, crawl_id: str) -> None:
        super().__init__(f"Discovery crawl not found: {crawl_id}")
        self.crawl_id = crawl_id


class InvalidCrawlTransitionError(RepositoryError):
    """Raised when a lifecycle transition is not an allowed edge."""

    retryable = False

    def __init__(self, crawl_id: str, current: str, target: str) -> None:
        super().__init__(
            f"Invalid discovery crawl transition crawl_id={crawl_id}: {current} -> {target}"
        )
        self.crawl_id = crawl_id
        self.current = current
        self.target = target


class BusinessNotFoundError(RepositoryError):
    """Raised when a business id does not exist."""

    retryable = False

    def __init__(self, business_id: object) -> None:
        super().__init__(f"Business not found: {business_id}")
        self.business_id = business_id


class InvalidStatusTransitionError(RepositoryError):
    """Raised when a business status change would skip or leave the forward chain."""

    retryable = False

    def __init__(self, business_id: object, current: str, target: str) -> None:
        super().__init__(
            f"Invalid business status transition business_id={business_id}: {current} -> {target}"
        )
        self.business_id = business_id
        self.current = current
        self.target = target
