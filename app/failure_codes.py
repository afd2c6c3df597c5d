"""Shared failure codes and lifecycle error messages for pipeline error handling."""

# Stage skip reasons.
NO_WEBSITE = "no_website"
INVALID_WEBSITE = "invalid_website"
NO_COLLABORATOR = "no_collaborator"

# Site crawl failure codes (SiteCrawlError.code).
NO_SEED_CONTENT = "no_seed_content"
TRANSPORT = "transport"
HTTP = "http"

# Human-readable DiscoveryCrawl.error values.
INTERRUPTED_WITH_NO_PAGES = "interrupted with no pages"
CRAWL_DIRECTORY_NOT_FOUND = "crawl directory not found"
NO_PAGES_CRAWLED = "no pages crawled"
EXHAUSTED_PREFIX = "exhausted after"

RETRYABLE_CRAWL_CODES = frozenset({TRANSPORT, HTTP})


def exhausted_message(stage: str, attempts: int, error: BaseException | str) -> str:
    return f"{stage} {EXHAUSTED_PREFIX} {attempts} attempt(s): {error}"
