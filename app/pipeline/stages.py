"""
app/pipeline/stages.py

Pipeline stage catalogue.

Each stage names the queue it runs on, how often it may be attempted, how
long an identical enqueue is collapsed into the pending one, and which
business status it advances to when it finishes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from db.models.business import BusinessStatus


class Stage(str, Enum):
    DISCOVERY_SEARCH = "discovery_search"
    DISCOVERY_CRAWL = "discovery_crawl"
    DISCOVERY_PROCESS = "discovery_process"
    WEBSITE_CRAWL = "website_crawl"
    WEB_SEARCH = "web_search"
    ENRICH = "enrich"
    TRANSLATE = "translate"


class StageOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    # Stage does not apply to this target (e.g. no website). Chain continues.
    SKIPPED = "skipped"
    # Stage finished without anything to hand on. Chain stops.
    HALTED = "halted"


@dataclass(frozen=True)
class StageSpec:
    queue: str
    max_attempts: int
    unique_seconds: float = 0.0
    target_status: str | None = None
    advances_when_skipped: bool = False


STAGE_SPECS: dict[Stage, StageSpec] = {
    Stage.DISCOVERY_SEARCH: StageSpec(queue="scraper", max_attempts=3, unique_seconds=600),
    # Crawling is expensive and resumable from disk; the supervisor picks it up.
    Stage.DISCOVERY_CRAWL: StageSpec(queue="discovery", max_attempts=1, unique_seconds=3600),
    Stage.DISCOVERY_PROCESS: StageSpec(queue="discovery", max_attempts=2, unique_seconds=600),
    Stage.WEBSITE_CRAWL: StageSpec(
        queue="research",
        max_attempts=3,
        unique_seconds=3600,
        target_status=BusinessStatus.RESEARCHING,
        advances_when_skipped=True,
    ),
    Stage.WEB_SEARCH: StageSpec(
        queue="research",
        max_attempts=3,
        unique_seconds=3600,
        target_status=BusinessStatus.RESEARCHED,
        advances_when_skipped=True,
    ),
    Stage.ENRICH: StageSpec(
        queue="enrichment",
        max_attempts=3,
        unique_seconds=600,
        target_status=BusinessStatus.ENRICHED,
    ),
    Stage.TRANSLATE: StageSpec(queue="translations", max_attempts=3, unique_seconds=600),
}

QUEUE_NAMES: tuple[str, ...] = ("scraper", "discovery", "research", "enrichment", "translations")

CRAWL_STAGES: frozenset[Stage] = frozenset({Stage.DISCOVERY_CRAWL, Stage.DISCOVERY_PROCESS})
BUSINESS_STAGES: frozenset[Stage] = frozenset(
    {Stage.WEBSITE_CRAWL, Stage.WEB_SEARCH, Stage.ENRICH, Stage.TRANSLATE}
)


def spec_for(stage: Stage | str) -> StageSpec:
    return STAGE_SPECS[Stage(stage)]


@dataclass
class StageResult:
    """
    What a worker reports back to the orchestrator.

    ``next_args`` overrides the arguments handed to the following stage; a
    list fans out into one enqueue per entry.
    """

    outcome: StageOutcome
    reason: str | None = None
    next_args: list[dict[str, Any]] | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def succeeded(cls, **details: Any) -> StageResult:
        return cls(outcome=StageOutcome.SUCCEEDED, details=details)

    @classmethod
    def skipped(cls, reason: str, **details: Any) -> StageResult:
        return cls(outcome=StageOutcome.SKIPPED, reason=reason, details=details)

    @classmethod
    def halted(cls, reason: str, **details: Any) -> StageResult:
        return cls(outcome=StageOutcome.HALTED, reason=reason, details=details)
