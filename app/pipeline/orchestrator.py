"""
app/pipeline/orchestrator.py

Stage chaining for the discovery and research pipeline.

Per business the chain is strictly forward::

    discovery (search or crawl) -> website_crawl -> web_search -> enrich -> translate

``next_stages()`` is the only place that knows the chain. The orchestrator
runs a stage through its worker, advances the business status the stage
owns, then enqueues whatever comes next. Status is advanced only after the
worker returned, so a stage that raises leaves the business untouched and
its retry starts from the same state.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Any, Protocol

from sqlalchemy.orm import Session

from app import failure_codes
from app.logging_utils import log_event
from app.pipeline.queue import JobQueue
from app.pipeline.stages import (
    BUSINESS_STAGES,
    CRAWL_STAGES,
    Stage,
    StageOutcome,
    StageResult,
    spec_for,
)
from db.models.discovery_crawl import DiscoveryCrawlStatus
from db.repositories.business_repository import BusinessRepository
from db.repositories.discovery_crawl_repository import DiscoveryCrawlRepository
from db.session import session_scope

logger = logging.getLogger(__name__)


class StageRunner(Protocol):
    def run(self, stage: Stage, args: dict[str, Any]) -> StageResult: ...


_CHAIN: dict[Stage, dict[StageOutcome, tuple[Stage, ...]]] = {
    Stage.DISCOVERY_SEARCH: {StageOutcome.SUCCEEDED: (Stage.WEBSITE_CRAWL,)},
    Stage.DISCOVERY_CRAWL: {StageOutcome.SUCCEEDED: (Stage.DISCOVERY_PROCESS,)},
    Stage.DISCOVERY_PROCESS: {StageOutcome.SUCCEEDED: (Stage.WEBSITE_CRAWL,)},
    Stage.WEBSITE_CRAWL: {
        StageOutcome.SUCCEEDED: (Stage.WEB_SEARCH,),
        StageOutcome.SKIPPED: (Stage.WEB_SEARCH,),
    },
    Stage.WEB_SEARCH: {
        StageOutcome.SUCCEEDED: (Stage.ENRICH,),
        StageOutcome.SKIPPED: (Stage.ENRICH,),
    },
    Stage.ENRICH: {StageOutcome.SUCCEEDED: (Stage.TRANSLATE,)},
    Stage.TRANSLATE: {},
}


def next_stages(stage: Stage | str, outcome: StageOutcome | str) -> tuple[Stage, ...]:
    """
    Stages to enqueue after ``stage`` finished with ``outcome``.
    """

    return _CHAIN[Stage(stage)].get(StageOutcome(outcome), ())


def _default_next_args(args: dict[str, Any]) -> dict[str, Any]:
    if "business_id" in args:
        return {"business_id": args["business_id"]}
    if "crawl_id" in args:
        return {"crawl_id": args["crawl_id"]}
    return dict(args)


class PipelineOrchestrator:
    def __init__(
        self,
        *,
        queue: JobQueue,
        session_factory: Callable[[], Session],
        runner: StageRunner | None = None,
    ) -> None:
        self._queue = queue
        self._session_factory = session_factory
        self._runner = runner
        queue.bind(self.run_stage, self.handle_exhausted)

    @property
    def queue(self) -> JobQueue:
        return self._queue

    def attach_runner(self, runner: StageRunner) -> None:
        self._runner = runner

    def enqueue(self, stage: Stage | str, args: dict[str, Any], *, delay_seconds: float = 0.0) -> bool:
        return self._queue.enqueue(stage, args, delay_seconds=delay_seconds)

    def run_stage(self, stage: Stage, args: dict[str, Any]) -> StageResult:
        """
        Queue entry point: run one stage, then chain.
        """

        if self._runner is None:
            raise RuntimeError("No stage runner attached to the orchestrator.")
        result = self._runner.run(stage, args)
        self.complete(stage, args, result)
        return result

    def complete(self, stage: Stage | str, args: dict[str, Any], result: StageResult) -> list[Stage]:
        """
        Apply a finished stage: advance business status, enqueue next stages.
        Returns the stages that were actually enqueued.
        """

        stage = Stage(stage)
        advanced = self._advance_business(stage, args, result.outcome)

        enqueued: list[Stage] = []
        following = next_stages(stage, result.outcome)
        if following:
            payloads = result.next_args if result.next_args is not None else [_default_next_args(args)]
            for next_stage in following:
                for payload in payloads:
                    if self._queue.enqueue(next_stage, payload):
                        enqueued.append(next_stage)

        log_event(
            logger,
            logging.INFO,
            "stage_completed",
            stage=stage.value,
            outcome=result.outcome.value,
            reason=result.reason,
            args=args,
            status_advanced=advanced,
            next_stages=[item.value for item in following],
            enqueued=len(enqueued),
        )
        return enqueued

    def handle_exhausted(
        self,
        stage: Stage | str,
        args: dict[str, Any],
        error: BaseException | str,
        attempts: int,
    ) -> None:
        """
        Record a permanently failed stage on the entity it owns.
        """

        stage = Stage(stage)
        message = failure_codes.exhausted_message(stage.value, attempts, error)
        action = "logged"

        if stage in CRAWL_STAGES and args.get("crawl_id"):
            action = self._fail_crawl(str(args["crawl_id"]), message)
        elif stage in BUSINESS_STAGES and stage is not Stage.TRANSLATE and args.get("business_id"):
            action = self._fail_business(str(args["business_id"]))

        log_event(
            logger,
            logging.ERROR,
            "stage_exhausted",
            stage=stage.value,
            args=args,
            attempts=attempts,
            action=action,
            error=str(error),
        )

    def _fail_business(self, raw_id: str) -> str:
        try:
            business_id = uuid.UUID(raw_id)
        except ValueError:
            return "invalid_business_id"
        with session_scope(self._session_factory) as session:
            changed = BusinessRepository(session).mark_failed(business_id)
        return "business_failed" if changed else "business_unchanged"

    def _fail_crawl(self, crawl_id: str, message: str) -> str:
        with session_scope(self._session_factory) as session:
            repository = DiscoveryCrawlRepository(session)
            crawl = repository.get_by_crawl_id(crawl_id)
            if crawl is None:
                return "crawl_missing"
            if crawl.is_terminal:
                return "crawl_already_terminal"
            if crawl.status == DiscoveryCrawlStatus.CRAWLED:
                # crawled has no direct edge to failed.
                repository.mark_processing(crawl_id)
            repository.mark_failed(crawl_id, message)
        return "crawl_failed"

    def _advance_business(self, stage: Stage, args: dict[str, Any], outcome: StageOutcome) -> bool:
        spec = spec_for(stage)
        if spec.target_status is None or not args.get("business_id"):
            return False
        if outcome is StageOutcome.HALTED:
            return False
        if outcome is StageOutcome.SKIPPED and not spec.advances_when_skipped:
            return False

        with session_scope(self._session_factory) as session:
            return BusinessRepository(session).advance_status(
                uuid.UUID(str(args["business_id"])),
                spec.target_status,
            )
