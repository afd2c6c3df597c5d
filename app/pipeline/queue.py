"""
app/pipeline/queue.py

Named work queues for pipeline stages.

``SchedulerJobQueue`` runs stages in-process on an APScheduler
``BackgroundScheduler`` with one thread-pool executor per queue name, so
each queue has its own concurrency. ``InMemoryJobQueue`` keeps the same
deduplication and retry rules but runs jobs synchronously on ``drain()``;
CLI scripts and tests use it.

Deduplication
-------------
A job is identified by its stage plus its JSON-canonical arguments. While
an identical job is pending or running, and for the stage's uniqueness
period after it was enqueued, further enqueues are dropped.

Retries
-------
A failing stage is retried with exponential backoff until the stage's
``max_attempts`` is used up. Exceptions that carry ``retryable = False``
are not retried. Exhaustion is reported to the bound ``on_exhausted``
callback with the last error.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.base import BaseScheduler

from app.config import QueueSettings
from app.logging_utils import log_event
from app.pipeline.stages import QUEUE_NAMES, Stage, spec_for

logger = logging.getLogger(__name__)

Dispatch = Callable[[Stage, dict[str, Any]], None]
ExhaustedHandler = Callable[[Stage, dict[str, Any], BaseException, int], None]


class JobQueue(Protocol):
    def enqueue(
        self,
        stage: Stage | str,
        args: dict[str, Any],
        *,
        delay_seconds: float = 0.0,
    ) -> bool: ...

    def bind(self, dispatch: Dispatch, on_exhausted: ExhaustedHandler) -> None: ...


def canonical_args(args: dict[str, Any]) -> dict[str, Any]:
    """JSON round-trip so ids and dates compare and travel as strings."""
    return json.loads(json.dumps(args, default=str, sort_keys=True))


def job_key(stage: Stage | str, args: dict[str, Any]) -> str:
    return f"{Stage(stage).value}:{json.dumps(canonical_args(args), sort_keys=True)}"


@dataclass
class QueuedJob:
    stage: Stage
    args: dict[str, Any]
    key: str
    attempt: int = 1


@dataclass(frozen=True)
class EnqueuedRecord:
    stage: Stage
    args: dict[str, Any]
    delay_seconds: float


class _QueueBase:
    def __init__(
        self,
        *,
        queue_settings: QueueSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.queue_settings = queue_settings or QueueSettings()
        self._clock = clock
        self._lock = threading.Lock()
        self._active: set[str] = set()
        self._unique_until: dict[str, float] = {}
        self._dispatch: Dispatch | None = None
        self._on_exhausted: ExhaustedHandler | None = None

    def bind(self, dispatch: Dispatch, on_exhausted: ExhaustedHandler) -> None:
        self._dispatch = dispatch
        self._on_exhausted = on_exhausted

    def enqueue(
        self,
        stage: Stage | str,
        args: dict[str, Any],
        *,
        delay_seconds: float = 0.0,
    ) -> bool:
        stage = Stage(stage)
        spec = spec_for(stage)
        payload = canonical_args(args)
        key = job_key(stage, payload)
        if not self._claim(key, spec.unique_seconds):
            log_event(logger, logging.DEBUG, "stage_deduplicated", stage=stage.value, args=payload)
            return False

        delay = max(0.0, float(delay_seconds))
        self._schedule(QueuedJob(stage=stage, args=payload, key=key), delay)
        log_event(
            logger,
            logging.INFO,
            "stage_enqueued",
            stage=stage.value,
            queue=spec.queue,
            args=payload,
            delay_seconds=delay,
        )
        return True

    def _schedule(self, job: QueuedJob, delay_seconds: float) -> None:
        raise NotImplementedError

    def _claim(self, key: str, unique_seconds: float) -> bool:
        now = self._clock()
        with self._lock:
            expired = [held for held, until in self._unique_until.items() if until <= now]
            for held in expired:
                del self._unique_until[held]
            if key in self._active:
                return False
            if self._unique_until.get(key, float("-inf")) > now:
                return False
            self._active.add(key)
            if unique_seconds > 0:
                self._unique_until[key] = now + unique_seconds
            else:
                self._unique_until.pop(key, None)
            return True

    def _release(self, key: str) -> None:
        with self._lock:
            self._active.discard(key)

    def _execute(self, job: QueuedJob) -> float | None:
        """
        Run one attempt. Returns the backoff delay when the job must be
        retried, otherwise None.
        """

        if self._dispatch is None:
            raise RuntimeError("Job queue is not bound to a dispatcher.")

        spec = spec_for(job.stage)
        started = time.monotonic()
        try:
            self._dispatch(job.stage, dict(job.args))
        except Exception as exc:  # noqa: BLE001
            retryable = bool(getattr(exc, "retryable", True))
            if retryable and job.attempt < spec.max_attempts:
                delay = self.queue_settings.backoff_seconds(job.attempt)
                log_event(
                    logger,
                    logging.WARNING,
                    "stage_retry_scheduled",
                    stage=job.stage.value,
                    args=job.args,
                    attempt=job.attempt,
                    max_attempts=spec.max_attempts,
                    delay_seconds=delay,
                    error=str(exc),
                )
                job.attempt += 1
                return delay

            self._release(job.key)
            log_event(
                logger,
                logging.ERROR,
                "stage_failed",
                stage=job.stage.value,
                args=job.args,
                attempt=job.attempt,
                retryable=retryable,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            self._report_exhausted(job, exc)
            return None

        self._release(job.key)
        log_event(
            logger,
            logging.DEBUG,
            "stage_finished",
            stage=job.stage.value,
            args=job.args,
            attempt=job.attempt,
            duration_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return None

    def _report_exhausted(self, job: QueuedJob, exc: BaseException) -> None:
        if self._on_exhausted is None:
            return
        try:
            self._on_exhausted(job.stage, dict(job.args), exc, job.attempt)
        except Exception:  # noqa: BLE001
            logger.exception(
                "Exhaustion handler failed stage=%s args=%s",
                job.stage.value,
                job.args,
            )


class SchedulerJobQueue(_QueueBase):
    """
    Runs stages on the APScheduler executors named after their queue.
    """

    def __init__(
        self,
        scheduler: BaseScheduler,
        *,
        queue_settings: QueueSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(queue_settings=queue_settings, clock=clock)
        self._scheduler = scheduler
        for name in QUEUE_NAMES:
            scheduler.add_executor(
                ThreadPoolExecutor(max_workers=self.queue_settings.concurrency_for(name)),
                alias=name,
            )

    def _schedule(self, job: QueuedJob, delay_seconds: float) -> None:
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        self._scheduler.add_job(
            self._run,
            trigger="date",
            run_date=run_date,
            args=[job],
            executor=spec_for(job.stage).queue,
            name=f"{job.stage.value} attempt {job.attempt}",
            misfire_grace_time=None,
        )

    def _run(self, job: QueuedJob) -> None:
        delay = self._execute(job)
        if delay is not None:
            self._schedule(job, delay)


class InMemoryJobQueue(_QueueBase):
    """
    Synchronous queue: jobs run in FIFO order when ``drain()`` is called.
    Delays and backoff are recorded but not slept.
    """

    def __init__(
        self,
        *,
        queue_settings: QueueSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(queue_settings=queue_settings, clock=clock)
        self.enqueued: list[EnqueuedRecord] = []
        self._pending: deque[QueuedJob] = deque()

    def _schedule(self, job: QueuedJob, delay_seconds: float) -> None:
        if job.attempt == 1:
            self.enqueued.append(
                EnqueuedRecord(stage=job.stage, args=dict(job.args), delay_seconds=delay_seconds)
            )
        self._pending.append(job)

    def pending(self) -> list[tuple[Stage, dict[str, Any]]]:
        return [(job.stage, dict(job.args)) for job in self._pending]

    def drain(self, *, max_jobs: int = 10_000) -> int:
        """Run pending jobs, including any they enqueue. Returns jobs run."""
        ran = 0
        while self._pending and ran < max_jobs:
            job = self._pending.popleft()
            ran += 1
            delay = self._execute(job)
            if delay is not None:
                self._pending.append(job)
        return ran
