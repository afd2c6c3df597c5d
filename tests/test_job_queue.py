"""
tests/test_job_queue.py

Pytest unit tests for the in-memory job queue and its shared retry and
deduplication rules.

Coverage
--------
- Identical stage + args collapse while pending and within the unique window
- Expired unique windows are dropped from the key table
- Argument canonicalisation (key order, UUIDs as strings)
- Retries up to the stage's max_attempts, then the exhaustion callback
- Non-retryable exceptions skip retries
- Backoff curve
- A failing exhaustion handler does not break the queue
- Scheduler-backed queue registers one executor per queue name
"""

from __future__ import annotations

import uuid
from typing import Any

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from app.config import QueueSettings
from app.pipeline.queue import InMemoryJobQueue, SchedulerJobQueue, canonical_args, job_key
from app.pipeline.stages import QUEUE_NAMES, Stage, spec_for


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class Recorder:
    """Dispatch target that fails a configurable number of times."""

    def __init__(self, failures: int = 0, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or RuntimeError("temporary")
        self.calls: list[tuple[Stage, dict[str, Any]]] = []
        self.exhausted: list[tuple[Stage, dict[str, Any], BaseException, int]] = []

    def dispatch(self, stage: Stage, args: dict[str, Any]) -> None:
        self.calls.append((stage, args))
        if self.failures:
            self.failures -= 1
            raise self.error

    def on_exhausted(self, stage: Stage, args: dict[str, Any], exc: BaseException, attempts: int) -> None:
        self.exhausted.append((stage, args, exc, attempts))


class NonRetryable(Exception):
    retryable = False


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def queue(clock: FakeClock) -> InMemoryJobQueue:
    return InMemoryJobQueue(queue_settings=QueueSettings(retry_backoff_initial_seconds=0.0), clock=clock)


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


class TestJobKeys:
    def test_key_ignores_argument_order(self) -> None:
        assert job_key(Stage.ENRICH, {"a": 1, "b": 2}) == job_key("enrich", {"b": 2, "a": 1})

    def test_uuid_and_string_ids_share_a_key(self) -> None:
        business_id = uuid.uuid4()

        assert job_key(Stage.ENRICH, {"business_id": business_id}) == job_key(
            Stage.ENRICH,
            {"business_id": str(business_id)},
        )
        assert canonical_args({"business_id": business_id}) == {"business_id": str(business_id)}

    def test_stage_is_part_of_the_key(self) -> None:
        assert job_key(Stage.ENRICH, {"business_id": "x"}) != job_key(Stage.TRANSLATE, {"business_id": "x"})


# ---------------------------------------------------------------------------
# Deduplication
# ---------------------------------------------------------------------------


class TestDeduplication:
    def test_pending_duplicate_is_dropped(self, queue: InMemoryJobQueue) -> None:
        assert queue.enqueue(Stage.WEB_SEARCH, {"business_id": "b1"})
        assert not queue.enqueue(Stage.WEB_SEARCH, {"business_id": "b1"})
        assert queue.enqueue(Stage.WEB_SEARCH, {"business_id": "b2"})

        assert len(queue.pending()) == 2
        assert [record.args for record in queue.enqueued] == [{"business_id": "b1"}, {"business_id": "b2"}]

    def test_unique_window_outlives_the_job(self, queue: InMemoryJobQueue, clock: FakeClock) -> None:
        recorder = Recorder()
        queue.bind(recorder.dispatch, recorder.on_exhausted)
        queue.enqueue(Stage.ENRICH, {"business_id": "b1"})
        queue.drain()

        assert not queue.enqueue(Stage.ENRICH, {"business_id": "b1"})

        clock.now += spec_for(Stage.ENRICH).unique_seconds + 1
        assert queue.enqueue(Stage.ENRICH, {"business_id": "b1"})

    def test_expired_windows_are_forgotten(self, queue: InMemoryJobQueue, clock: FakeClock) -> None:
        recorder = Recorder()
        queue.bind(recorder.dispatch, recorder.on_exhausted)
        for index in range(5):
            queue.enqueue(Stage.ENRICH, {"business_id": f"b{index}"})
        queue.drain()
        assert len(queue._unique_until) == 5

        clock.now += spec_for(Stage.ENRICH).unique_seconds + 1
        queue.enqueue(Stage.ENRICH, {"business_id": "fresh"})

        assert list(queue._unique_until) == [job_key(Stage.ENRICH, {"business_id": "fresh"})]

    def test_delay_is_recorded(self, queue: InMemoryJobQueue) -> None:
        queue.enqueue(Stage.DISCOVERY_PROCESS, {"crawl_id": "c1"}, delay_seconds=30)

        assert queue.enqueued[0].delay_seconds == 30.0

    def test_unknown_stage_rejected(self, queue: InMemoryJobQueue) -> None:
        with pytest.raises(ValueError):
            queue.enqueue("not-a-stage", {})


# ---------------------------------------------------------------------------
# Retries and exhaustion
# ---------------------------------------------------------------------------


class TestRetries:
    def test_transient_failure_is_retried(self, queue: InMemoryJobQueue) -> None:
        recorder = Recorder(failures=2)
        queue.bind(recorder.dispatch, recorder.on_exhausted)
        queue.enqueue(Stage.WEBSITE_CRAWL, {"business_id": "b1"})

        ran = queue.drain()

        assert ran == 3
        assert len(recorder.calls) == 3
        assert recorder.exhausted == []

    def test_exhaustion_after_max_attempts(self, queue: InMemoryJobQueue) -> None:
        recorder = Recorder(failures=10)
        queue.bind(recorder.dispatch, recorder.on_exhausted)
        queue.enqueue(Stage.WEBSITE_CRAWL, {"business_id": "b1"})

        queue.drain()

        max_attempts = spec_for(Stage.WEBSITE_CRAWL).max_attempts
        assert len(recorder.calls) == max_attempts
        assert len(recorder.exhausted) == 1
        stage, args, exc, attempts = recorder.exhausted[0]
        assert (stage, args, attempts) == (Stage.WEBSITE_CRAWL, {"business_id": "b1"}, max_attempts)
        assert str(exc) == "temporary"

    def test_single_attempt_stage(self, queue: InMemoryJobQueue) -> None:
        recorder = Recorder(failures=1)
        queue.bind(recorder.dispatch, recorder.on_exhausted)
        queue.enqueue(Stage.DISCOVERY_CRAWL, {"crawl_id": "c1"})

        queue.drain()

        assert len(recorder.calls) == 1
        assert recorder.exhausted[0][3] == 1

    def test_non_retryable_error_fails_immediately(self, queue: InMemoryJobQueue) -> None:
        recorder = Recorder(failures=1, error=NonRetryable("bad payload"))
        queue.bind(recorder.dispatch, recorder.on_exhausted)
        queue.enqueue(Stage.ENRICH, {"business_id": "b1"})

        queue.drain()

        assert len(recorder.calls) == 1
        assert recorder.exhausted[0][3] == 1

    def test_failed_job_still_holds_unique_window(self, queue: InMemoryJobQueue) -> None:
        recorder = Recorder(failures=1, error=NonRetryable("bad payload"))
        queue.bind(recorder.dispatch, recorder.on_exhausted)
        queue.enqueue(Stage.TRANSLATE, {"business_id": "b1"})
        queue.drain()

        # Still inside the unique window, so the re-enqueue collapses.
        assert not queue.enqueue(Stage.TRANSLATE, {"business_id": "b1"})
        assert queue.pending() == []

    def test_exhaustion_handler_errors_are_contained(self, queue: InMemoryJobQueue) -> None:
        recorder = Recorder(failures=5, error=NonRetryable("boom"))

        def broken_handler(*_: Any) -> None:
            raise RuntimeError("handler exploded")

        queue.bind(recorder.dispatch, broken_handler)
        queue.enqueue(Stage.ENRICH, {"business_id": "b1"})
        queue.enqueue(Stage.ENRICH, {"business_id": "b2"})

        assert queue.drain() == 2

    def test_unbound_queue_refuses_to_run(self, queue: InMemoryJobQueue) -> None:
        queue.enqueue(Stage.ENRICH, {"business_id": "b1"})

        with pytest.raises(RuntimeError):
            queue.drain()


class TestBackoff:
    def test_exponential_and_capped(self) -> None:
        settings = QueueSettings(
            retry_backoff_initial_seconds=30,
            retry_backoff_multiplier=2,
            retry_backoff_max_seconds=100,
        )

        assert [settings.backoff_seconds(attempt) for attempt in (1, 2, 3, 4)] == [30, 60, 100, 100]

    def test_concurrency_per_queue(self) -> None:
        settings = QueueSettings(research_concurrency=7)

        assert settings.concurrency_for("research") == 7
        assert settings.concurrency_for("unknown") == 1


class TestSchedulerJobQueue:
    def test_one_executor_per_queue(self) -> None:
        scheduler = BackgroundScheduler(timezone="UTC")
        queue = SchedulerJobQueue(scheduler, queue_settings=QueueSettings())

        queue.bind(lambda stage, args: None, lambda *args: None)
        assert queue.enqueue(Stage.ENRICH, {"business_id": "b1"}, delay_seconds=60)
        assert not queue.enqueue(Stage.ENRICH, {"business_id": "b1"})

        jobs = scheduler.get_jobs()
        assert len(jobs) == 1
        assert jobs[0].executor == "enrichment"
        assert set(QUEUE_NAMES) <= set(scheduler._executors)
