"""
app/pipeline/runtime.py

Assembles the pipeline: scheduler, job queue, workers, orchestrator,
resume supervisor and enrichment triggers.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.orm import Session

from app.config import PipelineSettings, get_pipeline_settings
from app.crawling.artifacts import ArtifactStore
from app.crawling.config.loader import get_crawler_settings
from app.crawling.config.models import CrawlerSettings
from app.crawling.crawler import SiteCrawler
from app.pipeline.collaborators import CollaboratorRegistry
from app.pipeline.orchestrator import PipelineOrchestrator
from app.pipeline.queue import InMemoryJobQueue, SchedulerJobQueue
from app.pipeline.reference_cache import ReferenceDataCache
from app.pipeline.resume import CrawlResumeSupervisor
from app.pipeline.triggers import EnrichmentTriggers
from app.pipeline.workers import StageWorkers
from app.scheduler.jobs import build_scheduler, register_pipeline_jobs
from db.session import get_session_factory

logger = logging.getLogger(__name__)


@dataclass
class PipelineRuntime:
    orchestrator: PipelineOrchestrator
    workers: StageWorkers
    resume: CrawlResumeSupervisor
    triggers: EnrichmentTriggers
    artifacts: ArtifactStore
    reference_cache: ReferenceDataCache
    scheduler: BackgroundScheduler | None = None

    def start(self) -> None:
        if self.scheduler is not None and not self.scheduler.running:
            self.scheduler.start()
            logger.info("Pipeline scheduler started with %d jobs", len(self.scheduler.get_jobs()))

    def shutdown(self, *, wait: bool = True) -> None:
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Pipeline scheduler shut down")


def build_pipeline_runtime(
    *,
    session_factory: Callable[[], Session] | None = None,
    pipeline_settings: PipelineSettings | None = None,
    crawler_settings: CrawlerSettings | None = None,
    collaborators: CollaboratorRegistry | None = None,
    crawler: SiteCrawler | None = None,
    in_memory: bool = False,
) -> PipelineRuntime:
    """
    Build the pipeline. ``in_memory=True`` swaps the scheduler-backed queue
    for a synchronous ``InMemoryJobQueue`` and registers no periodic jobs.
    """

    pipeline_settings = pipeline_settings or get_pipeline_settings()
    crawler_settings = crawler_settings or get_crawler_settings()
    session_factory = session_factory or get_session_factory()
    collaborators = collaborators or CollaboratorRegistry.from_settings(pipeline_settings.collaborators)

    scheduler: BackgroundScheduler | None = None
    if in_memory:
        queue = InMemoryJobQueue(queue_settings=pipeline_settings.queues)
    else:
        scheduler = build_scheduler()
        queue = SchedulerJobQueue(scheduler, queue_settings=pipeline_settings.queues)

    artifacts = ArtifactStore(
        research_dir=pipeline_settings.research_dir,
        discovery_dir=pipeline_settings.discovery_dir,
    )
    reference_cache = ReferenceDataCache(
        session_factory,
        ttl_seconds=pipeline_settings.reference_cache_ttl_seconds,
    )
    workers = StageWorkers(
        session_factory=session_factory,
        crawler=crawler or SiteCrawler(settings=crawler_settings),
        artifacts=artifacts,
        collaborators=collaborators,
        reference_cache=reference_cache,
        crawler_settings=crawler_settings,
        pipeline_settings=pipeline_settings,
    )
    orchestrator = PipelineOrchestrator(queue=queue, session_factory=session_factory, runner=workers)
    resume = CrawlResumeSupervisor(
        session_factory=session_factory,
        artifacts=artifacts,
        queue=queue,
        processing_delay_seconds=pipeline_settings.resume_processing_delay_seconds,
    )
    triggers = EnrichmentTriggers(
        session_factory=session_factory,
        queue=queue,
        batch_size=pipeline_settings.trigger_batch_size,
        pending_grace_minutes=pipeline_settings.pending_without_website_grace_minutes,
        stalled_grace_minutes=pipeline_settings.stalled_research_grace_minutes,
    )

    if scheduler is not None and pipeline_settings.scheduler_enabled:
        register_pipeline_jobs(
            scheduler,
            settings=pipeline_settings,
            triggers=triggers,
            resume=resume,
        )

    return PipelineRuntime(
        orchestrator=orchestrator,
        workers=workers,
        resume=resume,
        triggers=triggers,
        artifacts=artifacts,
        reference_cache=reference_cache,
        scheduler=scheduler,
    )
