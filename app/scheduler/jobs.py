"""
app/scheduler/jobs.py

APScheduler wiring for the discovery and research pipeline.

The same ``BackgroundScheduler`` hosts two kinds of work:

  * stage jobs, added on demand by ``SchedulerJobQueue`` as one-shot
    ``date`` jobs on the executor named after the stage's queue;
  * the periodic and startup jobs registered here.

Schedule
--------
  enrich_researched               - every 5 minutes (PIPELINE_ENRICH_RESEARCHED_INTERVAL_MINUTES)
  enrich_pending_without_website  - every 10 minutes (PIPELINE_ENRICH_PENDING_INTERVAL_MINUTES)
  redrive_stalled_research        - every 15 minutes (PIPELINE_RESEARCH_REDRIVE_INTERVAL_MINUTES)
  crawl_resume                    - once, a few seconds after start (PIPELINE_RESUME_GRACE_SECONDS)

Lifecycle
---------
Call ``build_scheduler()`` to get an unstarted scheduler, hand it to the job
queue, register jobs with ``register_pipeline_jobs()``, then start it on
app boot and shut it down on exit. ``build_pipeline_runtime()`` does all of
this in order.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler

from app.config import PipelineSettings
from app.pipeline.resume import CrawlResumeSupervisor
from app.pipeline.triggers import EnrichmentTriggers

logger = logging.getLogger(__name__)


def build_scheduler() -> BackgroundScheduler:
    """
    Return a configured but *not yet started* ``BackgroundScheduler``.
    """

    return BackgroundScheduler(
        timezone="UTC",
        job_defaults={"coalesce": True, "max_instances": 1},
    )


def run_enrich_researched(triggers: EnrichmentTriggers) -> None:
    logger.info("Scheduler: enrich_researched starting")
    try:
        triggers.enqueue_researched()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Scheduler: enrich_researched failed: %s", exc)


def run_enrich_pending_without_website(triggers: EnrichmentTriggers) -> None:
    logger.info("Scheduler: enrich_pending_without_website starting")
    try:
        triggers.enqueue_pending_without_website()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Scheduler: enrich_pending_without_website failed: %s", exc)


def run_redrive_stalled_research(triggers: EnrichmentTriggers) -> None:
    logger.info("Scheduler: redrive_stalled_research starting")
    try:
        triggers.redrive_stalled_research()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Scheduler: redrive_stalled_research failed: %s", exc)


def run_crawl_resume(supervisor: CrawlResumeSupervisor) -> None:
    logger.info("Scheduler: crawl_resume starting")
    try:
        supervisor.run_once()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Scheduler: crawl_resume failed: %s", exc)


def register_pipeline_jobs(
    scheduler: BackgroundScheduler,
    *,
    settings: PipelineSettings,
    triggers: EnrichmentTriggers,
    resume: CrawlResumeSupervisor,
) -> None:
    scheduler.add_job(
        run_enrich_researched,
        trigger="interval",
        minutes=settings.enrich_researched_interval_minutes,
        args=[triggers],
        id="enrich_researched",
        name="Enqueue researched businesses for enrichment",
        replace_existing=True,
        misfire_grace_time=300,
    )
    scheduler.add_job(
        run_enrich_pending_without_website,
        trigger="interval",
        minutes=settings.enrich_pending_interval_minutes,
        args=[triggers],
        id="enrich_pending_without_website",
        name="Enqueue website-less pending businesses for enrichment",
        replace_existing=True,
        misfire_grace_time=600,
    )
    scheduler.add_job(
        run_redrive_stalled_research,
        trigger="interval",
        minutes=settings.research_redrive_interval_minutes,
        args=[triggers],
        id="redrive_stalled_research",
        name="Re-enqueue research for stalled businesses",
        replace_existing=True,
        misfire_grace_time=900,
    )
    scheduler.add_job(
        run_crawl_resume,
        trigger="date",
        run_date=datetime.now(timezone.utc) + timedelta(seconds=settings.resume_grace_seconds),
        args=[resume],
        id="crawl_resume",
        name="Resume interrupted discovery crawls",
        replace_existing=True,
        misfire_grace_time=None,
    )
