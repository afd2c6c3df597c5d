"""
Reconcile interrupted discovery crawls once, without starting the API.

Processing jobs are queued in memory; pass --drain to run them inline.
"""

from __future__ import annotations

import argparse
import json

from app.logging_utils import configure_logging
from app.pipeline.queue import InMemoryJobQueue
from app.pipeline.runtime import build_pipeline_runtime


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the crawl resume supervisor once.")
    parser.add_argument(
        "--drain",
        action="store_true",
        help="Run the re-queued processing jobs (and their follow-ups) before exiting.",
    )
    parser.add_argument("--log-level", dest="log_level", default=None)
    args = parser.parse_args()

    configure_logging(args.log_level)
    runtime = build_pipeline_runtime(in_memory=True)
    report = runtime.resume.run_once()

    jobs_run = 0
    queue = runtime.orchestrator.queue
    if args.drain and isinstance(queue, InMemoryJobQueue):
        jobs_run = queue.drain()

    payload = {
        "marked_crawled": report.marked_crawled,
        "marked_failed": report.marked_failed,
        "rewound": report.rewound,
        "enqueued": report.enqueued,
        "errors": report.errors,
        "jobs_run": jobs_run,
    }
    print(json.dumps(payload, indent=2))
    return 1 if report.errors else 0


if __name__ == "__main__":
    raise SystemExit(main())
