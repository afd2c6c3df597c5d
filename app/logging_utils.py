"""
Logging setup and structured event helper shared by crawl and pipeline code.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Configure root logging once per process (API server or CLI script).
    """

    raw_level = (level or os.getenv("LOG_LEVEL", "INFO")).strip().upper()
    logging.basicConfig(
        level=getattr(logging, raw_level, logging.INFO),
        format=LOG_FORMAT,
    )
    # urllib3 logs every connection at DEBUG; keep crawl logs readable.
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.
    """

    if not logger.isEnabledFor(level):
        return
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))
