"""
Politeness throttle between sequential fetches.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from urllib.parse import urlsplit

from app.crawling.prioritizer import host_key


class PolitenessThrottle:
    """
    Enforces a minimum delay between requests to the same host.

    One throttle is owned by one crawl run; separate runs never wait on
    each other.
    """

    def __init__(
        self,
        *,
        delay_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._delay_seconds = max(0.0, delay_seconds)
        self._clock = clock
        self._sleep = sleep
        self._last_request_by_host: dict[str, float] = {}
        self._lock = threading.Lock()

    def wait(self, url: str) -> float:
        """
        Sleep as needed before requesting ``url``. Returns the time slept.
        """

        host = host_key(urlsplit(url).hostname)
        if not host or self._delay_seconds <= 0:
            return 0.0

        with self._lock:
            waited = 0.0
            last_time = self._last_request_by_host.get(host)
            if last_time is not None:
                remaining = self._delay_seconds - (self._clock() - last_time)
                if remaining > 0:
                    self._sleep(remaining)
                    waited = remaining
            self._last_request_by_host[host] = self._clock()
            return waited
