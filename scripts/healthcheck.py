"""
Container health check: the API answers /health with status "ok".
"""

from __future__ import annotations

import json
import os
from urllib.error import URLError
from urllib.request import urlopen


def main() -> int:
    port = os.getenv("PORT", "8000")
    path = os.getenv("HEALTHCHECK_PATH", "/health")
    url = f"http://127.0.0.1:{port}{path}"

    try:
        with urlopen(url, timeout=2) as response:
            if not 200 <= response.status < 400:
                return 1
            payload = json.loads(response.read().decode("utf-8") or "{}")
    except (URLError, TimeoutError, ValueError):
        return 1
    return 0 if payload.get("status") == "ok" else 1


if __name__ == "__main__":
    raise SystemExit(main())
