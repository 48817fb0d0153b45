"""
Minimal JSON-over-HTTP helper shared by the registry and advisory clients.

Plain ``urllib.request``: every call has a timeout and a User-Agent, and
any transport, HTTP-status or decoding problem surfaces as
``RegistryError`` so callers have exactly one thing to catch.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.request
from typing import Any

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """An upstream HTTP API could not be reached or returned garbage."""

    def __init__(self, message: str, status: int | None = None, url: str = ""):
        super().__init__(message)
        self.status = status
        self.url = url


def fetch_json(
    url: str,
    *,
    method: str = "GET",
    body: Any = None,
    headers: dict[str, str] | None = None,
    timeout: float = 15.0,
    user_agent: str = "npmplus/0.1",
) -> Any:
    """Fetch ``url`` and decode its JSON body.

    Raises:
        RegistryError: Non-2xx status, network failure, or invalid JSON.
    """
    all_headers = {"User-Agent": user_agent, "Accept": "application/json"}
    all_headers.update(headers or {})

    data = None
    if body is not None:
        data = json.dumps(body).encode("utf-8")
        all_headers.setdefault("Content-Type", "application/json")

    req = urllib.request.Request(url, data=data, method=method, headers=all_headers)
    start = time.monotonic()
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read()
    except urllib.error.HTTPError as e:
        raise RegistryError(f"{method} {url} failed: HTTP {e.code}", status=e.code, url=url) from e
    except (urllib.error.URLError, TimeoutError, OSError) as e:
        raise RegistryError(f"{method} {url} failed: {e}", url=url) from e

    logger.debug("%s %s (%dms)", method, url, int((time.monotonic() - start) * 1000))

    try:
        return json.loads(raw.decode("utf-8")) if raw else None
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise RegistryError(f"Invalid JSON from {url}: {e}", url=url) from e
