"""Minimal blocking HTTP GET used by the upstream adapters.

Requests run in a worker thread so the event loop keeps serving timers and
handlers while an upstream is slow.
"""

from __future__ import annotations

import asyncio
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Mapping, Optional

from core.errors import NetworkError

LOGGER = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"


@dataclass(frozen=True)
class HttpResponse:
    status: int
    body: bytes


def _get(url: str, headers: Mapping[str, str], timeout: float) -> HttpResponse:
    request = urllib.request.Request(url, method="GET")
    for name, value in headers.items():
        request.add_header(name, value)
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            return HttpResponse(status=response.status, body=response.read())
    except urllib.error.HTTPError as e:
        body = e.read() or b""
        return HttpResponse(status=e.code, body=body)
    except (urllib.error.URLError, OSError) as e:
        raise NetworkError(f"GET {url} failed: {e}") from e


async def http_get(
    url: str,
    headers: Optional[Mapping[str, str]] = None,
    timeout: float = 20.0,
) -> HttpResponse:
    """Fetch ``url``; transport failures raise ``NetworkError``.

    HTTP error statuses are returned, not raised, so callers can treat e.g.
    404 as a normal answer.
    """

    LOGGER.debug("GET %s", url)
    return await asyncio.to_thread(_get, url, dict(headers or {}), timeout)
