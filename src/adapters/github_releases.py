"""GitHub releases adapter."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional, Tuple

from adapters.http_client import http_get
from core.errors import NetworkError
from core.models import Release

LOGGER = logging.getLogger(__name__)

API_ROOT = "https://api.github.com"
_REPO_URL = re.compile(r"github\.com/([^/\s]+)/([^/\s#?]+)")


def parse_repo_url(repo_url: str) -> Optional[Tuple[str, str]]:
    match = _REPO_URL.search(repo_url or "")
    if not match:
        return None
    owner, repo = match.groups()
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    return owner, repo


def parse_release(payload: Any) -> Release:
    """Turn a ``releases/latest`` JSON body into a Release."""

    if not isinstance(payload, dict):
        raise NetworkError("Malformed release payload: expected object")
    tag = payload.get("tag_name")
    if not isinstance(tag, str) or not tag:
        raise NetworkError("Malformed release payload: missing tag_name")
    url = payload.get("html_url")
    published_at = payload.get("published_at")
    body = payload.get("body")
    return Release(
        tag=tag,
        url=url if isinstance(url, str) else "",
        published_at=published_at if isinstance(published_at, str) else None,
        body=body if isinstance(body, str) else "",
    )


class GitHubReleaseSource:
    """Looks up ``/repos/<owner>/<repo>/releases/latest``."""

    def __init__(self, token: Optional[str] = None, timeout: float = 15.0) -> None:
        self._token = token
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {
            "User-Agent": "herald-release-monitor",
            "Accept": "application/vnd.github.v3+json",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def latest_release(self, repo_url: str) -> Optional[Release]:
        parsed = parse_repo_url(repo_url)
        if parsed is None:
            LOGGER.debug("Not a GitHub repository URL: %s", repo_url)
            return None
        owner, repo = parsed

        url = f"{API_ROOT}/repos/{owner}/{repo}/releases/latest"
        response = await http_get(url, self._headers(), self._timeout)
        if response.status == 404:
            # Repository has no published releases.
            return None
        if not 200 <= response.status < 300:
            raise NetworkError(f"GitHub API responded with {response.status}", status=response.status)

        try:
            payload = json.loads(response.body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise NetworkError(f"Malformed release payload for {owner}/{repo}") from e
        return parse_release(payload)
