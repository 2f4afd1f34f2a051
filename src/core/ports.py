"""Ports (interfaces) used by the core services.

Ports define the minimal contracts for notification and upstream adapters so
that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import List, Optional, Protocol

from core.models import FeedItem, Notification, Release


class NotifierPort(Protocol):
    """Delivery of a rendered notification to the chat platform."""

    async def send(self, notification: Notification) -> None:
        ...


class FeedSourcePort(Protocol):
    """Fetches the current items of one feed, newest first."""

    async def fetch(self) -> List[FeedItem]:
        ...


class ReleaseSourcePort(Protocol):
    """Looks up the latest release of a repository URL."""

    async def latest_release(self, repo_url: str) -> Optional[Release]:
        ...
