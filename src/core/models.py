"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple, Union

ChatTarget = Union[int, str]


@dataclass(frozen=True)
class Notification:
    """Rendering-agnostic message handed to notifier adapters."""

    title: str
    body: str = ""
    url: Optional[str] = None
    author: Optional[str] = None
    image_url: Optional[str] = None
    timestamp: Optional[datetime] = None
    footer: Optional[str] = None
    fields: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    # None means the adapter's default notification chat.
    chat_id: Optional[ChatTarget] = None
    mention_user_id: Optional[int] = None


@dataclass(frozen=True)
class FeedItem:
    """One entry of an upstream RSS/Atom feed."""

    link: str
    title: str
    author: str
    published: Optional[datetime]
    summary: str = ""
    image_url: Optional[str] = None
    flair: Optional[str] = None


@dataclass(frozen=True)
class Release:
    """Latest release metadata reported for a project repository."""

    tag: str
    url: str
    published_at: Optional[str]
    body: str = ""


@dataclass(frozen=True)
class Reminder:
    """Persisted one-shot reminder; ``remind_at`` is a unix timestamp."""

    id: str
    text: str
    user_id: int
    chat_id: int
    remind_at: float

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "userId": self.user_id,
            "chatId": self.chat_id,
            "reminderTime": self.remind_at,
        }
