"""RSS/Atom feed adapter.

We always fetch the bytes ourselves and hand them to feedparser, so timeouts
and HTTP status handling stay under our control.
"""

from __future__ import annotations

import html
import logging
import re
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

import feedparser

from adapters.http_client import USER_AGENT, http_get
from core.errors import NetworkError
from core.models import FeedItem
from core.text import truncate

LOGGER = logging.getLogger(__name__)

REQUEST_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "application/rss+xml,application/atom+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}

SUMMARY_CHARS = 300

_IMG_SRC = re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"']", re.IGNORECASE)
_REDDIT_IMAGE_LINK = re.compile(r"href=[\"'](https?://(?:preview|i)\.redd\.it/[^\"']+)[\"']", re.IGNORECASE)
_ANCHOR = re.compile(r"<a[^>]*>.*?</a>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]*>")
_LINK_MARKERS = re.compile(r"\[(?:link|comments)\]", re.IGNORECASE)
_AUTHOR_PREFIX = re.compile(r"^/?u/")


def extract_content(raw_html: str) -> Tuple[Optional[str], str]:
    """Return (image_url, plain text summary) from an entry's HTML body."""

    if not raw_html:
        return None, ""

    image_url = None
    match = _IMG_SRC.search(raw_html) or _REDDIT_IMAGE_LINK.search(raw_html)
    if match:
        image_url = html.unescape(match.group(1))

    text = _TAG.sub("", _ANCHOR.sub("", raw_html)).strip()
    text = html.unescape(text)
    text = _LINK_MARKERS.sub("", text).strip()
    return image_url, truncate(text, SUMMARY_CHARS)


def _entry_published(entry: Any) -> Optional[datetime]:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    try:
        return datetime(*parsed[:6], tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None


def _entry_content(entry: Any) -> str:
    content = entry.get("content")
    if isinstance(content, list) and content:
        value = content[0].get("value")
        if isinstance(value, str):
            return value
    return entry.get("summary") or ""


def parse_entry(entry: Any) -> Optional[FeedItem]:
    link = entry.get("link")
    if not isinstance(link, str) or not link.strip():
        return None

    image_url, summary = extract_content(_entry_content(entry))
    tags = entry.get("tags") or []
    flair = None
    if tags and isinstance(tags[0], dict):
        flair = tags[0].get("term") or tags[0].get("label")

    author = _AUTHOR_PREFIX.sub("", str(entry.get("author") or "Unknown")).strip() or "Unknown"
    return FeedItem(
        link=link.strip(),
        title=str(entry.get("title") or "(untitled)").strip(),
        author=author,
        published=_entry_published(entry),
        summary=summary,
        image_url=image_url,
        flair=flair,
    )


def parse_feed(payload: bytes) -> List[FeedItem]:
    """Parse feed bytes into items, newest first as served."""

    parsed = feedparser.parse(payload)
    entries = parsed.get("entries") or []
    if parsed.get("bozo") and not entries:
        raise NetworkError(f"Malformed feed document: {parsed.get('bozo_exception')}")

    items: List[FeedItem] = []
    for entry in entries:
        item = parse_entry(entry)
        if item is None:
            LOGGER.debug("Skipping feed entry without a link")
            continue
        items.append(item)
    return items


class RssFeedSource:
    """Feed source backed by an HTTP URL."""

    def __init__(self, url: str, timeout: float = 20.0) -> None:
        self._url = url
        self._timeout = timeout

    @property
    def url(self) -> str:
        return self._url

    async def fetch(self) -> List[FeedItem]:
        response = await http_get(self._url, REQUEST_HEADERS, self._timeout)
        if not 200 <= response.status < 300:
            raise NetworkError(f"Feed {self._url} responded with {response.status}", status=response.status)
        return parse_feed(response.body)
