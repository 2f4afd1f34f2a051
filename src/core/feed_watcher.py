"""Feed watcher: poll a feed, emit unseen items, remember what was sent.

Processing order per cycle:
1) Fetch the feed through the backoff poller
2) Keep only the newest ``capacity`` entries (the dedup window)
3) Drop entries already in the dedup record
4) Emit the rest oldest-first, marking each right after it was sent

Marking after the send means a crash between the two can repeat one item on
restart, but never silently skips one.
"""

from __future__ import annotations

import logging
import random
from typing import List, Optional

from core.backoff import BackoffPoller, jitter
from core.config import FeedConfig
from core.dedup import DedupTracker
from core.errors import RetryCancelledError
from core.models import FeedItem, Notification
from core.ports import FeedSourcePort, NotifierPort
from core.task_registry import TaskRegistry
from core.text import truncate

LOGGER = logging.getLogger(__name__)


def build_feed_notification(item: FeedItem, footer: str = "") -> Notification:
    title = f"[{item.flair}] {item.title}" if item.flair else item.title
    return Notification(
        title=truncate(title, 256),
        body=truncate(item.summary, 4096) if item.summary else "",
        url=item.link,
        author=truncate(f"u/{item.author}", 256),
        image_url=item.image_url,
        timestamp=item.published,
        footer=footer or None,
    )


class FeedWatcher:
    """Owns one feed: its dedup namespace and its polling schedule."""

    def __init__(
        self,
        source: FeedSourcePort,
        dedup: DedupTracker,
        notifier: NotifierPort,
        registry: TaskRegistry,
        poller: BackoffPoller,
        config: FeedConfig,
        name: str = "feed",
        max_attempts: int = 3,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._source = source
        self._dedup = dedup
        self._notifier = notifier
        self._registry = registry
        self._poller = poller
        self._config = config
        self._name = name
        self._max_attempts = max_attempts
        self._rng = rng

    @property
    def task_name(self) -> str:
        return f"{self._name}-check"

    async def start(self) -> None:
        """Load history, do the first pass, and start the polling chain."""

        LOGGER.info("Starting feed monitor for %s", self._config.url)
        await self.load_history()

        try:
            await self.initial_pass()
        except RetryCancelledError:
            LOGGER.info("Initial feed load cancelled for shutdown")
            return
        except Exception:
            LOGGER.exception("Error during initial feed load")

        self._schedule_next()
        LOGGER.info(
            "Feed monitor active (interval=%smin, jitter=%s%%)",
            round(self._config.check_interval / 60),
            round(self._config.jitter_fraction * 100),
        )

    async def load_history(self) -> None:
        await self._dedup.load()

    async def initial_pass(self) -> List[FeedItem]:
        """First check after startup.

        With no history at all, the current feed is recorded as already
        posted instead of being flooded into the chat.
        """

        items = await self._fetch()
        if not len(self._dedup) and items:
            window = items[: self._dedup.capacity]
            await self._dedup.seed(item.link for item in reversed(window))
            LOGGER.info("First run: marked %s existing posts as already posted", len(window))
            return []
        return await self._emit_new(items)

    async def check_once(self) -> List[FeedItem]:
        """Fetch and emit new items once; errors propagate to the caller."""

        items = await self._fetch()
        return await self._emit_new(items)

    def _schedule_next(self) -> None:
        delay = jitter(self._config.check_interval, self._config.jitter_fraction, rng=self._rng)
        self._registry.schedule_once(self.task_name, delay, self._run_cycle)

    async def _run_cycle(self) -> None:
        try:
            await self.check_once()
        except RetryCancelledError:
            LOGGER.info("Feed check cancelled for shutdown")
            return
        except Exception:
            LOGGER.exception("Error checking feed %s", self._config.url)
        self._schedule_next()

    async def _fetch(self) -> List[FeedItem]:
        return await self._poller.fetch_with_retry(
            f"{self._name}-fetch", self._source.fetch, self._max_attempts
        )

    async def _emit_new(self, items: List[FeedItem]) -> List[FeedItem]:
        window = items[: self._dedup.capacity]
        new_items: List[FeedItem] = []
        queued: set[str] = set()
        # Feeds list newest first; post oldest first to keep chronological order.
        for item in reversed(window):
            if self._dedup.has(item.link) or item.link in queued:
                continue
            queued.add(item.link)
            new_items.append(item)

        if new_items:
            LOGGER.info("Found %s new posts in %s", len(new_items), self._config.url)

        emitted: List[FeedItem] = []
        for index, item in enumerate(new_items):
            await self._notifier.send(build_feed_notification(item, self._config.footer))
            await self._dedup.mark_and_persist(item.link)
            emitted.append(item)

            if index < len(new_items) - 1:
                completed = await self._registry.sleep(f"{self._name}-post-delay", self._config.post_delay)
                if not completed:
                    raise RetryCancelledError("Feed posting cancelled due to shutdown")
        return emitted
