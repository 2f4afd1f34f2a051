"""Application entry point for the herald service."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv
from telethon import events

import settings
from adapters.feed_source import RssFeedSource
from adapters.github_releases import GitHubReleaseSource
from adapters.telegram_bot_notifier import TelegramBotNotifier
from adapters.telegram_commands import REMIND_ACTION, ReminderCommandHandler
from adapters.telegram_notifier import TelegramClientNotifier
from client import bot_token, build_client
from core.backoff import BackoffPoller, startup_delay
from core.config import BackoffConfig, FeedConfig, ReleaseConfig, StateConfig
from core.dedup import DedupTracker
from core.feed_watcher import FeedWatcher
from core.json_store import JsonStore
from core.locks import LockManager
from core.rate_limiter import RateLimiter, RateLimits
from core.release_monitor import ReleaseMonitor
from core.reminders import ReminderService
from core.task_registry import TaskRegistry

NAME = "HERALD"
FONT = "tarty-1"

FEED_NAMESPACE = "redditPosts"
RELEASE_NAMESPACE = "updatePosts"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/herald.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


@dataclass
class Services:
    """Process-wide service objects, built once and passed explicitly."""

    store: JsonStore
    locks: LockManager
    registry: TaskRegistry
    limiter: RateLimiter
    poller: BackoffPoller
    backoff: BackoffConfig
    state: StateConfig


def _build_services() -> Services:
    registry = TaskRegistry()
    limiter = RateLimiter(defaults=RateLimits(**settings.RATE_LIMIT_DEFAULTS))
    for action, overrides in settings.RATE_LIMIT_OVERRIDES.items():
        limiter.set_action_limits(action, **overrides)
    backoff = BackoffConfig(
        base_delay=settings.BACKOFF_BASE_SECONDS,
        max_delay=settings.BACKOFF_MAX_SECONDS,
        max_attempts=settings.BACKOFF_MAX_ATTEMPTS,
    )
    return Services(
        store=JsonStore(),
        locks=LockManager(),
        registry=registry,
        limiter=limiter,
        poller=BackoffPoller(registry, base_delay=backoff.base_delay, max_delay=backoff.max_delay),
        backoff=backoff,
        state=StateConfig(data_dir=settings.DATA_DIR, dedup_capacity=settings.DEDUP_CAPACITY),
    )


def _build_notifier(client):
    # Select the notification adapter based on configuration to keep the core
    # services independent from delivery details.
    if not settings.NOTIFY_CHAT_ID:
        raise RuntimeError("notifications.chat_id is required")
    if settings.NOTIFICATION_METHOD == "bot_api":
        return TelegramBotNotifier(bot_token=bot_token(), chat_id=settings.NOTIFY_CHAT_ID)
    if settings.NOTIFICATION_METHOD == "client":
        return TelegramClientNotifier(client, settings.NOTIFY_CHAT_ID)
    raise RuntimeError("notification_method must be 'client' or 'bot_api'")


def _build_feed_watcher(services: Services, notifier) -> Optional[FeedWatcher]:
    if not settings.FEED_URL:
        return None
    dedup = DedupTracker(
        services.store,
        services.locks,
        services.state.posted_items_path,
        FEED_NAMESPACE,
        capacity=services.state.dedup_capacity,
    )
    config = FeedConfig(
        url=settings.FEED_URL,
        check_interval=settings.FEED_CHECK_INTERVAL_MINUTES * 60,
        jitter_fraction=settings.FEED_JITTER,
        post_delay=settings.FEED_POST_DELAY_SECONDS,
        footer=settings.FEED_FOOTER,
    )
    return FeedWatcher(
        source=RssFeedSource(settings.FEED_URL),
        dedup=dedup,
        notifier=notifier,
        registry=services.registry,
        poller=services.poller,
        config=config,
        max_attempts=services.backoff.max_attempts,
    )


def _build_release_monitor(services: Services, notifier) -> Optional[ReleaseMonitor]:
    if not settings.RELEASES_ENABLED:
        return None
    load_dotenv()
    dedup = DedupTracker(
        services.store,
        services.locks,
        services.state.posted_items_path,
        RELEASE_NAMESPACE,
        capacity=services.state.dedup_capacity,
    )
    config = ReleaseConfig(
        schedule=settings.RELEASES_SCHEDULE,
        initial_delay=settings.RELEASES_INITIAL_DELAY_SECONDS,
        project_delay=settings.RELEASES_PROJECT_DELAY_SECONDS,
    )
    return ReleaseMonitor(
        source=GitHubReleaseSource(token=os.getenv("GITHUB_TOKEN")),
        store=services.store,
        locks=services.locks,
        catalog_path=services.state.catalog_path,
        dedup=dedup,
        notifier=notifier,
        registry=services.registry,
        poller=services.poller,
        config=config,
        max_attempts=services.backoff.max_attempts,
        announce_initial=settings.RELEASES_ANNOUNCE_INITIAL,
    )


async def _shutdown(services: Services, client) -> bool:
    """Drain every scheduled task exactly once, then disconnect.

    Returns False when the overall timeout expired first.
    """

    logger = logging.getLogger(__name__)
    timeout = settings.SHUTDOWN_TIMEOUT_SECONDS

    async def _drain_and_disconnect() -> None:
        # Leave part of the budget for the disconnect.
        await services.registry.drain_all(timeout=timeout * 0.8)
        if client.is_connected():
            logger.info("Disconnecting from Telegram")
            await client.disconnect()
        logger.info("Graceful shutdown complete")

    try:
        await asyncio.wait_for(_drain_and_disconnect(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error("Shutdown timeout - forcing exit")
        return False
    return True


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers; Ctrl+C still
            # raises KeyboardInterrupt there.
            logging.getLogger(__name__).debug("Signal handler for %s not supported", sig)


async def _serve() -> int:
    logger = logging.getLogger(__name__)
    logger.info("Starting herald")

    services = _build_services()
    client = build_client()
    await client.start(bot_token=bot_token())
    notifier = _build_notifier(client)

    reminders = ReminderService(
        services.store,
        services.locks,
        services.registry,
        notifier,
        services.state.reminders_path,
    )
    await reminders.restore()

    command_handler = ReminderCommandHandler(reminders, services.limiter)

    # Keep the Telethon integration minimal; failures in one command never
    # take the service down.
    @client.on(events.NewMessage(incoming=True, pattern=rf"(?i)^/{REMIND_ACTION}\b"))
    async def handler(event) -> None:
        try:
            await command_handler.on_message(event)
        except Exception:
            logger.exception("Error while handling /%s", REMIND_ACTION)

    services.registry.schedule_interval(
        "rate-limiter-cleanup",
        settings.RATE_LIMIT_CLEANUP_MINUTES * 60,
        services.limiter.cleanup,
    )

    feed_watcher = _build_feed_watcher(services, notifier)
    if feed_watcher is not None:
        # Stagger the first fetch so restarts do not all hit the feed at once.
        services.registry.schedule_once(
            "feed-start",
            startup_delay(settings.FEED_STARTUP_JITTER_SECONDS),
            feed_watcher.start,
        )

    release_monitor = _build_release_monitor(services, notifier)
    if release_monitor is not None:
        await release_monitor.start()

    stop = asyncio.Event()
    _install_signal_handlers(stop)
    logger.info("Client connected. Listening for commands...")

    stop_waiter = asyncio.ensure_future(stop.wait())
    disconnected = asyncio.ensure_future(client.run_until_disconnected())
    await asyncio.wait({stop_waiter, disconnected}, return_when=asyncio.FIRST_COMPLETED)
    if stop.is_set():
        logger.info("Shutdown signal received")
    else:
        logger.warning("Telegram connection closed")

    clean = await _shutdown(services, client)
    for pending in (stop_waiter, disconnected):
        pending.cancel()
    return 0 if clean else 1


async def _check_once() -> int:
    """Run one pass of both watchers and exit (no schedules are started)."""

    logger = logging.getLogger(__name__)
    services = _build_services()
    client = build_client()
    await client.start(bot_token=bot_token())
    notifier = _build_notifier(client)

    try:
        feed_watcher = _build_feed_watcher(services, notifier)
        if feed_watcher is not None:
            await feed_watcher.load_history()
            posted = await feed_watcher.initial_pass()
            logger.info("Feed check complete: %s new posts", len(posted))

        release_monitor = _build_release_monitor(services, notifier)
        if release_monitor is not None:
            await release_monitor.load_history()
            announced = await release_monitor.check_once()
            logger.info("Release check complete: %s new releases", len(announced))
    finally:
        clean = await _shutdown(services, client)
    return 0 if clean else 1


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="herald")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the service")
    subparsers.add_parser("check", help="Poll the feed and release sources once, then exit")

    args = parser.parse_args(argv)
    _print_banner()
    _configure_logging()

    if args.command == "check":
        sys.exit(asyncio.run(_check_once()))
    sys.exit(asyncio.run(_serve()))


if __name__ == "__main__":
    main()
