"""Release monitor: announce new releases of catalog projects."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from core.backoff import BackoffPoller
from core.catalog import Project, apply_release, format_developers, load_projects
from core.config import ReleaseConfig
from core.dedup import DedupTracker
from core.errors import RetryCancelledError
from core.json_store import JsonStore
from core.locks import LockManager
from core.models import Notification, Release
from core.ports import NotifierPort, ReleaseSourcePort
from core.task_registry import TaskRegistry
from core.text import truncate_markdown

LOGGER = logging.getLogger(__name__)

CRON_TASK = "release-check"
INITIAL_TASK = "release-initial-check"


def release_key(project: Project, release: Release) -> str:
    return f"{project.id}@{release.tag}"


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def build_release_notification(project: Project, release: Release) -> Notification:
    info = project.info
    published = _parse_timestamp(release.published_at)

    fields: List[Tuple[str, str]] = []
    if published is not None:
        fields.append(("📅 Released", published.date().isoformat()))
    if project.repo:
        fields.append(("🔗 Repository", f"[View on GitHub]({project.repo})"))
    if project.category == "third_party_clients" and project.developers:
        fields.append(("👨‍💻 Developers", format_developers(project.developers)))
    if project.category == "services" and project.status_url:
        fields.append(("🌐 Status", f"[Check Status]({project.status_url})"))

    return Notification(
        title=f"{info.icon} {project.name} - {release.tag}",
        body=truncate_markdown(release.body or "No release notes available.", 500),
        url=release.url,
        author=f"New {info.label} Release!",
        timestamp=published,
        footer=f"{info.label} Update",
        fields=tuple(fields),
    )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReleaseMonitor:
    """Checks every catalog project with a repository for a newer release."""

    def __init__(
        self,
        source: ReleaseSourcePort,
        store: JsonStore,
        locks: LockManager,
        catalog_path: str,
        dedup: DedupTracker,
        notifier: NotifierPort,
        registry: TaskRegistry,
        poller: BackoffPoller,
        config: ReleaseConfig,
        max_attempts: int = 3,
        announce_initial: bool = False,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._source = source
        self._store = store
        self._locks = locks
        self._catalog_path = catalog_path
        self._dedup = dedup
        self._notifier = notifier
        self._registry = registry
        self._poller = poller
        self._config = config
        self._max_attempts = max_attempts
        self._announce_initial = announce_initial
        self._clock = clock
        self._checking = False

    async def load_history(self) -> None:
        await self._dedup.load()

    async def start(self) -> None:
        await self.load_history()
        self._registry.schedule_cron(CRON_TASK, self._config.schedule, self._run_cycle)
        self._registry.schedule_once(INITIAL_TASK, self._config.initial_delay, self._run_cycle)
        LOGGER.info("Release monitor scheduled (%s)", self._config.schedule)

    async def _run_cycle(self) -> None:
        if self._checking:
            LOGGER.info("Release check already running; skipping this occurrence")
            return
        LOGGER.info("Running scheduled release check")
        self._checking = True
        try:
            announced = await self.check_once()
        except RetryCancelledError:
            LOGGER.info("Release check cancelled for shutdown")
            return
        except Exception:
            LOGGER.exception("Error during release check")
            return
        finally:
            self._checking = False
        LOGGER.info("Release check complete: %s new releases", len(announced))

    async def load_projects(self) -> List[Project]:
        document = await self._locks.run_exclusive(
            self._catalog_path, lambda: self._store.read(self._catalog_path, {})
        )
        return load_projects(document)

    async def check_once(self) -> List[Tuple[Project, Release]]:
        """Check all projects once and return the releases that were announced."""

        projects = [project for project in await self.load_projects() if project.repo]
        announced: List[Tuple[Project, Release]] = []

        for index, project in enumerate(projects):
            try:
                release = await self._poller.fetch_with_retry(
                    f"release-{project.id}",
                    lambda repo=project.repo: self._source.latest_release(repo),
                    self._max_attempts,
                )
                new_release = self._is_new(project, release)
                if new_release is not None:
                    LOGGER.info("New release for %s: %s", project.name, new_release.tag)
                    if project.last_release_tag or self._announce_initial:
                        await self._notifier.send(build_release_notification(project, new_release))
                        announced.append((project, new_release))
                    await self._dedup.mark_and_persist(release_key(project, new_release))
                await self._record_check(project, new_release)
            except RetryCancelledError:
                raise
            except Exception:
                LOGGER.exception("Error checking updates for %s", project.name)

            if index < len(projects) - 1:
                completed = await self._registry.sleep(
                    f"release-delay-{project.id}", self._config.project_delay
                )
                if not completed:
                    raise RetryCancelledError("Release check cancelled due to shutdown")

        return announced

    def _is_new(self, project: Project, release: Optional[Release]) -> Optional[Release]:
        if release is None:
            return None
        if release.tag == project.last_release_tag:
            return None
        if self._dedup.has(release_key(project, release)):
            return None
        return release

    async def _record_check(self, project: Project, release: Optional[Release]) -> None:
        checked_at = self._clock().isoformat()
        async with self._locks.hold(self._catalog_path):
            document = self._store.read(self._catalog_path, {})
            if apply_release(document, project, release, checked_at):
                self._store.write(self._catalog_path, document)
            else:
                LOGGER.warning("Project %s disappeared from the catalog", project.id)
