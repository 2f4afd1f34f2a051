from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Optional

from core.backoff import BackoffPoller
from core.catalog import Developer, DeveloperName, Project
from core.config import ReleaseConfig
from core.dedup import DedupTracker
from core.errors import NetworkError
from core.json_store import JsonStore
from core.locks import LockManager
from core.models import Notification, Release
from core.release_monitor import ReleaseMonitor, build_release_notification
from core.task_registry import TaskRegistry

CHECKED_AT = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _catalog() -> dict:
    return {
        "plugins": [
            {
                "id": "plugin-one",
                "name": "Plugin One",
                "repo": "https://github.com/example/plugin-one",
                "lastRelease": {"tag": "v1.0.0"},
            },
            {"id": "plugin-two", "name": "Plugin Two", "repo": "https://github.com/example/plugin-two"},
        ],
        "services": [{"id": "status", "name": "Status Page"}],
    }


def _release(tag: str) -> Release:
    return Release(tag=tag, url=f"https://example.test/{tag}", published_at="2024-02-28T10:00:00Z", body="Fixes")


class FakeReleaseSource:
    def __init__(self, releases: dict[str, Optional[Release]], broken: tuple[str, ...] = ()) -> None:
        self.releases = releases
        self.broken = broken
        self.calls: list[str] = []

    async def latest_release(self, repo_url: str) -> Optional[Release]:
        self.calls.append(repo_url)
        if repo_url in self.broken:
            raise NetworkError("GitHub API responded with 502", status=502)
        return self.releases.get(repo_url)


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)


def _monitor(tmp_path, source: FakeReleaseSource, notifier: RecordingNotifier, **kwargs) -> ReleaseMonitor:
    store = JsonStore()
    locks = LockManager()
    registry = TaskRegistry()
    catalog_path = str(tmp_path / "data.json")
    if not (tmp_path / "data.json").exists():
        store.write(catalog_path, _catalog())
    return ReleaseMonitor(
        source=source,
        store=store,
        locks=locks,
        catalog_path=catalog_path,
        dedup=DedupTracker(store, locks, str(tmp_path / "postedItems.json"), "updatePosts"),
        notifier=notifier,
        registry=registry,
        poller=BackoffPoller(registry, base_delay=0, max_delay=0),
        config=ReleaseConfig(project_delay=0),
        max_attempts=1,
        clock=lambda: CHECKED_AT,
        **kwargs,
    )


def _run_check(monitor: ReleaseMonitor):
    async def run():
        await monitor.load_history()
        return await monitor.check_once()

    return asyncio.run(run())


def test_announces_changed_release_and_records_check(tmp_path) -> None:
    source = FakeReleaseSource(
        {
            "https://github.com/example/plugin-one": _release("v1.1.0"),
            "https://github.com/example/plugin-two": _release("v0.1.0"),
        }
    )
    notifier = RecordingNotifier()

    announced = _run_check(_monitor(tmp_path, source, notifier))

    assert [(project.id, release.tag) for project, release in announced] == [("plugin-one", "v1.1.0")]
    assert notifier.sent[0].title == "🔧 Plugin One - v1.1.0"
    assert len(notifier.sent) == 1
    assert len(source.calls) == 2

    catalog = json.loads((tmp_path / "data.json").read_text(encoding="utf-8"))
    first, second = catalog["plugins"]
    assert first["lastRelease"]["tag"] == "v1.1.0"
    assert first["lastChecked"] == CHECKED_AT.isoformat()
    assert second["lastRelease"]["tag"] == "v0.1.0"
    assert "lastChecked" not in catalog["services"][0]

    posted = json.loads((tmp_path / "postedItems.json").read_text(encoding="utf-8"))
    assert posted["updatePosts"] == ["plugin-one@v1.1.0", "plugin-two@v0.1.0"]


def test_unchanged_releases_are_not_repeated(tmp_path) -> None:
    source = FakeReleaseSource({"https://github.com/example/plugin-one": _release("v1.1.0")})
    _run_check(_monitor(tmp_path, source, RecordingNotifier()))

    notifier = RecordingNotifier()
    announced = _run_check(_monitor(tmp_path, source, notifier))

    assert announced == []
    assert notifier.sent == []


def test_first_release_can_be_announced_when_enabled(tmp_path) -> None:
    source = FakeReleaseSource({"https://github.com/example/plugin-two": _release("v0.1.0")})
    notifier = RecordingNotifier()

    announced = _run_check(_monitor(tmp_path, source, notifier, announce_initial=True))

    assert [project.id for project, _ in announced] == ["plugin-two"]


def test_failing_project_does_not_stop_the_rest(tmp_path) -> None:
    source = FakeReleaseSource(
        {"https://github.com/example/plugin-two": _release("v2.0.0")},
        broken=("https://github.com/example/plugin-one",),
    )
    notifier = RecordingNotifier()

    _run_check(_monitor(tmp_path, source, notifier))

    catalog = json.loads((tmp_path / "data.json").read_text(encoding="utf-8"))
    first, second = catalog["plugins"]
    assert "lastChecked" not in first
    assert second["lastRelease"]["tag"] == "v2.0.0"


def test_release_notification_lists_developers() -> None:
    project = Project(
        id="client",
        name="Client",
        category="third_party_clients",
        repo="https://github.com/example/client",
        developers=(DeveloperName("Ann"), Developer(name="Bo", link="https://example.test/bo")),
    )

    notification = build_release_notification(project, _release("v3"))

    assert notification.title == "🔧 Client - v3"
    assert notification.author == "New Third Party Client Release!"
    assert ("👨‍💻 Developers", "Ann, [Bo](https://example.test/bo)") in notification.fields
    assert ("📅 Released", "2024-02-28") in notification.fields
    assert notification.body == "Fixes"
