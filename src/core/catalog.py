"""Project catalog parsing.

The catalog document (``data.json``) groups community projects by category.
Raw entries are normalized once at load time so the rest of the code never
has to inspect their JSON shape again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple, Union

from core.models import Release

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategoryInfo:
    label: str
    icon: str


CATEGORIES = {
    "third_party_clients": CategoryInfo("Third Party Client", "🔧"),
    "plugins": CategoryInfo("Plugin", "🔧"),
    "services": CategoryInfo("Service", "⚙️"),
}
DEFAULT_CATEGORY = CategoryInfo("Update", "📦")


@dataclass(frozen=True)
class DeveloperName:
    """Developer known only by display name."""

    name: str


@dataclass(frozen=True)
class Developer:
    """Developer with contact details."""

    name: str
    link: Optional[str] = None
    username: Optional[str] = None
    channel: Optional[str] = None


DeveloperEntry = Union[DeveloperName, Developer]


@dataclass(frozen=True)
class Project:
    id: str
    name: str
    category: str
    repo: Optional[str]
    developers: Tuple[DeveloperEntry, ...] = ()
    status_url: Optional[str] = None
    last_release_tag: Optional[str] = None

    @property
    def info(self) -> CategoryInfo:
        return category_info(self.category)


def category_info(category: str) -> CategoryInfo:
    return CATEGORIES.get(category, DEFAULT_CATEGORY)


def _optional_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_developer(raw: Any) -> Optional[DeveloperEntry]:
    """Resolve a bare string or a structured record into a developer entry."""

    if isinstance(raw, str):
        name = raw.strip()
        return DeveloperName(name) if name else None
    if isinstance(raw, dict):
        name = _optional_str(raw.get("name"))
        if not name:
            return None
        return Developer(
            name=name,
            link=_optional_str(raw.get("link")),
            username=_optional_str(raw.get("username")),
            channel=_optional_str(raw.get("channel")),
        )
    return None


def parse_project(raw: Any, category: str) -> Optional[Project]:
    if not isinstance(raw, dict):
        return None
    project_id = _optional_str(raw.get("id"))
    name = _optional_str(raw.get("name"))
    if not project_id or not name:
        return None

    developers: List[DeveloperEntry] = []
    raw_developers = raw.get("developers") or []
    if isinstance(raw_developers, list):
        for entry in raw_developers:
            developer = parse_developer(entry)
            if developer is not None:
                developers.append(developer)

    last_release = raw.get("lastRelease")
    last_tag = _optional_str(last_release.get("tag")) if isinstance(last_release, dict) else None

    return Project(
        id=project_id,
        name=name,
        category=category,
        repo=_optional_str(raw.get("repo")),
        developers=tuple(developers),
        status_url=_optional_str(raw.get("statusUrl")),
        last_release_tag=last_tag,
    )


def load_projects(document: Any) -> List[Project]:
    """Return every valid project in the catalog; invalid ones are logged."""

    if not isinstance(document, dict):
        LOGGER.warning("Catalog document is not an object; no projects loaded")
        return []

    projects: List[Project] = []
    for category, items in document.items():
        if not isinstance(items, list):
            continue
        for index, raw in enumerate(items):
            project = parse_project(raw, category)
            if project is None:
                LOGGER.warning("Skipping invalid catalog entry %s[%s]", category, index)
                continue
            projects.append(project)
    return projects


def format_developers(developers: Iterable[DeveloperEntry]) -> str:
    parts = []
    for developer in developers:
        if isinstance(developer, Developer) and developer.link:
            parts.append(f"[{developer.name}]({developer.link})")
        else:
            parts.append(developer.name)
    return ", ".join(parts)


def apply_release(
    document: Any,
    project: Project,
    release: Optional[Release],
    checked_at: str,
) -> bool:
    """Record a check (and optionally a new release) on the raw catalog entry.

    Returns False when the project is no longer present in ``document``.
    """

    if not isinstance(document, dict):
        return False
    items = document.get(project.category)
    if not isinstance(items, list):
        return False
    for raw in items:
        if isinstance(raw, dict) and raw.get("id") == project.id:
            if release is not None:
                raw["lastRelease"] = {
                    "tag": release.tag,
                    "url": release.url,
                    "published_at": release.published_at,
                }
            raw["lastChecked"] = checked_at
            return True
    return False
