"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class BackoffConfig:
    """Retry spacing for upstream fetches."""

    base_delay: float = 1.0
    max_delay: float = 30.0
    max_attempts: int = 3


@dataclass(frozen=True)
class FeedConfig:
    """Settings for the RSS feed watcher."""

    url: str
    check_interval: float = 15 * 60
    jitter_fraction: float = 0.15
    post_delay: float = 1.0
    footer: str = ""


@dataclass(frozen=True)
class ReleaseConfig:
    """Settings for the release monitor."""

    schedule: str = "0 */6 * * *"
    initial_delay: float = 60.0
    project_delay: float = 1.0


@dataclass(frozen=True)
class StateConfig:
    """Where persisted documents live and how much dedup history is kept."""

    data_dir: str
    dedup_capacity: int = 10

    @property
    def posted_items_path(self) -> str:
        return os.path.join(self.data_dir, "postedItems.json")

    @property
    def reminders_path(self) -> str:
        return os.path.join(self.data_dir, "reminders.json")

    @property
    def catalog_path(self) -> str:
        return os.path.join(self.data_dir, "data.json")
