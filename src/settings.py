"""Static configuration for herald.

All user-editable settings (feed, release monitor, rate limits, logging)
live in a single JSON file for quick edits without touching Python. Secrets
stay in the environment (.env).
"""

import json
import os

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# config.json sits next to the project root unless HERALD_CONFIG points elsewhere.
CONFIG_PATH = os.getenv("HERALD_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Persisted state: postedItems.json, reminders.json and the data.json catalog.
_state = _CONFIG.get("state", {})
DATA_DIR = _resolve_path(_state.get("data_dir", "data"))
# Dedup history kept per source; the feed watcher never looks further back.
DEDUP_CAPACITY = int(_state.get("dedup_capacity", 10))

# Feed watcher. An empty url disables it.
_feed = _CONFIG.get("feed", {})
FEED_URL = _feed.get("url", "")
FEED_CHECK_INTERVAL_MINUTES = float(_feed.get("check_interval_minutes", 15))
FEED_JITTER = float(_feed.get("jitter", 0.15))
FEED_POST_DELAY_SECONDS = float(_feed.get("post_delay_seconds", 1))
FEED_FOOTER = _feed.get("footer", "")
FEED_STARTUP_JITTER_SECONDS = float(_feed.get("startup_jitter_seconds", 30))

# Release monitor for the projects in data.json.
_releases = _CONFIG.get("releases", {})
RELEASES_ENABLED = bool(_releases.get("enabled", True))
RELEASES_SCHEDULE = _releases.get("schedule", "0 */6 * * *")
RELEASES_INITIAL_DELAY_SECONDS = float(_releases.get("initial_delay_seconds", 60))
RELEASES_PROJECT_DELAY_SECONDS = float(_releases.get("project_delay_seconds", 1))
RELEASES_ANNOUNCE_INITIAL = bool(_releases.get("announce_initial", False))

# Retry spacing for every upstream fetch.
_backoff = _CONFIG.get("backoff", {})
BACKOFF_BASE_SECONDS = float(_backoff.get("base_seconds", 1))
BACKOFF_MAX_SECONDS = float(_backoff.get("max_seconds", 30))
BACKOFF_MAX_ATTEMPTS = int(_backoff.get("max_attempts", 3))

# Sliding-window limits for user commands: "default" plus per-command overrides.
_rate_limits = _CONFIG.get("rate_limits", {})
RATE_LIMIT_DEFAULTS = _rate_limits.get("default", {})
RATE_LIMIT_OVERRIDES = {name: value for name, value in _rate_limits.items() if name != "default"}
RATE_LIMIT_CLEANUP_MINUTES = float(_CONFIG.get("rate_limit_cleanup_minutes", 5))

# Notification method switches adapters without changing core logic.
_notifications = _CONFIG.get("notifications", {})
NOTIFICATION_METHOD = _notifications.get("notification_method", "client")
NOTIFY_CHAT_ID = _notifications.get("chat_id")

# Upper bound for the whole shutdown sequence.
SHUTDOWN_TIMEOUT_SECONDS = float(_CONFIG.get("shutdown_timeout_seconds", 30))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
