"""Sliding-window rate limiting for user-triggered actions.

State is kept per ``(actor, action)`` key: the timestamps inside the trailing
window, whether the actor was already warned in this window, and an optional
block deadline. Blocks are lifted lazily on the next check.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional

LOGGER = logging.getLogger(__name__)

DEFAULT_ACTION = "default"


@dataclass(frozen=True)
class RateLimits:
    window_seconds: float = 60.0
    max_requests: int = 10
    warn_threshold: int = 8
    block_seconds: float = 30.0


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    warning: bool = False
    retry_after: Optional[int] = None
    remaining: Optional[int] = None
    message: Optional[str] = None


@dataclass
class _Window:
    timestamps: list[float] = field(default_factory=list)
    warned: bool = False
    blocked_until: Optional[float] = None


class RateLimiter:
    """In-memory limiter; touched only from the event loop."""

    def __init__(
        self,
        defaults: Optional[RateLimits] = None,
        retention_seconds: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._defaults = defaults or RateLimits()
        self._retention = retention_seconds
        self._clock = clock
        self._action_limits: dict[str, RateLimits] = {}
        self._windows: dict[tuple[str, str], _Window] = {}

    def set_action_limits(self, action: str, **overrides: Any) -> RateLimits:
        limits = replace(self._defaults, **overrides)
        self._action_limits[action] = limits
        return limits

    def limits_for(self, action: str) -> RateLimits:
        return self._action_limits.get(action, self._defaults)

    def check(self, actor: str, action: str = DEFAULT_ACTION) -> RateDecision:
        """Decide whether ``actor`` may perform ``action`` now, and record it."""

        now = self._clock()
        limits = self.limits_for(action)
        key = (str(actor), action)
        window = self._windows.setdefault(key, _Window())

        if window.blocked_until is not None:
            if now < window.blocked_until:
                retry_after = math.ceil(window.blocked_until - now)
                return RateDecision(
                    allowed=False,
                    retry_after=retry_after,
                    message=f"You're sending commands too quickly. Please wait {retry_after} seconds.",
                )
            window.blocked_until = None

        window_start = now - limits.window_seconds
        window.timestamps = [ts for ts in window.timestamps if ts > window_start]

        if len(window.timestamps) >= limits.max_requests:
            LOGGER.warning(
                "Rate limited %s on %s after %s requests", actor, action, len(window.timestamps)
            )
            # The block replaces the window: once it expires the key starts fresh.
            window.blocked_until = now + limits.block_seconds
            window.timestamps = []
            window.warned = False
            retry_after = math.ceil(limits.block_seconds)
            return RateDecision(
                allowed=False,
                retry_after=retry_after,
                message=f"You've exceeded the rate limit. Please wait {retry_after} seconds.",
            )

        warning = False
        if len(window.timestamps) >= limits.warn_threshold:
            if not window.warned:
                window.warned = True
                warning = True
        else:
            window.warned = False

        window.timestamps.append(now)
        return RateDecision(
            allowed=True,
            warning=warning,
            remaining=limits.max_requests - len(window.timestamps),
            message="You're approaching the rate limit. Please slow down." if warning else None,
        )

    def cleanup(self) -> int:
        """Drop idle keys and expired blocks; return how many keys were removed."""

        now = self._clock()
        horizon = now - self._retention
        removed = 0
        for key, window in list(self._windows.items()):
            if window.blocked_until is not None:
                if now < window.blocked_until:
                    continue
                window.blocked_until = None
            if not window.timestamps or max(window.timestamps) < horizon:
                del self._windows[key]
                removed += 1

        LOGGER.debug(
            "Rate limiter cleanup complete: tracked=%s, blocked=%s",
            len(self._windows),
            self.blocked_count(),
        )
        return removed

    def blocked_count(self) -> int:
        now = self._clock()
        return sum(
            1
            for window in self._windows.values()
            if window.blocked_until is not None and now < window.blocked_until
        )

    def stats(self) -> dict[str, int]:
        return {
            "tracked_keys": len(self._windows),
            "blocked_keys": self.blocked_count(),
            "action_overrides": len(self._action_limits),
        }
