"""Retry with capped exponential backoff, plus interval jitter.

Independent pollers hitting the same upstream on a fixed period drift into
lockstep; jitter spreads them out, and the capped backoff bounds how hard a
failing endpoint gets hammered.
"""

from __future__ import annotations

import logging
import random
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from core.errors import NetworkError, RetryCancelledError
from core.task_registry import TaskRegistry

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def jitter(
    base: float,
    fraction: float = 0.1,
    *,
    delay_only: bool = False,
    rng: Optional[random.Random] = None,
) -> float:
    """Perturb ``base`` by up to ``fraction`` of its value.

    Symmetric (``base ± base*fraction``) by default; with ``delay_only`` the
    result is never earlier than ``base``.
    """

    rng = rng or random
    spread = base * fraction
    if delay_only:
        return base + rng.random() * spread
    return base + (rng.random() * 2 - 1) * spread


def startup_delay(max_delay: float = 30.0, rng: Optional[random.Random] = None) -> float:
    """Random stagger for initial startup work."""

    rng = rng or random
    return rng.random() * max_delay


def backoff_delay(attempt: int, base: float = 1.0, cap: float = 30.0) -> float:
    return min(base * (2 ** attempt), cap)


class BackoffPoller:
    """Runs an unreliable fetch with retries spaced by registry sleeps."""

    def __init__(
        self,
        registry: TaskRegistry,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        retry_on: Tuple[Type[BaseException], ...] = (NetworkError,),
    ) -> None:
        self._registry = registry
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._retry_on = retry_on

    async def fetch_with_retry(
        self,
        name: str,
        operation: Callable[[], Awaitable[T]],
        max_attempts: int = 3,
    ) -> T:
        """Return the first successful result of ``operation``.

        The last failure is re-raised once ``max_attempts`` is used up. If the
        registry is drained while waiting between attempts the loop stops with
        ``RetryCancelledError``.
        """

        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        for attempt in range(1, max_attempts + 1):
            try:
                return await operation()
            except self._retry_on as exc:
                if attempt == max_attempts:
                    LOGGER.warning("%s failed after %s attempts: %s", name, attempt, exc)
                    raise
                delay = backoff_delay(attempt, self._base_delay, self._max_delay)
                LOGGER.warning(
                    "%s failed (attempt %s/%s), retrying in %.1fs: %s",
                    name,
                    attempt,
                    max_attempts,
                    delay,
                    exc,
                )
                completed = await self._registry.sleep(f"{name}-retry-{attempt}", delay)
                if not completed:
                    raise RetryCancelledError(f"{name} cancelled due to shutdown") from exc

        raise AssertionError("unreachable")
