"""Named async locks serializing read-modify-write cycles on documents."""

from __future__ import annotations

import asyncio
import inspect
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar, Union

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class LockManager:
    """Hands out one FIFO ``asyncio.Lock`` per resource name.

    Every compound "read document, compute, write document" sequence must run
    inside ``run_exclusive`` (or ``hold``) for that document's name, otherwise
    two callers can read the same version and silently drop each other's
    update.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiting: dict[str, int] = {}

    def _lock(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        return lock

    @asynccontextmanager
    async def hold(self, name: str) -> AsyncIterator[None]:
        lock = self._lock(name)
        if lock.locked():
            LOGGER.debug("Queued for lock %s (waiting=%s)", name, self.queue_length(name) + 1)
        self._waiting[name] = self._waiting.get(name, 0) + 1
        try:
            await lock.acquire()
        finally:
            self._waiting[name] -= 1
        try:
            yield
        finally:
            lock.release()

    async def run_exclusive(self, name: str, fn: Callable[[], Union[T, Awaitable[T]]]) -> T:
        """Run ``fn`` while holding the lock for ``name``.

        The lock is released on every exit path; exceptions raised by ``fn``
        propagate unchanged.
        """

        async with self.hold(name):
            result = fn()
            if inspect.isawaitable(result):
                result = await result
            return result

    def is_locked(self, name: str) -> bool:
        lock = self._locks.get(name)
        return bool(lock and lock.locked())

    def queue_length(self, name: str) -> int:
        return self._waiting.get(name, 0)
