"""Central registry of named timers and periodic tasks.

Anything that waits on the clock (one-shot delays, fixed intervals, cron
schedules, retry sleeps) is registered here by name so a shutdown can
enumerate and cancel it in one place. Registering a name that is already
in use cancels the previous entry first, so a name never has two live
timers.

Callbacks that are already running are not preempted: they run as shielded
in-flight tasks and ``drain_all`` waits for them (bounded by a timeout)
instead of cancelling them halfway through a write.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Coroutine, Optional, Union

from croniter import croniter

from core.errors import RetryCancelledError, ValidationError

LOGGER = logging.getLogger(__name__)

Callback = Callable[[], Union[None, Awaitable[None]]]


class TaskKind(enum.Enum):
    ONCE = "once"
    INTERVAL = "interval"
    CRON = "cron"
    SLEEP = "sleep"


class RegistryState(enum.Enum):
    ACTIVE = "active"
    DRAINING = "draining"


@dataclass(frozen=True)
class TaskEntry:
    """Handle for one registered timer."""

    name: str
    kind: TaskKind
    task: asyncio.Task

    def cancelled(self) -> bool:
        return self.task.cancelled()


def validate_cron(expression: str) -> None:
    if not isinstance(expression, str) or not croniter.is_valid(expression):
        raise ValidationError(f"Invalid cron expression: {expression!r}")


def next_cron_run(expression: str, base: Optional[datetime] = None) -> datetime:
    """Return the next time ``expression`` fires after ``base`` (local time)."""

    validate_cron(expression)
    start = base or datetime.now().astimezone()
    return croniter(expression, start).get_next(datetime)


class TaskRegistry:
    """Owns every scheduled task of the process."""

    def __init__(self) -> None:
        self._entries: dict[str, TaskEntry] = {}
        self._inflight: set[asyncio.Task] = set()
        self._state = RegistryState.ACTIVE

    @property
    def state(self) -> RegistryState:
        return self._state

    @property
    def is_draining(self) -> bool:
        return self._state is RegistryState.DRAINING

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, name: str) -> Optional[TaskEntry]:
        return self._entries.get(name)

    def schedule_once(self, name: str, delay: float, fn: Callback) -> Optional[TaskEntry]:
        """Run ``fn`` once after ``delay`` seconds."""

        return self._register(name, TaskKind.ONCE, lambda: self._run_once(name, delay, fn))

    def schedule_interval(self, name: str, period: float, fn: Callback) -> Optional[TaskEntry]:
        """Run ``fn`` every ``period`` seconds until cancelled."""

        if period <= 0:
            raise ValidationError(f"Interval period must be positive, got {period}")
        return self._register(name, TaskKind.INTERVAL, lambda: self._run_interval(name, period, fn))

    def schedule_cron(self, name: str, expression: str, fn: Callback) -> Optional[TaskEntry]:
        """Run ``fn`` whenever the cron ``expression`` fires (local time)."""

        validate_cron(expression)
        return self._register(name, TaskKind.CRON, lambda: self._run_cron(name, expression, fn))

    def cancel(self, name: str) -> bool:
        entry = self._entries.pop(name, None)
        if entry is None:
            return False
        entry.task.cancel()
        LOGGER.debug("Cancelled %s task %s", entry.kind.value, name)
        return True

    async def sleep(self, name: str, seconds: float) -> bool:
        """Wait ``seconds``; return False if the wait was cancelled.

        Retry loops use this so a shutdown can cut a pending backoff short
        instead of leaving a dangling timer behind.
        """

        entry = self._register(name, TaskKind.SLEEP, lambda: asyncio.sleep(seconds))
        if entry is None:
            return False
        try:
            await asyncio.wait({entry.task})
        except asyncio.CancelledError:
            entry.task.cancel()
            raise
        return not entry.task.cancelled()

    async def drain_all(self, timeout: Optional[float] = None) -> None:
        """Stop accepting work, cancel every entry, wait for running callbacks.

        Safe to call more than once; later calls only wait for whatever is
        still in flight.
        """

        first_call = self._state is RegistryState.ACTIVE
        self._state = RegistryState.DRAINING
        current = asyncio.current_task()

        entries = list(self._entries.values())
        self._entries.clear()
        if entries:
            LOGGER.info("Cancelling %s scheduled tasks", len(entries))
        for entry in entries:
            entry.task.cancel()
            LOGGER.debug("Cancelled %s task %s", entry.kind.value, entry.name)
        pending_entries = [entry.task for entry in entries if entry.task is not current]
        if pending_entries:
            await asyncio.gather(*pending_entries, return_exceptions=True)

        inflight = {task for task in self._inflight if not task.done() and task is not current}
        if inflight:
            LOGGER.info("Waiting for %s running tasks to finish", len(inflight))
            _, still_running = await asyncio.wait(inflight, timeout=timeout)
            if still_running:
                LOGGER.warning("%s tasks still running after drain timeout", len(still_running))

        if first_call:
            LOGGER.info("All scheduled tasks cleared")

    def stats(self) -> dict[str, Any]:
        counts = {kind.value: 0 for kind in TaskKind}
        for entry in self._entries.values():
            counts[entry.kind.value] += 1
        counts["running"] = sum(1 for task in self._inflight if not task.done())
        counts["draining"] = self.is_draining
        return counts

    def _register(
        self,
        name: str,
        kind: TaskKind,
        factory: Callable[[], Coroutine[Any, Any, Any]],
    ) -> Optional[TaskEntry]:
        if self.is_draining:
            LOGGER.warning("Task %s not scheduled - shutdown in progress", name)
            return None

        self.cancel(name)
        task = asyncio.get_running_loop().create_task(factory(), name=f"herald:{name}")
        entry = TaskEntry(name=name, kind=kind, task=task)
        self._entries[name] = entry
        task.add_done_callback(lambda done, key=name: self._forget(key, done))
        if kind is not TaskKind.SLEEP:
            LOGGER.debug("Registered %s task %s", kind.value, name)
        return entry

    def _forget(self, name: str, task: asyncio.Task) -> None:
        entry = self._entries.get(name)
        if entry is not None and entry.task is task:
            del self._entries[name]

    async def _run_once(self, name: str, delay: float, fn: Callback) -> None:
        await asyncio.sleep(max(0.0, delay))
        # Detach before running so the callback may register the same name again.
        self._forget(name, asyncio.current_task())
        await self._invoke(name, fn)

    async def _run_interval(self, name: str, period: float, fn: Callback) -> None:
        while True:
            await asyncio.sleep(period)
            await self._invoke(name, fn)

    async def _run_cron(self, name: str, expression: str, fn: Callback) -> None:
        schedule = croniter(expression, datetime.now().astimezone())
        while True:
            next_run = schedule.get_next(datetime)
            delay = (next_run - datetime.now().astimezone()).total_seconds()
            await asyncio.sleep(max(0.0, delay))
            await self._invoke(name, fn)

    async def _invoke(self, name: str, fn: Callback) -> None:
        task = asyncio.get_running_loop().create_task(self._call(name, fn), name=f"herald:{name}:run")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        await asyncio.shield(task)

    async def _call(self, name: str, fn: Callback) -> None:
        try:
            result = fn()
            if inspect.isawaitable(result):
                await result
        except RetryCancelledError:
            LOGGER.info("Task %s stopped for shutdown", name)
        except Exception:
            LOGGER.exception("Scheduled task %s failed", name)
