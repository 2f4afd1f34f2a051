from __future__ import annotations

import asyncio
import random

import pytest

from core.backoff import BackoffPoller, backoff_delay, jitter, startup_delay
from core.errors import NetworkError, RetryCancelledError
from core.task_registry import TaskRegistry


class FlakyOperation:
    def __init__(self, failures: int, result: str = "ok") -> None:
        self.failures = failures
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise NetworkError(f"failure {self.calls}")
        return self.result


def test_retries_until_success() -> None:
    operation = FlakyOperation(failures=2)

    async def run() -> str:
        poller = BackoffPoller(TaskRegistry(), base_delay=0, max_delay=0)
        return await poller.fetch_with_retry("feed", operation, max_attempts=3)

    assert asyncio.run(run()) == "ok"
    assert operation.calls == 3


def test_last_failure_is_raised_when_attempts_run_out() -> None:
    operation = FlakyOperation(failures=5)

    async def run() -> None:
        poller = BackoffPoller(TaskRegistry(), base_delay=0, max_delay=0)
        await poller.fetch_with_retry("feed", operation, max_attempts=2)

    with pytest.raises(NetworkError, match="failure 2"):
        asyncio.run(run())
    assert operation.calls == 2


def test_errors_outside_retry_set_are_not_retried() -> None:
    calls: list[int] = []

    async def operation() -> None:
        calls.append(1)
        raise ValueError("bad payload")

    async def run() -> None:
        poller = BackoffPoller(TaskRegistry(), base_delay=0, max_delay=0)
        await poller.fetch_with_retry("feed", operation, max_attempts=3)

    with pytest.raises(ValueError):
        asyncio.run(run())
    assert calls == [1]


def test_drain_during_backoff_cancels_retry() -> None:
    operation = FlakyOperation(failures=5)

    async def run() -> None:
        registry = TaskRegistry()
        poller = BackoffPoller(registry, base_delay=10, max_delay=30)
        pending = asyncio.create_task(poller.fetch_with_retry("feed", operation, max_attempts=3))
        await asyncio.sleep(0.01)
        assert "feed-retry-1" in registry
        await registry.drain_all()
        await pending

    with pytest.raises(RetryCancelledError):
        asyncio.run(run())
    assert operation.calls == 1


def test_backoff_delay_doubles_up_to_cap() -> None:
    assert backoff_delay(1, base=1, cap=30) == 2
    assert backoff_delay(2, base=1, cap=30) == 4
    assert backoff_delay(10, base=1, cap=30) == 30


def test_jitter_stays_within_bounds() -> None:
    rng = random.Random(7)

    samples = [jitter(100, 0.1, rng=rng) for _ in range(200)]
    delayed = [jitter(100, 0.1, delay_only=True, rng=rng) for _ in range(200)]

    assert all(90 <= value <= 110 for value in samples)
    assert any(value < 100 for value in samples)
    assert all(100 <= value <= 110 for value in delayed)
    assert 0 <= startup_delay(30, rng=rng) <= 30
