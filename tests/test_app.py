from __future__ import annotations

import asyncio
from types import SimpleNamespace

import app
from core.task_registry import TaskRegistry


class FakeClient:
    def __init__(self) -> None:
        self.connected = True

    def is_connected(self) -> bool:
        return self.connected

    async def disconnect(self) -> None:
        self.connected = False


def test_shutdown_disconnects_even_when_a_callback_hangs(monkeypatch) -> None:
    monkeypatch.setattr(app.settings, "SHUTDOWN_TIMEOUT_SECONDS", 1.0)
    client = FakeClient()

    async def hang() -> None:
        await asyncio.sleep(30)

    async def run() -> bool:
        registry = TaskRegistry()
        registry.schedule_once("hang", 0, hang)
        await asyncio.sleep(0.01)
        return await app._shutdown(SimpleNamespace(registry=registry), client)

    assert asyncio.run(run()) is True
    assert client.connected is False
