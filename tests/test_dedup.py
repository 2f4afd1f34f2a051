from __future__ import annotations

import asyncio
import json

from core.dedup import DedupTracker
from core.json_store import JsonStore
from core.locks import LockManager


def _tracker(path, namespace: str = "redditPosts", capacity: int = 10, locks=None) -> DedupTracker:
    return DedupTracker(JsonStore(), locks or LockManager(), str(path), namespace, capacity=capacity)


def test_keeps_only_newest_keys(tmp_path) -> None:
    path = tmp_path / "postedItems.json"
    tracker = _tracker(path)

    async def run() -> list[str]:
        await tracker.load()
        for index in range(15):
            await tracker.mark_and_persist(f"key-{index}")
        return await _tracker(path).load()

    reloaded = asyncio.run(run())
    expected = [f"key-{index}" for index in range(5, 15)]

    assert tracker.keys == expected
    assert reloaded == expected
    assert not tracker.has("key-0")
    assert json.loads(path.read_text(encoding="utf-8")) == {"redditPosts": expected}


def test_namespaces_share_one_document(tmp_path) -> None:
    path = tmp_path / "postedItems.json"
    locks = LockManager()
    posts = _tracker(path, "redditPosts", locks=locks)
    updates = _tracker(path, "updatePosts", locks=locks)

    async def run() -> None:
        await asyncio.gather(
            posts.mark_and_persist("https://example.test/post"),
            updates.mark_and_persist("plugin@v1.0.0"),
        )

    asyncio.run(run())

    assert json.loads(path.read_text(encoding="utf-8")) == {
        "redditPosts": ["https://example.test/post"],
        "updatePosts": ["plugin@v1.0.0"],
    }


def test_marking_known_key_moves_it_to_newest(tmp_path) -> None:
    tracker = _tracker(tmp_path / "postedItems.json", capacity=3)

    async def run() -> None:
        await tracker.seed(["a", "b", "c"])
        await tracker.mark_and_persist("a")
        await tracker.mark_and_persist("d")

    asyncio.run(run())

    assert tracker.keys == ["c", "a", "d"]


def test_malformed_namespace_loads_empty(tmp_path) -> None:
    path = tmp_path / "postedItems.json"
    path.write_text(json.dumps({"redditPosts": "oops", "updatePosts": ["x"]}), encoding="utf-8")
    tracker = _tracker(path)

    async def run() -> None:
        await tracker.load()
        await tracker.mark_and_persist("fresh")

    asyncio.run(run())

    assert tracker.keys == ["fresh"]
    assert json.loads(path.read_text(encoding="utf-8"))["updatePosts"] == ["x"]


def test_load_trims_oversized_history(tmp_path) -> None:
    path = tmp_path / "postedItems.json"
    path.write_text(json.dumps({"redditPosts": [str(index) for index in range(25)]}), encoding="utf-8")
    tracker = _tracker(path)

    assert asyncio.run(tracker.load()) == [str(index) for index in range(15, 25)]
    assert len(tracker) == 10
