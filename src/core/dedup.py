"""Bounded, persisted record of already emitted item identifiers."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from core.json_store import JsonStore
from core.locks import LockManager

LOGGER = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10


def _namespace_keys(document: Any, namespace: str, path: str) -> list[str]:
    if not isinstance(document, dict):
        return []
    raw = document.get(namespace, [])
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        LOGGER.warning("Ignoring malformed dedup namespace %s in %s", namespace, path)
        return []
    return list(raw)


class DedupTracker:
    """One namespace of a shared dedup document.

    Several trackers may share the same file (one namespace per source), so
    the lock is keyed by the file path, not by the namespace. Each record
    keeps only the newest ``capacity`` keys; older ones are evicted first.
    """

    def __init__(
        self,
        store: JsonStore,
        locks: LockManager,
        path: str,
        namespace: str,
        capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._store = store
        self._locks = locks
        self._path = path
        self._namespace = namespace
        self._capacity = capacity
        self._keys: list[str] = []

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def keys(self) -> list[str]:
        return list(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def has(self, key: str) -> bool:
        return key in self._keys

    async def load(self) -> list[str]:
        async with self._locks.hold(self._path):
            document = self._store.read(self._path, {})
            self._keys = _namespace_keys(document, self._namespace, self._path)[-self._capacity :]
        LOGGER.info("Loaded %s previously posted %s items", len(self._keys), self._namespace)
        return self.keys

    async def mark_and_persist(self, key: str) -> None:
        await self._update([key])

    async def seed(self, keys: Iterable[str]) -> None:
        """Mark many keys at once with a single write."""

        await self._update(list(keys))

    async def _update(self, new_keys: list[str]) -> None:
        if not new_keys:
            return
        async with self._locks.hold(self._path):
            document = self._store.read(self._path, {})
            if not isinstance(document, dict):
                LOGGER.warning("Replacing non-object dedup document %s", self._path)
                document = {}
            keys = _namespace_keys(document, self._namespace, self._path)
            for key in new_keys:
                if key in keys:
                    keys.remove(key)
                keys.append(key)
            keys = keys[-self._capacity :]
            document[self._namespace] = keys
            self._store.write(self._path, document)
            self._keys = keys
