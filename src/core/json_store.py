"""Crash-safe JSON document storage.

Every write goes through ``<name>.tmp`` and an atomic ``os.replace`` so the
file on disk is always either the previous or the new complete document.
The previous bytes are kept in ``<name>.bak`` as one generation of rollback.
"""

from __future__ import annotations

import enum
import json
import logging
import os
import shutil
from dataclasses import dataclass
from typing import Any

LOGGER = logging.getLogger(__name__)

TMP_SUFFIX = ".tmp"
BACKUP_SUFFIX = ".bak"


class LoadStatus(enum.Enum):
    PRIMARY = "primary"
    RECOVERED = "recovered"
    MISSING = "missing"
    CORRUPT = "corrupt"


@dataclass(frozen=True)
class LoadResult:
    """Outcome of reading a document, including where the value came from."""

    value: Any
    status: LoadStatus

    @property
    def ok(self) -> bool:
        return self.status in (LoadStatus.PRIMARY, LoadStatus.RECOVERED)


def tmp_path_for(path: str) -> str:
    return f"{path}{TMP_SUFFIX}"


def backup_path_for(path: str) -> str:
    return f"{path}{BACKUP_SUFFIX}"


def _read_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


class JsonStore:
    """Atomic read/write of JSON documents with backup recovery."""

    def write(self, path: str, value: Any, *, backup: bool = True) -> None:
        """Replace the document at ``path`` with ``value``.

        Raises ``OSError`` when the filesystem refuses the write or rename, and
        ``TypeError``/``ValueError`` when ``value`` cannot be stored as UTF-8 JSON.
        The temp file never outlives a failed call and ``path`` keeps its
        previous content.
        """

        # Encoding errors surface here, before any file is touched.
        payload = json.dumps(value, indent=2, ensure_ascii=False).encode("utf-8")
        tmp_path = tmp_path_for(path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        try:
            with open(tmp_path, "wb") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())

            if backup and os.path.exists(path):
                shutil.copyfile(path, backup_path_for(path))

            os.replace(tmp_path, path)
        except Exception:
            try:
                os.remove(tmp_path)
            except FileNotFoundError:
                pass
            except OSError:
                LOGGER.debug("Could not remove temp file %s", tmp_path, exc_info=True)
            LOGGER.error("Failed to write JSON atomically to %s", path, exc_info=True)
            raise

    def load(self, path: str) -> LoadResult:
        """Read ``path``, falling back to its backup when needed."""

        main_missing = False
        try:
            return LoadResult(_read_json(path), LoadStatus.PRIMARY)
        except FileNotFoundError:
            main_missing = True
        except (OSError, ValueError):
            LOGGER.warning("Main JSON file %s is unreadable, trying backup", path, exc_info=True)

        backup_path = backup_path_for(path)
        try:
            value = _read_json(backup_path)
        except FileNotFoundError:
            if main_missing:
                return LoadResult(None, LoadStatus.MISSING)
            LOGGER.error("No backup available for corrupt file %s", path)
            return LoadResult(None, LoadStatus.CORRUPT)
        except (OSError, ValueError):
            LOGGER.error("Both %s and its backup are unreadable", path, exc_info=True)
            return LoadResult(None, LoadStatus.CORRUPT)

        LOGGER.info("Recovered %s from backup", path)
        self._restore(path, value)
        return LoadResult(value, LoadStatus.RECOVERED)

    def read(self, path: str, default: Any = None) -> Any:
        """Return the stored value, or ``default`` when nothing usable exists."""

        result = self.load(path)
        if not result.ok:
            return default
        return result.value

    def _restore(self, path: str, value: Any) -> None:
        # The recovered value is already in hand, so a failed restore only
        # costs us the repaired main file.
        try:
            self.write(path, value, backup=False)
        except (OSError, TypeError, ValueError):
            LOGGER.warning("Could not restore %s from backup", path)
        else:
            LOGGER.info("Restored %s from backup", path)
