from __future__ import annotations

import json
import os

import pytest

from core.json_store import JsonStore, LoadStatus, backup_path_for, tmp_path_for


def _read(path) -> object:
    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def test_write_then_load_returns_primary(tmp_path) -> None:
    store = JsonStore()
    path = str(tmp_path / "state" / "doc.json")

    store.write(path, {"items": ["a", "b"]})
    result = store.load(path)

    assert result.status is LoadStatus.PRIMARY
    assert result.value == {"items": ["a", "b"]}
    assert not os.path.exists(tmp_path_for(path))


def test_second_write_keeps_previous_generation_in_backup(tmp_path) -> None:
    store = JsonStore()
    path = str(tmp_path / "doc.json")

    store.write(path, {"version": 1})
    assert not os.path.exists(backup_path_for(path))
    store.write(path, {"version": 2})

    assert _read(path) == {"version": 2}
    assert _read(backup_path_for(path)) == {"version": 1}


def test_missing_main_is_recovered_from_backup(tmp_path) -> None:
    store = JsonStore()
    path = str(tmp_path / "doc.json")
    store.write(path, {"version": 1})
    store.write(path, {"version": 2})
    os.remove(path)

    result = store.load(path)

    assert result.status is LoadStatus.RECOVERED
    assert result.value == {"version": 1}
    assert _read(path) == {"version": 1}
    assert store.read(path) == {"version": 1}


def test_corrupt_main_does_not_overwrite_good_backup(tmp_path) -> None:
    store = JsonStore()
    path = str(tmp_path / "doc.json")
    store.write(path, ["good"])
    store.write(path, ["newer"])
    with open(path, "w", encoding="utf-8") as handle:
        handle.write('{"truncated": ')

    result = store.load(path)

    assert result.status is LoadStatus.RECOVERED
    assert result.value == ["good"]
    assert _read(path) == ["good"]
    assert _read(backup_path_for(path)) == ["good"]


def test_corrupt_without_backup_is_reported(tmp_path) -> None:
    store = JsonStore()
    path = str(tmp_path / "doc.json")
    with open(path, "w", encoding="utf-8") as handle:
        handle.write("not json")

    result = store.load(path)

    assert result.status is LoadStatus.CORRUPT
    assert not result.ok
    assert store.read(path, default=[]) == []


def test_missing_everything_is_distinct_from_corrupt(tmp_path) -> None:
    store = JsonStore()
    path = str(tmp_path / "absent.json")

    result = store.load(path)

    assert result.status is LoadStatus.MISSING
    assert result.value is None
    assert store.read(path, default={"fresh": True}) == {"fresh": True}


def test_failed_rename_cleans_up_and_keeps_old_content(tmp_path, monkeypatch) -> None:
    store = JsonStore()
    path = str(tmp_path / "doc.json")
    store.write(path, {"version": 1})

    def _refuse(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("core.json_store.os.replace", _refuse)

    with pytest.raises(OSError):
        store.write(path, {"version": 2})

    assert not os.path.exists(tmp_path_for(path))
    assert _read(path) == {"version": 1}


def test_leftover_temp_file_from_crash_is_ignored(tmp_path) -> None:
    store = JsonStore()
    path = str(tmp_path / "doc.json")
    store.write(path, {"committed": True})
    # Killed after writing part of the temp file, before the rename.
    with open(tmp_path_for(path), "w", encoding="utf-8") as handle:
        handle.write('{"committed": fa')

    assert store.read(path) == {"committed": True}

    store.write(path, {"committed": "again"})
    assert store.read(path) == {"committed": "again"}
    assert not os.path.exists(tmp_path_for(path))


def test_unencodable_value_leaves_no_temp_file(tmp_path) -> None:
    store = JsonStore()
    path = str(tmp_path / "doc.json")
    store.write(path, {"v": 1})

    with pytest.raises(UnicodeEncodeError):
        store.write(path, {"v": "\ud800"})

    assert not os.path.exists(tmp_path_for(path))
    assert _read(path) == {"v": 1}
