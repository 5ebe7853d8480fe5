"""Tests for the JSON-file and in-memory key-value stores."""

import json

import pytest

from core.errors import PersistenceError
from infrastructure.kv_store import JsonFileStore, MemoryStore


def test_memory_store_basic_operations():
    store = MemoryStore()
    store.put("a:1", {"at": 1})
    store.put_many({"a:2": 2, "b:1": 3})

    assert store.get("a:1") == {"at": 1}
    assert sorted(k for k, _ in store.items("a:")) == ["a:1", "a:2"]

    store.remove(["a:1", "missing"])
    assert store.get("a:1") is None
    assert len(store) == 2


def test_items_snapshot_allows_removal_while_iterating():
    store = MemoryStore({"x:1": 1, "x:2": 2})
    for key, _ in store.items("x:"):
        store.remove([key])
    assert len(store) == 0


def test_json_store_persists_across_instances(tmp_path):
    path = tmp_path / "state" / "triage.json"
    first = JsonFileStore(path)
    first.put("cleanup:album:processed", ["g1", "g2"])
    first.put_many({"cooldown:photo:1": {"at": 5, "days": 7}})

    second = JsonFileStore(path)
    assert second.get("cleanup:album:processed") == ["g1", "g2"]
    assert second.get("cooldown:photo:1") == {"at": 5, "days": 7}


def test_json_store_removal_is_durable(tmp_path):
    path = tmp_path / "triage.json"
    store = JsonFileStore(path)
    store.put("k", 1)
    store.remove(["k"])

    assert json.loads(path.read_text(encoding="utf-8")) == {}
    assert not (tmp_path / "triage.json.tmp").exists()


def test_json_store_rejects_corrupt_file(tmp_path):
    path = tmp_path / "triage.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(PersistenceError):
        JsonFileStore(path)


def test_json_store_rejects_non_object_file(tmp_path):
    path = tmp_path / "triage.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(PersistenceError):
        JsonFileStore(path)


def test_json_store_write_failure_raises_persistence_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    # Parent "directory" is a regular file, so the write cannot succeed
    store = JsonFileStore(blocker / "triage.json")

    with pytest.raises(PersistenceError):
        store.put("k", 1)


def test_failed_write_leaves_store_unchanged(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    store = JsonFileStore(blocker / "triage.json")

    with pytest.raises(PersistenceError):
        store.put("cleanup:a:checkpoint", {"index": 3})
    with pytest.raises(PersistenceError):
        store.put_many({"cooldown:photo:1": {"at": 5, "days": 7}})

    assert store.get("cleanup:a:checkpoint") is None
    assert store.get("cooldown:photo:1") is None
    assert len(store) == 0


def test_failed_removal_keeps_entry(tmp_path):
    path = tmp_path / "state" / "triage.json"
    store = JsonFileStore(path)
    store.put("k", 1)
    # Replace the state directory with a file so the next write fails
    path.unlink()
    path.parent.rmdir()
    path.parent.write_text("", encoding="utf-8")

    with pytest.raises(PersistenceError):
        store.remove(["k"])

    assert store.get("k") == 1
