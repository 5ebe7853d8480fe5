"""Key-value persistence for cooldown ledgers and album cleanup state.

`JsonFileStore` keeps the whole map in memory and rewrites its JSON file on
every mutation through a temporary file and `os.replace`, so each write is
durable and atomic before the call returns. `MemoryStore` offers the same
interface without a file and is used for tests and dry runs.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
import json
import os
from pathlib import Path
from typing import Any

from loguru import logger

from core.errors import PersistenceError


class MemoryStore:
    """Non-durable in-process store."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any | None:
        return self._data.get(key)

    def put(self, key: str, value: Any) -> None:
        previous = dict(self._data)
        self._data[key] = value
        self._commit(previous)

    def put_many(self, values: Mapping[str, Any]) -> None:
        if not values:
            return
        previous = dict(self._data)
        self._data.update(values)
        self._commit(previous)

    def remove(self, keys: Iterable[str]) -> None:
        previous = dict(self._data)
        removed = False
        for key in keys:
            if key in self._data:
                del self._data[key]
                removed = True
        if removed:
            self._commit(previous)

    def items(self, prefix: str = "") -> Iterator[tuple[str, Any]]:
        # Snapshot so callers may mutate the store while iterating
        snapshot = [(k, v) for k, v in self._data.items() if k.startswith(prefix)]
        return iter(snapshot)

    def __len__(self) -> int:
        return len(self._data)

    def _commit(self, previous: dict[str, Any]) -> None:
        # A failed write leaves the map as it was before the mutation
        try:
            self._flush()
        except PersistenceError:
            self._data = previous
            raise

    def _flush(self) -> None:
        """Persist the current map; no-op for the in-memory store."""


class JsonFileStore(MemoryStore):
    """Durable store backed by a single JSON file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        super().__init__(self._read())

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as ex:
            raise PersistenceError(f"Cannot read state file {self._path}: {ex}") from ex
        except json.JSONDecodeError as ex:
            raise PersistenceError(f"Corrupt state file {self._path}: {ex}") from ex
        if not isinstance(data, dict):
            raise PersistenceError(f"State file {self._path} does not hold a JSON object")
        return data

    def _flush(self) -> None:
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as f:
                json.dump(self._data, f, ensure_ascii=False, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
        except OSError as ex:
            logger.error("Writing state file {} failed: {}", self._path, ex)
            raise PersistenceError(f"Cannot write state file {self._path}: {ex}") from ex
