"""Settings access helpers for JSON-based configuration."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any


class JsonSettings:
    """Lightweight JSON settings reader with dotted-key access."""

    def __init__(self, settings_path: str | Path) -> None:
        self._path = Path(settings_path)
        if not self._path.exists():
            raise FileNotFoundError(f"settings.json not found: {self._path}")
        with self._path.open("r", encoding="utf-8") as f:
            self._data = json.load(f)

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str, default: Any | None = None) -> Any:
        """Return value for dotted `key`, or `default` if not present."""
        parts = key.split(".")
        node: Any = self._data
        for part in parts:
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node

    def get_int(self, key: str, default: int) -> int:
        """Return an integer setting; raise ValueError for non-numeric values."""
        value = self.get(key, default)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Setting {key} must be a number, got {value!r}")
        return int(value)

    def get_float(self, key: str, default: float) -> float:
        """Return a float setting; raise ValueError for non-numeric values."""
        value = self.get(key, default)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Setting {key} must be a number, got {value!r}")
        return float(value)

    def get_int_list(self, key: str, default: list[int]) -> list[int]:
        """Return a non-empty list of integers, e.g. cooldown day options."""
        value = self.get(key, default)
        if not isinstance(value, list) or not value:
            raise ValueError(f"Setting {key} must be a non-empty list, got {value!r}")
        try:
            return [int(v) for v in value]
        except (TypeError, ValueError) as ex:
            raise ValueError(f"Setting {key} must contain integers: {value!r}") from ex
