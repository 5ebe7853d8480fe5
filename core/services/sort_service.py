"""Sorting service for `ImageDescriptor` collections.

The service performs multi-key sorting across descriptors, handling None values
and per-key ascending/descending ordering. The result is the canonical order
fed to the similarity grouper, so it must be stable and deterministic.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from core.models import ImageDescriptor

SORT_PRESETS: dict[str, list[tuple[str, bool]]] = {
    "date_desc": [("captured_at_millis", False), ("id", False)],
    "date_asc": [("captured_at_millis", True), ("id", True)],
    "size_desc": [("size_bytes", False), ("id", False)],
    "size_asc": [("size_bytes", True), ("id", True)],
    "id_asc": [("id", True)],
    "id_desc": [("id", False)],
}

DEFAULT_SORT = SORT_PRESETS["date_desc"]


class SortService:
    """Provides sorting utilities for descriptor lists."""

    def sort(
        self, descriptors: Iterable[ImageDescriptor], sort_keys: list[tuple[str, bool]]
    ) -> list[ImageDescriptor]:
        """Return descriptors sorted by the provided keys.

        Args:
            descriptors: Descriptors to sort; the input is not modified.
            sort_keys: List of tuples (field_name, ascending).
        """
        items = list(descriptors)
        if not sort_keys:
            return items

        # Build a decorated list with adjusted values for per-key order
        decorated: list[tuple[tuple[Any, ...], ImageDescriptor]] = []
        for item in items:
            row: list[Any] = []
            for field_name, ascending in sort_keys:
                value = getattr(item, field_name, None)
                if value is None:
                    value = 0
                if isinstance(value, (int, float)):
                    row.append(value if ascending else -value)
                else:
                    # For strings/others, embed a leading flag to control order
                    row.append((0, str(value)) if ascending else (1, str(value)))
            decorated.append((tuple(row), item))

        decorated.sort(key=lambda x: x[0])
        return [it for _, it in decorated]

    def sort_preset(
        self, descriptors: Iterable[ImageDescriptor], preset: str
    ) -> list[ImageDescriptor]:
        """Sort using one of the named `SORT_PRESETS`."""
        if preset not in SORT_PRESETS:
            raise ValueError(f"Unknown sort preset: {preset}")
        return self.sort(descriptors, SORT_PRESETS[preset])
