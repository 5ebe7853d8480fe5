"""Collaborator interfaces used by the engine services.

The engine only talks to persistence and to the image metadata source through
the protocols below, so either side can be swapped (JSON file, in-memory map,
CSV export, media library) without touching the services.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
import time
from typing import Any, Protocol

from core.models import ImageDescriptor


class KeyValueStore(Protocol):
    """Durable string-keyed map holding JSON-compatible values.

    `put`, `put_many` and `remove` must be durable before returning.
    """

    def get(self, key: str) -> Any | None:
        """Return the value stored under `key`, or None."""
        raise NotImplementedError

    def put(self, key: str, value: Any) -> None:
        """Store `value` under `key`, replacing any previous value."""
        raise NotImplementedError

    def put_many(self, values: Mapping[str, Any]) -> None:
        """Store several values in a single write."""
        raise NotImplementedError

    def remove(self, keys: Iterable[str]) -> None:
        """Remove `keys`; unknown keys are ignored."""
        raise NotImplementedError

    def items(self, prefix: str = "") -> Iterator[tuple[str, Any]]:
        """Iterate over all (key, value) pairs whose key starts with `prefix`."""
        raise NotImplementedError


class ImageSource(Protocol):
    """Image metadata collaborator listing albums and their images."""

    def list_images(self, album_id: str) -> list[ImageDescriptor]:
        """Return the album's descriptors in canonical order."""
        raise NotImplementedError

    def count_images(self, album_id: str) -> int:
        """Return the live image count of the album."""
        raise NotImplementedError

    def list_albums(self) -> list[str]:
        """Return all known album ids."""
        raise NotImplementedError


def current_millis() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)
