"""Persistent cooldown ledger with randomized expiry.

Each recorded entity (a photo id or a similarity-group id) rests for a
duration drawn from a small pool of day counts. The drawn duration is stored
with the timestamp, so an entity's cooldown does not change until it is
recorded again or removed.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
import random
from typing import Any

from loguru import logger

from core.errors import InvalidArgumentError
from core.models import DAY_MILLIS, CooldownEntry
from core.services.interfaces import KeyValueStore

PHOTO_COOLDOWN_DAYS = (7, 12, 24)
GROUP_COOLDOWN_DAYS = (3, 5, 7)


def _parse_entry(value: Any) -> CooldownEntry | None:
    if not isinstance(value, dict):
        return None
    try:
        return CooldownEntry(
            last_processed_at_millis=int(value["at"]), cooldown_days=int(value["days"])
        )
    except (KeyError, TypeError, ValueError):
        return None


class CooldownLedger:
    """Tracks when entities were last processed, under one store namespace."""

    def __init__(
        self,
        store: KeyValueStore,
        namespace: str,
        duration_options_days: Sequence[int],
        rng: random.Random | None = None,
    ) -> None:
        if not duration_options_days or any(d <= 0 for d in duration_options_days):
            raise InvalidArgumentError(
                f"duration options must be positive day counts, got {list(duration_options_days)}"
            )
        self._store = store
        self._prefix = f"{namespace}:"
        self._options = list(duration_options_days)
        self._rng = rng or random.Random()

    @property
    def max_duration_days(self) -> int:
        """Longest duration this ledger can assign."""
        return max(self._options)

    def _storage_key(self, key: str) -> str:
        return self._prefix + str(key)

    def _new_value(self, now_millis: int) -> dict[str, int]:
        return {"at": int(now_millis), "days": self._rng.choice(self._options)}

    def record(self, key: str, now_millis: int) -> None:
        """Start a fresh cooldown for `key`, replacing any previous one."""
        self._store.put(self._storage_key(key), self._new_value(now_millis))

    def record_batch(self, keys: Iterable[str], now_millis: int) -> None:
        """Start fresh cooldowns for all `keys` in a single store write."""
        values = {self._storage_key(k): self._new_value(now_millis) for k in keys}
        if not values:
            return
        self._store.put_many(values)
        logger.debug("Recorded {} cooldown entries under {}", len(values), self._prefix)

    def get_entry(self, key: str) -> CooldownEntry | None:
        """Return the stored entry for `key`, if any."""
        return _parse_entry(self._store.get(self._storage_key(key)))

    def is_in_cooldown(self, key: str, now_millis: int) -> bool:
        entry = self.get_entry(key)
        return entry is not None and entry.is_active(now_millis)

    def active_cooldown_keys(self, now_millis: int) -> set[str]:
        """Return every key still in cooldown, using one scan of the namespace."""
        active: set[str] = set()
        for storage_key, value in self._store.items(self._prefix):
            entry = _parse_entry(value)
            if entry is None:
                logger.warning("Ignoring malformed cooldown entry {}", storage_key)
                continue
            if entry.is_active(now_millis):
                active.add(storage_key[len(self._prefix) :])
        return active

    def remove(self, keys: Iterable[str]) -> None:
        """Drop entries so the entities are eligible again on the very next read."""
        storage_keys = [self._storage_key(k) for k in keys]
        if storage_keys:
            self._store.remove(storage_keys)

    def purge_expired(self, now_millis: int, max_duration_days: int | None = None) -> int:
        """Remove entries older than the longest possible cooldown.

        Returns:
            Number of entries removed.
        """
        horizon = (max_duration_days or self.max_duration_days) * DAY_MILLIS
        expired: list[str] = []
        for storage_key, value in self._store.items(self._prefix):
            entry = _parse_entry(value)
            if entry is None or now_millis - entry.last_processed_at_millis > horizon:
                expired.append(storage_key)
        if expired:
            self._store.remove(expired)
            logger.info("Purged {} expired cooldown entries under {}", len(expired), self._prefix)
        return len(expired)
