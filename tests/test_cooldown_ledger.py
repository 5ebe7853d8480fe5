"""Tests for the persistent cooldown ledger."""

from helpers import BASE_MILLIS, DAY
import pytest

from core.errors import InvalidArgumentError
from core.services.cooldown_ledger import (
    GROUP_COOLDOWN_DAYS,
    PHOTO_COOLDOWN_DAYS,
    CooldownLedger,
)
from infrastructure.kv_store import MemoryStore


class CountingStore(MemoryStore):
    """MemoryStore that counts write calls."""

    def __init__(self) -> None:
        super().__init__()
        self.writes = 0

    def _flush(self) -> None:
        self.writes += 1


def test_recorded_key_is_in_cooldown_until_duration_passes():
    ledger = CooldownLedger(MemoryStore(), "photo", [5])
    ledger.record("42", BASE_MILLIS)

    assert ledger.is_in_cooldown("42", BASE_MILLIS)
    assert ledger.is_in_cooldown("42", BASE_MILLIS + 5 * DAY - 1)
    assert not ledger.is_in_cooldown("42", BASE_MILLIS + 5 * DAY)


def test_unknown_key_is_not_in_cooldown():
    ledger = CooldownLedger(MemoryStore(), "photo", [5])
    assert not ledger.is_in_cooldown("missing", BASE_MILLIS)


def test_remove_takes_effect_immediately():
    ledger = CooldownLedger(MemoryStore(), "photo", [5])
    ledger.record("42", BASE_MILLIS)
    ledger.remove(["42"])

    assert not ledger.is_in_cooldown("42", BASE_MILLIS)
    assert ledger.get_entry("42") is None


class ScriptedChoice:
    """Random source whose `choice` returns options at preset indexes."""

    def __init__(self, *indexes):
        self.indexes = list(indexes)

    def choice(self, options):
        return options[self.indexes.pop(0)]


def test_duration_drawn_from_pool_and_stable():
    ledger = CooldownLedger(MemoryStore(), "photo", PHOTO_COOLDOWN_DAYS, rng=ScriptedChoice(2))
    ledger.record("1", BASE_MILLIS)
    entry = ledger.get_entry("1")

    assert entry is not None
    assert entry.cooldown_days == 24
    assert entry.last_processed_at_millis == BASE_MILLIS
    for _ in range(5):
        assert ledger.get_entry("1") == entry


def test_batch_durations_follow_random_source():
    ledger = CooldownLedger(
        MemoryStore(), "group", GROUP_COOLDOWN_DAYS, rng=ScriptedChoice(0, 1, 2)
    )
    ledger.record_batch(["a", "b", "c"], BASE_MILLIS)

    assert [ledger.get_entry(k).cooldown_days for k in "abc"] == [3, 5, 7]
    assert ledger.is_in_cooldown("a", BASE_MILLIS + 3 * DAY - 1)
    assert not ledger.is_in_cooldown("a", BASE_MILLIS + 3 * DAY)
    assert ledger.is_in_cooldown("c", BASE_MILLIS + 6 * DAY)


def test_record_replaces_previous_entry():
    ledger = CooldownLedger(MemoryStore(), "photo", [3])
    ledger.record("1", BASE_MILLIS)
    ledger.record("1", BASE_MILLIS + 10 * DAY)

    assert ledger.is_in_cooldown("1", BASE_MILLIS + 11 * DAY)


def test_record_batch_uses_single_write():
    store = CountingStore()
    ledger = CooldownLedger(store, "photo", [7])
    ledger.record_batch([str(i) for i in range(50)], BASE_MILLIS)

    assert store.writes == 1
    assert len(ledger.active_cooldown_keys(BASE_MILLIS)) == 50


def test_record_batch_with_no_keys_writes_nothing():
    store = CountingStore()
    CooldownLedger(store, "photo", [7]).record_batch([], BASE_MILLIS)
    assert store.writes == 0


def test_active_cooldown_keys_excludes_expired_entries():
    ledger = CooldownLedger(MemoryStore(), "photo", [3])
    ledger.record("old", BASE_MILLIS)
    ledger.record("new", BASE_MILLIS + 2 * DAY)

    assert ledger.active_cooldown_keys(BASE_MILLIS + 4 * DAY) == {"new"}


def test_ledgers_in_one_store_are_isolated():
    store = MemoryStore()
    photos = CooldownLedger(store, "cooldown:photo", [7])
    groups = CooldownLedger(store, "cooldown:group", [3])
    photos.record("1", BASE_MILLIS)
    groups.record("abc", BASE_MILLIS)

    assert photos.active_cooldown_keys(BASE_MILLIS) == {"1"}
    assert groups.active_cooldown_keys(BASE_MILLIS) == {"abc"}


def test_purge_expired_drops_only_entries_past_max_duration():
    store = MemoryStore()
    ledger = CooldownLedger(store, "photo", [3, 5])
    ledger.record("stale", BASE_MILLIS)
    ledger.record("fresh", BASE_MILLIS + 4 * DAY)

    removed = ledger.purge_expired(BASE_MILLIS + 6 * DAY)

    assert removed == 1
    assert ledger.get_entry("stale") is None
    assert ledger.get_entry("fresh") is not None


def test_purge_expired_accepts_explicit_horizon():
    ledger = CooldownLedger(MemoryStore(), "photo", [24])
    ledger.record("1", BASE_MILLIS)

    assert ledger.purge_expired(BASE_MILLIS + 3 * DAY, max_duration_days=2) == 1


def test_malformed_entries_are_skipped_and_purged():
    store = MemoryStore({"photo:bad": "garbage"})
    ledger = CooldownLedger(store, "photo", [7])
    ledger.record("1", BASE_MILLIS)

    assert ledger.active_cooldown_keys(BASE_MILLIS) == {"1"}
    assert ledger.purge_expired(BASE_MILLIS) == 1
    assert store.get("photo:bad") is None


@pytest.mark.parametrize("options", [[], [0], [7, -1]])
def test_invalid_duration_options_rejected(options):
    with pytest.raises(InvalidArgumentError):
        CooldownLedger(MemoryStore(), "photo", options)
