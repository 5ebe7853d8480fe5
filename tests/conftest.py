"""Shared fixtures for engine tests."""

from __future__ import annotations

import random

from helpers import FakeClock
import pytest

from core.services.cooldown_ledger import GROUP_COOLDOWN_DAYS, PHOTO_COOLDOWN_DAYS, CooldownLedger
from infrastructure.kv_store import MemoryStore


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def photo_ledger(store: MemoryStore) -> CooldownLedger:
    return CooldownLedger(store, "cooldown:photo", PHOTO_COOLDOWN_DAYS, rng=random.Random(7))


@pytest.fixture
def group_ledger(store: MemoryStore) -> CooldownLedger:
    return CooldownLedger(store, "cooldown:group", GROUP_COOLDOWN_DAYS, rng=random.Random(11))
