"""Tests for free-form batch recommendation (random walk and similar mode)."""

import random

from helpers import BASE_MILLIS, DAY, make_burst_album, make_descriptor
import pytest

from core.errors import InvalidArgumentError
from core.models import RecommendMode
from core.services.grouping_service import SimilarityGrouper
from core.services.recommendation_service import RecommendationEngine


@pytest.fixture
def engine(photo_ledger, group_ledger, clock):
    return RecommendationEngine(photo_ledger, group_ledger, rng=random.Random(1), clock=clock)


def _pool(count: int):
    # Spread out in time so every photo is its own cluster before merging
    return [make_descriptor(i, BASE_MILLIS + i * DAY) for i in range(1, count + 1)]


def test_non_positive_batch_size_fails_fast(engine):
    with pytest.raises(InvalidArgumentError):
        engine.get_batch(_pool(5), 0)


def test_empty_pool_returns_empty_batch(engine):
    assert engine.get_batch([], 5) == []
    assert engine.get_batch([], 5, RecommendMode.SIMILAR) == []


def test_random_walk_returns_distinct_items(engine):
    batch = engine.get_batch(_pool(30), 10)

    assert len(batch) == 10
    assert len({d.id for d in batch}) == 10


def test_consecutive_random_walk_batches_do_not_repeat(engine):
    pool = _pool(30)
    first = {d.id for d in engine.get_batch(pool, 10)}
    second = {d.id for d in engine.get_batch(pool, 10)}
    third = {d.id for d in engine.get_batch(pool, 10)}

    assert not first & second
    assert not (first | second) & third
    assert engine.get_batch(pool, 10) == []


def test_random_walk_returns_remainder_when_pool_runs_low(engine):
    pool = _pool(12)
    engine.get_batch(pool, 10)

    assert len(engine.get_batch(pool, 10)) == 2


def test_released_photos_are_eligible_immediately(engine):
    pool = _pool(6)
    drawn = engine.get_batch(pool, 6)
    engine.release(d.id for d in drawn[:2])

    again = engine.get_batch(pool, 6)
    assert {d.id for d in again} == {d.id for d in drawn[:2]}


def test_random_walk_cooldown_expires(engine, clock):
    pool = _pool(5)
    engine.get_batch(pool, 5)
    assert engine.get_batch(pool, 5) == []

    clock.advance(25 * DAY)
    assert len(engine.get_batch(pool, 5)) == 5


def test_random_walk_records_photo_cooldowns(engine, photo_ledger, clock):
    batch = engine.get_batch(_pool(8), 3)

    assert photo_ledger.active_cooldown_keys(clock()) == {str(d.id) for d in batch}


def test_similar_mode_emits_whole_groups(engine):
    pool = make_burst_album([12, 12, 12])
    batch = engine.get_batch(pool, 5, RecommendMode.SIMILAR)

    assert [d.id for d in batch] == [d.id for d in pool[:12]]


def test_similar_mode_fills_until_batch_size_reached(engine):
    pool = make_burst_album([12, 12, 12])
    batch = engine.get_batch(pool, 15, RecommendMode.SIMILAR)

    assert len(batch) == 24


def test_similar_mode_skips_groups_in_cooldown(engine, group_ledger, clock):
    pool = make_burst_album([12, 12, 12])
    engine.get_batch(pool, 5, RecommendMode.SIMILAR)
    second = engine.get_batch(pool, 5, RecommendMode.SIMILAR)

    assert [d.id for d in second] == [d.id for d in pool[12:24]]
    assert len(group_ledger.active_cooldown_keys(clock())) == 2


def test_similar_mode_starts_at_anchor_group(engine):
    pool = make_burst_album([12, 12, 12])
    anchor = pool[30]
    batch = engine.get_batch(pool, 20, RecommendMode.SIMILAR, anchor=anchor)

    assert [d.id for d in batch] == [d.id for d in pool[24:36] + pool[:12]]


def test_similar_mode_reuses_grouping_for_same_pool(photo_ledger, group_ledger, clock):
    calls = []

    class CountingGrouper(SimilarityGrouper):
        def group(self, descriptors):
            calls.append(len(descriptors))
            return super().group(descriptors)

    engine = RecommendationEngine(
        photo_ledger, group_ledger, grouper=CountingGrouper(), clock=clock
    )
    pool = make_burst_album([12, 12])
    engine.get_batch(pool, 5, RecommendMode.SIMILAR)
    engine.get_batch(pool, 5, RecommendMode.SIMILAR)

    assert calls == [24]
