"""Batch recommendation for the free-form triage mode.

Two strategies are supported:

* RANDOM_WALK draws photos uniformly at random, skipping anything still in the
  photo cooldown ledger, and records every drawn photo.
* SIMILAR walks the similarity groups of the pool in order and emits whole
  groups, skipping groups still in the group cooldown ledger.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
import random

from loguru import logger

from core.errors import InvalidArgumentError
from core.models import ImageDescriptor, RecommendMode, SimilarityGroup
from core.services.cooldown_ledger import CooldownLedger
from core.services.grouping_service import SimilarityGrouper
from core.services.interfaces import current_millis


class RecommendationEngine:
    """Produces the next batch of photos for the free-form mode."""

    def __init__(
        self,
        photo_ledger: CooldownLedger,
        group_ledger: CooldownLedger,
        grouper: SimilarityGrouper | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        """Create the engine.

        Args:
            photo_ledger: Cooldown ledger for single photos (RANDOM_WALK).
            group_ledger: Cooldown ledger for similarity groups (SIMILAR).
            grouper: Grouper used in SIMILAR mode (defaults to `SimilarityGrouper`).
            rng: Random source for sampling.
            clock: Returns the current time in epoch milliseconds.
        """
        self._photo_ledger = photo_ledger
        self._group_ledger = group_ledger
        self._grouper = grouper or SimilarityGrouper()
        self._rng = rng or random.Random()
        self._clock = clock or current_millis
        self._cached_pool: tuple[ImageDescriptor, ...] | None = None
        self._cached_groups: list[SimilarityGroup] = []

    def get_batch(
        self,
        pool: Sequence[ImageDescriptor],
        n: int,
        mode: RecommendMode = RecommendMode.RANDOM_WALK,
        anchor: ImageDescriptor | None = None,
    ) -> list[ImageDescriptor]:
        """Return up to `n` photos from `pool` according to `mode`.

        Args:
            pool: Eligible descriptors, already filtered to the current scope.
            n: Desired batch size, must be positive.
            mode: Selection strategy.
            anchor: In SIMILAR mode, start the walk at the group holding this photo.
        """
        if n <= 0:
            raise InvalidArgumentError(f"batch size must be positive, got {n}")
        if not pool:
            return []

        now = self._clock()
        self._photo_ledger.purge_expired(now)
        self._group_ledger.purge_expired(now)

        if mode is RecommendMode.SIMILAR:
            return self._similar_batch(pool, n, anchor, now)
        return self._random_walk_batch(pool, n, now)

    def release(self, photo_ids: Iterable[int]) -> None:
        """Undo picks so the photos are eligible for the very next batch."""
        self._photo_ledger.remove(str(i) for i in photo_ids)

    def _random_walk_batch(
        self, pool: Sequence[ImageDescriptor], n: int, now: int
    ) -> list[ImageDescriptor]:
        cooling = self._photo_ledger.active_cooldown_keys(now)
        available = [d for d in pool if str(d.id) not in cooling]
        picked = self._rng.sample(available, min(n, len(available)))
        self._photo_ledger.record_batch((str(d.id) for d in picked), now)
        logger.debug(
            "Random walk: {} available of {}, picked {}", len(available), len(pool), len(picked)
        )
        return picked

    def _groups_for(self, pool: Sequence[ImageDescriptor]) -> list[SimilarityGroup]:
        key = tuple(pool)
        if key != self._cached_pool:
            self._cached_groups = self._grouper.group(pool)
            self._cached_pool = key
        return self._cached_groups

    def _similar_batch(
        self,
        pool: Sequence[ImageDescriptor],
        n: int,
        anchor: ImageDescriptor | None,
        now: int,
    ) -> list[ImageDescriptor]:
        groups = self._groups_for(pool)
        if anchor is not None:
            start = next(
                (i for i, g in enumerate(groups) if anchor.id in g.member_ids),
                0,
            )
            groups = groups[start:] + groups[:start]

        cooling = self._group_ledger.active_cooldown_keys(now)
        by_id = {d.id: d for d in pool}
        result: list[ImageDescriptor] = []
        emitted: list[str] = []
        for group in groups:
            if len(result) >= n:
                break
            if group.group_id in cooling:
                continue
            result.extend(by_id[i] for i in group.member_ids)
            emitted.append(group.group_id)

        self._group_ledger.record_batch(emitted, now)
        logger.debug("Similar mode: emitted {} groups, {} photos", len(emitted), len(result))
        return result
