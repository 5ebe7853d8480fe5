"""Structured per-album cleanup sweep.

The engine analyzes an album once (similarity grouping), then hands out
batches of whole groups in canonical order. Progress is persisted in the
key-value store:

* ``cleanup:<album>:analysis``   totals, ordered group ids, per-group counts
* ``cleanup:<album>:processed``  permanently processed group ids
* ``cleanup:<album>:checkpoint`` sweep cursor (group order, next index, time)
* ``cleanup:<album>:completed``  completion mark

Group membership is not persisted. Grouping is deterministic, so the groups
are rebuilt from the album's descriptors after a restart and checked against
the stored ids.

The engine does no locking of its own. Callers must serialize calls per
album, since batching and marking both read-modify-write the stored state.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import Any

from loguru import logger

from core.errors import InvalidArgumentError
from core.models import (
    DAY_MILLIS,
    AlbumCleanupBatch,
    AlbumCleanupInfo,
    AlbumCleanupState,
    Checkpoint,
    CleanupState,
    ImageDescriptor,
    SimilarityGroup,
)
from core.services.cooldown_ledger import CooldownLedger
from core.services.grouping_service import SimilarityGrouper
from core.services.interfaces import ImageSource, KeyValueStore, current_millis

KEY_PREFIX = "cleanup:"
CHECKPOINT_MAX_AGE_DAYS = 7


def _key(album_id: str, suffix: str) -> str:
    return f"{KEY_PREFIX}{album_id}:{suffix}"


def _parse_checkpoint(value: Any) -> Checkpoint | None:
    if not isinstance(value, dict):
        return None
    try:
        return Checkpoint(
            ordered_group_ids=[str(g) for g in value["group_ids"]],
            current_index=int(value["index"]),
            saved_at_millis=int(value["saved_at"]),
        )
    except (KeyError, TypeError, ValueError):
        logger.warning("Discarding malformed checkpoint: {}", value)
        return None


class AlbumCleanupEngine:
    """Orchestrates analysis, batching and progress tracking of album sweeps."""

    def __init__(
        self,
        store: KeyValueStore,
        group_ledger: CooldownLedger,
        grouper: SimilarityGrouper | None = None,
        image_source: ImageSource | None = None,
        clock: Callable[[], int] | None = None,
        checkpoint_max_age_days: int = CHECKPOINT_MAX_AGE_DAYS,
    ) -> None:
        """Create the engine.

        Args:
            store: Key-value store holding the per-album state.
            group_ledger: Cooldown ledger for similarity groups.
            grouper: Grouper used for analysis (defaults to `SimilarityGrouper`).
            image_source: Optional collaborator used to rebuild groups and to
                detect content drift without the caller passing descriptors.
            clock: Returns the current time in epoch milliseconds.
            checkpoint_max_age_days: Checkpoints older than this are discarded.
        """
        self._store = store
        self._group_ledger = group_ledger
        self._grouper = grouper or SimilarityGrouper()
        self._image_source = image_source
        self._clock = clock or current_millis
        self._checkpoint_max_age_millis = checkpoint_max_age_days * DAY_MILLIS
        self._groups_cache: dict[str, list[SimilarityGroup]] = {}

    # ------------------------------------------------------------------ state

    def _load_state(self, album_id: str) -> AlbumCleanupState | None:
        raw = self._store.get(_key(album_id, "analysis"))
        if not isinstance(raw, dict):
            return None
        group_ids = [str(g) for g in raw.get("group_ids", [])]
        counts = {str(k): int(v) for k, v in (raw.get("group_counts") or {}).items()}
        processed_raw = self._store.get(_key(album_id, "processed")) or []
        known = set(group_ids)
        return AlbumCleanupState(
            album_id=album_id,
            total_groups=int(raw.get("total_groups", len(group_ids))),
            total_images=int(raw.get("total_images", 0)),
            group_ids=group_ids,
            group_image_counts=counts,
            processed_group_ids={str(g) for g in processed_raw if str(g) in known},
            checkpoint=_parse_checkpoint(self._store.get(_key(album_id, "checkpoint"))),
            analyzed_at_millis=int(raw.get("analyzed_at", 0)),
        )

    def _require_state(self, album_id: str) -> AlbumCleanupState:
        state = self._load_state(album_id)
        if state is None:
            raise InvalidArgumentError(f"Album {album_id!r} has not been analyzed")
        return state

    def get_cleanup_state(self, album_id: str) -> AlbumCleanupState | None:
        """Return the persisted state of `album_id`, or None if unanalyzed."""
        return self._load_state(album_id)

    # --------------------------------------------------------------- analysis

    def analyze_album(
        self, album_id: str, descriptors: Sequence[ImageDescriptor], force: bool = False
    ) -> AlbumCleanupState:
        """Group the album's images and persist the analysis baseline.

        Existing analysis is reused unless `force` is set or the image count
        no longer matches the stored baseline. Processed marks survive
        re-analysis for every group id that still exists.
        """
        previous = self._load_state(album_id)
        if previous is not None and not force and previous.total_images == len(descriptors):
            if album_id not in self._groups_cache:
                groups = self._grouper.group(descriptors)
                if [g.group_id for g in groups] == previous.group_ids:
                    self._groups_cache[album_id] = groups
                else:
                    logger.info("Album {} regrouped differently, re-analyzing", album_id)
                    return self._apply_analysis(album_id, groups, previous)
            logger.debug("Album {} already analyzed, reusing result", album_id)
            return previous

        if previous is not None and not force:
            logger.info(
                "Album {} changed from {} to {} images, re-analyzing",
                album_id,
                previous.total_images,
                len(descriptors),
            )
        groups = self._grouper.group(descriptors)
        return self._apply_analysis(album_id, groups, previous)

    def _apply_analysis(
        self,
        album_id: str,
        groups: list[SimilarityGroup],
        previous: AlbumCleanupState | None,
    ) -> AlbumCleanupState:
        now = self._clock()
        group_ids = [g.group_id for g in groups]
        counts = {g.group_id: g.member_count for g in groups}
        total_images = sum(counts.values())

        processed: set[str] = set()
        checkpoint: Checkpoint | None = None
        if previous is not None:
            known = set(group_ids)
            processed = previous.processed_group_ids & known
            dropped = len(previous.processed_group_ids) - len(processed)
            if dropped:
                logger.info(
                    "Pruned {} processed marks no longer present in album {}", dropped, album_id
                )
            kept = previous.checkpoint
            if kept is not None and kept.ordered_group_ids == group_ids:
                checkpoint = kept

        self._store.put_many(
            {
                _key(album_id, "analysis"): {
                    "total_groups": len(groups),
                    "total_images": total_images,
                    "group_ids": list(group_ids),
                    "group_counts": dict(counts),
                    "analyzed_at": now,
                },
                _key(album_id, "processed"): sorted(processed),
            }
        )
        if checkpoint is None and previous is not None and previous.checkpoint is not None:
            self._store.remove([_key(album_id, "checkpoint")])
        self._groups_cache[album_id] = groups

        state = AlbumCleanupState(
            album_id=album_id,
            total_groups=len(groups),
            total_images=total_images,
            group_ids=group_ids,
            group_image_counts=counts,
            processed_group_ids=processed,
            checkpoint=checkpoint,
            analyzed_at_millis=now,
        )
        if state.is_complete:
            self._mark_completed(album_id)
        logger.info(
            "Analysis of album {} complete: {} groups, {} images",
            album_id,
            state.total_groups,
            state.total_images,
        )
        return state

    def is_analysis_stale(self, album_id: str, live_count: int) -> bool:
        """True if the album is unanalyzed or its image count has drifted."""
        state = self._load_state(album_id)
        return state is None or state.total_images != live_count

    def ensure_analyzed(self, album_id: str) -> AlbumCleanupState:
        """Analyze through the image source when no current analysis exists."""
        source = self._require_source()
        state = self._load_state(album_id)
        if state is not None and state.total_images == source.count_images(album_id):
            return state
        return self.analyze_album(album_id, source.list_images(album_id))

    def _require_source(self) -> ImageSource:
        if self._image_source is None:
            raise InvalidArgumentError("No image source configured")
        return self._image_source

    def _groups_for(
        self,
        album_id: str,
        state: AlbumCleanupState,
        descriptors: Sequence[ImageDescriptor] | None,
    ) -> tuple[list[SimilarityGroup], AlbumCleanupState]:
        cached = self._groups_cache.get(album_id)
        if cached is not None and [g.group_id for g in cached] == state.group_ids:
            return cached, state

        if descriptors is None:
            if self._image_source is None:
                raise InvalidArgumentError(
                    f"Descriptors are required to rebuild the groups of album {album_id!r}"
                )
            descriptors = self._image_source.list_images(album_id)

        groups = self._grouper.group(descriptors)
        if [g.group_id for g in groups] != state.group_ids:
            logger.info("Album {} content drifted since analysis, re-analyzing", album_id)
            state = self._apply_analysis(album_id, groups, state)
        self._groups_cache[album_id] = groups
        return groups, state

    # -------------------------------------------------------------- batching

    def get_next_batch(
        self,
        album_id: str,
        batch_size: int,
        descriptors: Sequence[ImageDescriptor] | None = None,
        exclude_group_ids: Iterable[str] = (),
    ) -> AlbumCleanupBatch:
        """Return the next whole groups of the sweep and advance the checkpoint.

        Args:
            album_id: Analyzed album to sweep.
            batch_size: Groups are added until this many photos are reached.
            descriptors: Album descriptors, needed only when the groups are not
                cached and no image source is configured.
            exclude_group_ids: Groups to skip, e.g. the batch currently on screen.
        """
        if batch_size <= 0:
            raise InvalidArgumentError(f"batch size must be positive, got {batch_size}")
        state = self._require_state(album_id)
        if descriptors is not None:
            state = self.analyze_album(album_id, descriptors)
        elif self._image_source is not None:
            live_count = self._image_source.count_images(album_id)
            if self.is_analysis_stale(album_id, live_count):
                self._groups_cache.pop(album_id, None)
                state = self.analyze_album(album_id, self._image_source.list_images(album_id))
        groups, state = self._groups_for(album_id, state, descriptors)

        now = self._clock()
        order = state.group_ids
        start = 0
        checkpoint = state.checkpoint
        if checkpoint is not None:
            if self._checkpoint_usable(checkpoint, state, now):
                start = checkpoint.current_index
            else:
                logger.info("Discarding stale checkpoint of album {}", album_id)
                self.clear_checkpoint(album_id)

        skip = state.processed_group_ids | self._group_ledger.active_cooldown_keys(now)
        skip |= set(exclude_group_ids)
        by_id = {g.group_id: g for g in groups}

        picked, next_index = self._collect(order, start, batch_size, skip, by_id)
        if not picked and start > 0:
            logger.debug("Sweep of album {} reached the end, starting a new pass", album_id)
            picked, next_index = self._collect(order, 0, batch_size, skip, by_id)

        if not picked:
            logger.info("No groups left to show for album {}", album_id)
            return AlbumCleanupBatch(album_id=album_id)

        if next_index >= len(order):
            self.clear_checkpoint(album_id)
        else:
            self._store.put(
                _key(album_id, "checkpoint"),
                {"group_ids": list(order), "index": next_index, "saved_at": now},
            )
        batch = AlbumCleanupBatch(album_id=album_id, groups=picked)
        logger.debug(
            "Created batch for album {}: {} images, {} groups, next index {}",
            album_id,
            batch.image_count,
            batch.group_count,
            next_index,
        )
        return batch

    @staticmethod
    def _collect(
        order: list[str],
        start: int,
        batch_size: int,
        skip: set[str],
        by_id: dict[str, SimilarityGroup],
    ) -> tuple[list[SimilarityGroup], int]:
        picked: list[SimilarityGroup] = []
        count = 0
        index = start
        while index < len(order) and count < batch_size:
            group_id = order[index]
            index += 1
            if group_id in skip or group_id not in by_id:
                continue
            group = by_id[group_id]
            picked.append(group)
            count += group.member_count
        return picked, index

    def _checkpoint_usable(
        self, checkpoint: Checkpoint, state: AlbumCleanupState, now: int
    ) -> bool:
        if now - checkpoint.saved_at_millis > self._checkpoint_max_age_millis:
            return False
        if checkpoint.ordered_group_ids != state.group_ids:
            return False
        return 0 <= checkpoint.current_index <= len(state.group_ids)

    def get_checkpoint(self, album_id: str) -> Checkpoint | None:
        return _parse_checkpoint(self._store.get(_key(album_id, "checkpoint")))

    def clear_checkpoint(self, album_id: str) -> None:
        self._store.remove([_key(album_id, "checkpoint")])

    # -------------------------------------------------------------- progress

    def mark_groups_processed(self, album_id: str, group_ids: Iterable[str]) -> None:
        """Permanently mark groups as processed and start their group cooldown."""
        state = self._require_state(album_id)
        requested = set(group_ids)
        known = requested & set(state.group_ids)
        unknown = requested - known
        if unknown:
            logger.warning("Ignoring {} group ids unknown to album {}", len(unknown), album_id)
        if not known:
            return

        processed = state.processed_group_ids | known
        self._store.put(_key(album_id, "processed"), sorted(processed))
        self._group_ledger.record_batch(sorted(known), self._clock())
        state.processed_group_ids = processed
        logger.info(
            "Marked {} groups processed for album {}, {} remaining",
            len(known),
            album_id,
            state.remaining_groups,
        )

        if state.is_complete:
            self._mark_completed(album_id)
            self.clear_checkpoint(album_id)

    def _mark_completed(self, album_id: str) -> None:
        self._store.put(_key(album_id, "completed"), True)
        logger.info("Album {} cleanup completed", album_id)

    def get_total_groups(self, album_id: str) -> int:
        state = self._load_state(album_id)
        return state.total_groups if state else 0

    def get_total_images(self, album_id: str) -> int:
        state = self._load_state(album_id)
        return state.total_images if state else 0

    def get_remaining_groups(self, album_id: str) -> int:
        state = self._load_state(album_id)
        return state.remaining_groups if state else 0

    def get_remaining_images(self, album_id: str) -> int:
        state = self._load_state(album_id)
        return state.remaining_images if state else 0

    def get_cleanup_progress(self, album_id: str) -> float:
        """Fraction of groups processed, 0.0 for unanalyzed or empty albums."""
        state = self._load_state(album_id)
        if state is None or state.total_groups <= 0:
            return 0.0
        return len(state.processed_group_ids) / state.total_groups

    def is_album_completed(self, album_id: str) -> bool:
        return bool(self._store.get(_key(album_id, "completed")))

    def completed_album_ids(self) -> set[str]:
        suffix = ":completed"
        return {
            key[len(KEY_PREFIX) : -len(suffix)]
            for key, value in self._store.items(KEY_PREFIX)
            if key.endswith(suffix) and value
        }

    def list_cleanable_albums(self, album_ids: Iterable[str] | None = None) -> list[str]:
        """Return `album_ids` (or all source albums) minus completed albums."""
        if album_ids is None:
            album_ids = self._require_source().list_albums()
        completed = self.completed_album_ids()
        return [a for a in album_ids if a not in completed]

    def get_state(self, album_id: str) -> CleanupState:
        if self.is_album_completed(album_id):
            return CleanupState.COMPLETED
        if self._load_state(album_id) is None:
            return CleanupState.UNANALYZED
        return CleanupState.ANALYZED

    def get_album_cleanup_info(self, album_id: str) -> AlbumCleanupInfo:
        """Summarize the album's progress for display."""
        state = self._load_state(album_id)
        if state is None:
            return AlbumCleanupInfo(
                album_id=album_id,
                state=self.get_state(album_id),
                total_groups=0,
                processed_groups=0,
                remaining_groups=0,
                total_images=0,
                remaining_images=0,
                progress=0.0,
                is_completed=self.is_album_completed(album_id),
            )
        processed = len(state.processed_group_ids)
        return AlbumCleanupInfo(
            album_id=album_id,
            state=self.get_state(album_id),
            total_groups=state.total_groups,
            processed_groups=processed,
            remaining_groups=state.remaining_groups,
            total_images=state.total_images,
            remaining_images=state.remaining_images,
            progress=processed / state.total_groups if state.total_groups > 0 else 0.0,
            is_completed=self.is_album_completed(album_id),
        )

    def reset_album_cleanup_state(self, album_id: str) -> None:
        """Forget analysis, processed marks, checkpoint and completion of the album."""
        self._store.remove(
            [
                _key(album_id, "analysis"),
                _key(album_id, "processed"),
                _key(album_id, "checkpoint"),
                _key(album_id, "completed"),
            ]
        )
        self._groups_cache.pop(album_id, None)
        logger.info("Reset cleanup state of album {}", album_id)
