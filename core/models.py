"""Core domain models for image descriptors, similarity groups and cleanup state."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

DAY_MILLIS = 24 * 60 * 60 * 1000


class RecommendMode(Enum):
    """Selection strategy for the free-form recommendation mode."""

    RANDOM_WALK = "random_walk"
    SIMILAR = "similar"


class CleanupState(Enum):
    """Lifecycle of a single album in the structured sweep."""

    UNANALYZED = "unanalyzed"
    ANALYZED = "analyzed"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ImageDescriptor:
    """Metadata of one image as supplied by the image source."""

    id: int
    captured_at_millis: int
    width_px: int
    height_px: int
    size_bytes: int
    container_path: str
    # EXIF rotation in degrees
    orientation: int = 0

    @property
    def actual_width(self) -> int:
        """Width after applying the EXIF rotation."""
        return self.height_px if self.orientation in (90, 270) else self.width_px

    @property
    def actual_height(self) -> int:
        """Height after applying the EXIF rotation."""
        return self.width_px if self.orientation in (90, 270) else self.height_px

    @property
    def aspect_ratio(self) -> float:
        """Rotation-aware aspect ratio, 0.75 when dimensions are unknown."""
        if self.actual_width > 0 and self.actual_height > 0:
            return self.actual_width / self.actual_height
        return 0.75


@dataclass(frozen=True)
class SimilarityGroup:
    """An ordered cluster of near-duplicate or burst-related images."""

    group_id: str
    member_ids: tuple[int, ...]
    start_millis: int = 0
    end_millis: int = 0

    @property
    def member_count(self) -> int:
        """Number of images in the group."""
        return len(self.member_ids)


@dataclass(frozen=True)
class CooldownEntry:
    """Ledger row: when an entity was last processed and for how long it rests."""

    last_processed_at_millis: int
    cooldown_days: int

    def is_active(self, now_millis: int) -> bool:
        """True while `now_millis` falls inside the cooldown window."""
        return now_millis - self.last_processed_at_millis < self.cooldown_days * DAY_MILLIS


@dataclass
class Checkpoint:
    """Resume point of an album sweep.

    Attributes:
        ordered_group_ids: Canonical group order the sweep walks through.
        current_index: Index in `ordered_group_ids` of the next group to emit.
        saved_at_millis: Time the checkpoint was written.
    """

    ordered_group_ids: list[str]
    current_index: int
    saved_at_millis: int


@dataclass
class AlbumCleanupState:
    """Persisted analysis and progress of one album."""

    album_id: str
    total_groups: int
    total_images: int
    group_ids: list[str] = field(default_factory=list)
    group_image_counts: dict[str, int] = field(default_factory=dict)
    processed_group_ids: set[str] = field(default_factory=set)
    checkpoint: Checkpoint | None = None
    analyzed_at_millis: int = 0

    @property
    def remaining_groups(self) -> int:
        return max(len(self.group_ids) - len(self.processed_group_ids), 0)

    @property
    def remaining_images(self) -> int:
        processed = sum(self.group_image_counts.get(gid, 0) for gid in self.processed_group_ids)
        return max(self.total_images - processed, 0)

    @property
    def is_complete(self) -> bool:
        return self.total_groups > 0 and self.remaining_groups == 0


@dataclass
class AlbumCleanupBatch:
    """Whole similarity groups handed to the caller for one round of triage."""

    album_id: str
    groups: list[SimilarityGroup] = field(default_factory=list)

    @property
    def group_ids(self) -> list[str]:
        return [g.group_id for g in self.groups]

    @property
    def image_ids(self) -> list[int]:
        return [image_id for g in self.groups for image_id in g.member_ids]

    @property
    def group_boundaries(self) -> list[int]:
        """Start offset of each group within `image_ids`."""
        boundaries: list[int] = []
        offset = 0
        for g in self.groups:
            boundaries.append(offset)
            offset += g.member_count
        return boundaries

    @property
    def image_count(self) -> int:
        return sum(g.member_count for g in self.groups)

    @property
    def group_count(self) -> int:
        return len(self.groups)

    @property
    def is_empty(self) -> bool:
        return not self.groups

    def group_id_for_index(self, index: int) -> str | None:
        """Return the id of the group holding the image at `index`."""
        offset = 0
        for g in self.groups:
            if offset <= index < offset + g.member_count:
                return g.group_id
            offset += g.member_count
        return None

    def is_last_in_group(self, index: int) -> bool:
        """True if the image at `index` closes its group."""
        offset = 0
        for g in self.groups:
            offset += g.member_count
            if index == offset - 1:
                return True
        return False


@dataclass
class AlbumCleanupInfo:
    """Read-only progress summary of one album for display."""

    album_id: str
    state: CleanupState
    total_groups: int
    processed_groups: int
    remaining_groups: int
    total_images: int
    remaining_images: int
    progress: float
    is_completed: bool
