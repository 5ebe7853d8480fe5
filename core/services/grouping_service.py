"""Metadata-based similarity grouping.

Images are clustered with a single greedy pass over the caller's canonical
order using cheap metadata only (capture time, aspect ratio, byte size). Small
clusters are then folded into their neighbours so the sweep UI does not stall
on many one- or two-image steps.
"""

from __future__ import annotations

from collections.abc import Sequence
import hashlib

from loguru import logger

from core.errors import InvalidArgumentError
from core.models import ImageDescriptor, SimilarityGroup

DEFAULT_TIME_WINDOW_MILLIS = 5 * 60 * 1000
DEFAULT_ASPECT_TOLERANCE = 0.02
DEFAULT_SIZE_TOLERANCE = 0.30
DEFAULT_MIN_GROUP_SIZE = 2
DEFAULT_MERGE_THRESHOLD = 10


def make_group_id(member_ids: Sequence[int]) -> str:
    """Derive a stable group id from the member ids, independent of their order."""
    joined = ",".join(str(i) for i in sorted(member_ids))
    return hashlib.sha1(joined.encode("ascii")).hexdigest()[:16]


class SimilarityGrouper:
    """Partition descriptor lists into ordered similarity groups."""

    def __init__(
        self,
        time_window_millis: int = DEFAULT_TIME_WINDOW_MILLIS,
        aspect_tolerance: float = DEFAULT_ASPECT_TOLERANCE,
        size_tolerance: float = DEFAULT_SIZE_TOLERANCE,
        min_group_size: int = DEFAULT_MIN_GROUP_SIZE,
        merge_threshold: int = DEFAULT_MERGE_THRESHOLD,
    ) -> None:
        """Create a grouper.

        Args:
            time_window_millis: Maximum capture-time gap between neighbours.
            aspect_tolerance: Maximum absolute aspect-ratio difference (exclusive).
            size_tolerance: Maximum relative byte-size difference (exclusive).
            min_group_size: Groups smaller than this are merged into a neighbour.
            merge_threshold: Groups with at most this many images are merged too.
        """
        if min_group_size < 1:
            raise InvalidArgumentError(f"min_group_size must be >= 1, got {min_group_size}")
        if merge_threshold < 0:
            raise InvalidArgumentError(f"merge_threshold must be >= 0, got {merge_threshold}")
        if time_window_millis < 0 or aspect_tolerance < 0 or size_tolerance < 0:
            raise InvalidArgumentError("time window and tolerances must not be negative")
        self.time_window_millis = time_window_millis
        self.aspect_tolerance = aspect_tolerance
        self.size_tolerance = size_tolerance
        self.min_group_size = min_group_size
        self.merge_threshold = merge_threshold

    def is_similar(self, a: ImageDescriptor, b: ImageDescriptor) -> bool:
        """True if `b` may follow `a` in the same group.

        All three checks must pass: capture-time gap, aspect ratio, byte size.
        """
        if abs(a.captured_at_millis - b.captured_at_millis) > self.time_window_millis:
            return False
        if abs(a.aspect_ratio - b.aspect_ratio) >= self.aspect_tolerance:
            return False
        size_diff = abs(a.size_bytes - b.size_bytes) / max(a.size_bytes, 1)
        return size_diff < self.size_tolerance

    def group(self, descriptors: Sequence[ImageDescriptor]) -> list[SimilarityGroup]:
        """Group `descriptors`, keeping their order, and merge undersized groups."""
        if not descriptors:
            return []

        clusters = self._split(descriptors)
        merged = self._merge_undersized(clusters)
        groups = [self._build_group(members) for members in merged]
        logger.debug(
            "Grouped {} images into {} clusters, {} after merge",
            len(descriptors),
            len(clusters),
            len(groups),
        )
        return groups

    def _split(self, descriptors: Sequence[ImageDescriptor]) -> list[list[ImageDescriptor]]:
        clusters: list[list[ImageDescriptor]] = [[descriptors[0]]]
        for item in descriptors[1:]:
            current = clusters[-1]
            if self.is_similar(current[-1], item):
                current.append(item)
            else:
                clusters.append([item])
        return clusters

    def _is_undersized(self, size: int) -> bool:
        return size <= self.merge_threshold or size < self.min_group_size

    def _merge_undersized(
        self, clusters: list[list[ImageDescriptor]]
    ) -> list[list[ImageDescriptor]]:
        # An undersized cluster joins the one before it; an undersized first
        # cluster keeps absorbing its successors until it is large enough.
        result: list[list[ImageDescriptor]] = []
        for cluster in clusters:
            undersized = self._is_undersized(len(cluster))
            if result and (undersized or self._is_undersized(len(result[-1]))):
                result[-1] = result[-1] + cluster
            else:
                result.append(list(cluster))
        return result

    @staticmethod
    def _build_group(members: list[ImageDescriptor]) -> SimilarityGroup:
        ids = tuple(m.id for m in members)
        times = [m.captured_at_millis for m in members]
        return SimilarityGroup(
            group_id=make_group_id(ids),
            member_ids=ids,
            start_millis=min(times),
            end_millis=max(times),
        )
