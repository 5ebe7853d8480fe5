"""Descriptor builders and a fake clock shared by the tests."""

from __future__ import annotations

from core.models import ImageDescriptor

BASE_MILLIS = 1_700_000_000_000
MINUTE = 60 * 1000
HOUR = 60 * MINUTE
DAY = 24 * HOUR


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: int = BASE_MILLIS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, millis: int) -> None:
        self.now += millis


def make_descriptor(
    image_id: int,
    captured: int,
    width: int = 4000,
    height: int = 3000,
    size: int = 2_000_000,
    album: str = "/DCIM/Camera",
) -> ImageDescriptor:
    return ImageDescriptor(
        id=image_id,
        captured_at_millis=captured,
        width_px=width,
        height_px=height,
        size_bytes=size,
        container_path=album,
    )


def make_burst_album(
    sizes: list[int], start_id: int = 1, album: str = "/DCIM/Camera"
) -> list[ImageDescriptor]:
    """Build bursts of the given sizes, one hour apart, in capture order."""
    items: list[ImageDescriptor] = []
    image_id = start_id
    for burst_index, size in enumerate(sizes):
        burst_start = BASE_MILLIS + burst_index * HOUR
        for offset in range(size):
            items.append(make_descriptor(image_id, burst_start + offset * 1000, album=album))
            image_id += 1
    return items
