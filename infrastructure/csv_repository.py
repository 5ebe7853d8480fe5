"""CSV-backed image metadata source.

Reads an image metadata export and serves it as the engine's image source:
albums are the distinct `AlbumPath` values, and each album's descriptors are
returned in the configured canonical order.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterator
import csv
from pathlib import Path

from loguru import logger

from core.models import ImageDescriptor
from core.services.sort_service import DEFAULT_SORT, SortService
from infrastructure.utils import parse_csv_millis, parse_size_bytes

CSV_HEADERS = [
    "Id",
    "AlbumPath",
    "Captured",
    "Width",
    "Height",
    "FileSize",
]


class CsvImageRepository:
    """Load image descriptors from CSV and group them by album."""

    def __init__(
        self,
        csv_path: str | Path,
        sort_keys: list[tuple[str, bool]] | None = None,
        sorter: SortService | None = None,
    ) -> None:
        self._path = Path(csv_path)
        self._sort_keys = sort_keys or DEFAULT_SORT
        self._sorter = sorter or SortService()
        self._albums: dict[str, list[ImageDescriptor]] | None = None

    def load(self) -> Iterator[ImageDescriptor]:
        """Yield `ImageDescriptor` rows from the CSV file."""
        with self._path.open("r", encoding="utf-8", newline="") as f:
            reader = csv.DictReader(f)
            # Extra columns are accepted and ignored
            missing = [h for h in CSV_HEADERS if h not in (reader.fieldnames or [])]
            if missing:
                raise ValueError(f"CSV missing required headers: {missing}")

            for row in reader:
                try:
                    captured = parse_csv_millis(row.get("Captured"))
                    if captured is None:
                        raise ValueError(f"invalid capture time {row.get('Captured')!r}")
                    yield ImageDescriptor(
                        id=int(row["Id"]),
                        captured_at_millis=captured,
                        width_px=int(row.get("Width") or 0),
                        height_px=int(row.get("Height") or 0),
                        size_bytes=parse_size_bytes(row.get("FileSize")),
                        container_path=row.get("AlbumPath", "") or "",
                        orientation=int(row.get("Orientation") or 0),
                    )
                except (ValueError, TypeError, KeyError) as ex:
                    logger.error("CSV row error: {} | row={} ", ex, row)
                    continue

    def _index(self) -> dict[str, list[ImageDescriptor]]:
        if self._albums is None:
            grouped: dict[str, list[ImageDescriptor]] = defaultdict(list)
            for item in self.load():
                grouped[item.container_path].append(item)
            self._albums = {
                album: self._sorter.sort(items, self._sort_keys)
                for album, items in sorted(grouped.items())
            }
            logger.info("Loaded {} albums from {}", len(self._albums), self._path)
        return self._albums

    def reload(self) -> None:
        """Drop the cached rows so the next call re-reads the file."""
        self._albums = None

    def list_albums(self) -> list[str]:
        return list(self._index())

    def list_images(self, album_id: str) -> list[ImageDescriptor]:
        return list(self._index().get(album_id, []))

    def count_images(self, album_id: str) -> int:
        return len(self._index().get(album_id, []))

    def all_images(self) -> list[ImageDescriptor]:
        """All descriptors across albums in canonical order."""
        items = [d for album in self._index().values() for d in album]
        return self._sorter.sort(items, self._sort_keys)
