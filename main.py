from __future__ import annotations

import argparse
from pathlib import Path
import sys

from loguru import logger

from core.errors import EngineError
from core.models import RecommendMode
from core.services.album_cleanup_service import AlbumCleanupEngine
from core.services.cooldown_ledger import CooldownLedger
from core.services.grouping_service import SimilarityGrouper
from core.services.recommendation_service import RecommendationEngine
from infrastructure.csv_repository import CsvImageRepository
from infrastructure.kv_store import JsonFileStore
from infrastructure.logging import init_logging
from infrastructure.settings import JsonSettings
from infrastructure.utils import format_millis

BASE_DIR = Path(__file__).parent


def _parse_default_sort(settings: JsonSettings) -> list[tuple[str, bool]]:
    # Expect a list like: [{"field":"captured_at_millis","asc":false}, ...]
    raw = settings.get("sorting.defaults", [])
    result: list[tuple[str, bool]] = []
    if isinstance(raw, list):
        for item in raw:
            if isinstance(item, dict) and "field" in item:
                field = str(item.get("field"))
                asc = bool(item.get("asc", True))
                result.append((field, asc))
    return result


def _build_grouper(settings: JsonSettings) -> SimilarityGrouper:
    return SimilarityGrouper(
        time_window_millis=settings.get_int("grouping.time_window_seconds", 300) * 1000,
        aspect_tolerance=settings.get_float("grouping.aspect_tolerance", 0.02),
        size_tolerance=settings.get_float("grouping.size_tolerance", 0.3),
        min_group_size=settings.get_int("grouping.min_group_size", 2),
        merge_threshold=settings.get_int("grouping.merge_threshold", 10),
    )


def create_argument_parser() -> argparse.ArgumentParser:
    """Create the command line parser."""
    parser = argparse.ArgumentParser(
        description="Similarity-grouped photo triage over a CSV metadata export",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --csv photos.csv albums
  python main.py --csv photos.csv analyze /DCIM/Camera
  python main.py --csv photos.csv next /DCIM/Camera --size 8
  python main.py --csv photos.csv mark /DCIM/Camera 3f2a9c0d11e4b7a2
  python main.py --csv photos.csv recommend --mode similar --size 20
        """,
    )
    parser.add_argument("--csv", required=True, help="Image metadata CSV export")
    parser.add_argument(
        "--settings", default=str(BASE_DIR / "settings.json"), help="Path to settings.json"
    )
    parser.add_argument("--state", help="State file (default: storage.state_path from settings)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log to stderr as well")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("albums", help="List albums that still need cleaning")

    analyze = sub.add_parser("analyze", help="Group an album's photos")
    analyze.add_argument("album")
    analyze.add_argument("--force", action="store_true", help="Re-run even if unchanged")

    nxt = sub.add_parser("next", help="Show the next batch of an album sweep")
    nxt.add_argument("album")
    nxt.add_argument("--size", type=int, help="Photos per batch")

    mark = sub.add_parser("mark", help="Mark groups as processed")
    mark.add_argument("album")
    mark.add_argument("group_ids", nargs="+")

    status = sub.add_parser("status", help="Show album progress")
    status.add_argument("album")

    reset = sub.add_parser("reset", help="Forget an album's cleanup progress")
    reset.add_argument("album")

    rec = sub.add_parser("recommend", help="Draw a free-form batch of photos")
    rec.add_argument("--mode", choices=["random", "similar"], default="random")
    rec.add_argument("--size", type=int, help="Photos per batch")
    rec.add_argument("--album", help="Restrict the pool to one album")
    return parser


def _print_status(engine: AlbumCleanupEngine, album: str) -> None:
    info = engine.get_album_cleanup_info(album)
    print(f"Album:      {info.album_id}")
    print(f"State:      {info.state.value}")
    print(f"Groups:     {info.remaining_groups}/{info.total_groups} remaining")
    print(f"Images:     {info.remaining_images}/{info.total_images} remaining")
    print(f"Progress:   {info.progress:.0%}")


def run(args: argparse.Namespace, settings: JsonSettings) -> int:
    """Execute one command; returns the process exit code."""
    repo = CsvImageRepository(args.csv, sort_keys=_parse_default_sort(settings) or None)
    state_path = args.state or settings.get("storage.state_path", "triage_state.json")
    store = JsonFileStore(state_path)
    grouper = _build_grouper(settings)
    photo_ledger = CooldownLedger(
        store, "cooldown:photo", settings.get_int_list("cooldown.photo_days", [7, 12, 24])
    )
    group_ledger = CooldownLedger(
        store, "cooldown:group", settings.get_int_list("cooldown.group_days", [3, 5, 7])
    )
    engine = AlbumCleanupEngine(
        store,
        group_ledger,
        grouper=grouper,
        image_source=repo,
        checkpoint_max_age_days=settings.get_int("cleanup.checkpoint_max_age_days", 7),
    )

    if args.command == "albums":
        for album in engine.list_cleanable_albums():
            print(f"{album}\t{repo.count_images(album)} images\t{engine.get_state(album).value}")
    elif args.command == "analyze":
        images = repo.list_images(args.album)
        state = engine.analyze_album(args.album, images, force=args.force)
        print(f"{state.total_groups} groups, {state.total_images} images")
    elif args.command == "next":
        engine.ensure_analyzed(args.album)
        size = args.size or settings.get_int("cleanup.batch_size", 15)
        batch = engine.get_next_batch(args.album, size)
        if batch.is_empty:
            print("Nothing left to review.")
        by_id = {d.id: d for d in repo.list_images(args.album)}
        for group in batch.groups:
            print(f"[{group.group_id}] {group.member_count} images")
            for image_id in group.member_ids:
                print(f"    {image_id}\t{format_millis(by_id[image_id].captured_at_millis)}")
    elif args.command == "mark":
        engine.mark_groups_processed(args.album, args.group_ids)
        _print_status(engine, args.album)
    elif args.command == "status":
        _print_status(engine, args.album)
    elif args.command == "reset":
        engine.reset_album_cleanup_state(args.album)
        print(f"Reset {args.album}")
    elif args.command == "recommend":
        pool = repo.list_images(args.album) if args.album else repo.all_images()
        recommender = RecommendationEngine(photo_ledger, group_ledger, grouper=grouper)
        mode = RecommendMode.SIMILAR if args.mode == "similar" else RecommendMode.RANDOM_WALK
        size = args.size or settings.get_int("recommendation.batch_size", 15)
        for item in recommender.get_batch(pool, size, mode):
            print(f"{item.id}\t{format_millis(item.captured_at_millis)}\t{item.container_path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = create_argument_parser().parse_args(argv)
    settings = JsonSettings(args.settings)
    init_logging(settings.get("logging.dir"), settings.get("logging.level", "INFO"), args.verbose)

    try:
        return run(args, settings)
    except EngineError as ex:
        logger.error("Command {} failed: {}", args.command, ex)
        print(f"error: {ex}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
