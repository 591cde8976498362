import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Callable, Optional

from .config import APP_VERSION, COMPLETED_DIR_OVERRIDE, DEFAULT_COMPLETED_DIR, REFRESH_INTERVAL, RESIZE_EDGE
from .errors import MosaicError
from .logging_setup import setup_logging
from .models import SnapshotId
from .services.artifacts import MosaicArtifact
from .services.pipeline import run_snapshot
from .services.snapshots import closest_snapshot, snapshot_from_string
from .user_config import ensure_user_config
from .wallpaper import open_in_viewer, set_wallpaper

log = logging.getLogger("himawari_mosaic")

PROGRESS_EVERY = 40


def _oneshot_arg(text: str) -> SnapshotId:
    try:
        return snapshot_from_string(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(
            f"expected 'YYYY-MM-DD HH:MM' with minutes on a 10-minute step, got {text!r}"
        ) from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="himawari-mosaic",
        description="Download the Himawari full-disc tiles, stitch them and set the result as wallpaper",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    parser.add_argument(
        "--oneshot",
        type=_oneshot_arg,
        default=None,
        metavar="'YYYY-MM-DD HH:MM'",
        help="Fetch this snapshot (UTC) instead of the latest one; the wallpaper is left alone",
    )
    parser.add_argument(
        "--completed-dir",
        type=Path,
        default=None,
        help=f"Where finished discs are written (default: {DEFAULT_COMPLETED_DIR})",
    )
    parser.add_argument(
        "--config-file",
        type=Path,
        default=None,
        help="YAML file holding the completed dir; written with defaults if missing",
    )
    parser.add_argument(
        "-r", "--resize", action="store_true", help=f"Downscale to {RESIZE_EDGE}x{RESIZE_EDGE} JPEG"
    )
    parser.add_argument("--open", action="store_true", help="Open the finished image in the system viewer")
    parser.add_argument("--no-wallpaper", action="store_true", help="Do not change the desktop background")
    parser.add_argument(
        "--watch",
        action="store_true",
        help=f"Keep running, fetching a new snapshot every {REFRESH_INTERVAL:.0f}s",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Debug logging, also to a dated log file")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only warnings and errors")
    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.watch and args.oneshot is not None:
        parser.error("--watch cannot be combined with --oneshot")
    return args


def resolve_completed_dir(args: argparse.Namespace) -> Path:
    """CLI flag, then HIMAWARI_COMPLETED_DIR, then the config file, then the default."""
    from_file = None
    if args.config_file is not None:
        from_file = ensure_user_config(args.config_file).completed
    if args.completed_dir is not None:
        return args.completed_dir
    if COMPLETED_DIR_OVERRIDE is None and from_file is not None:
        return from_file
    return DEFAULT_COMPLETED_DIR


def _progress_reporter(quiet: bool) -> Optional[Callable[[int, int], None]]:
    if quiet:
        return None

    def report(done: int, total: int) -> None:
        if done % PROGRESS_EVERY == 0 or done == total:
            log.info("%d/%d tiles", done, total)

    return report


def run_once(args: argparse.Namespace, completed_dir: Path) -> MosaicArtifact:
    snapshot = args.oneshot or closest_snapshot()
    started = time.perf_counter()
    artifact = asyncio.run(
        run_snapshot(snapshot, completed_dir, on_progress=_progress_reporter(args.quiet))
    )
    if args.resize:
        artifact.resize(RESIZE_EDGE, RESIZE_EDGE)
    if args.oneshot is None and not args.no_wallpaper:
        set_wallpaper(artifact.path)
    if args.open:
        open_in_viewer(artifact.path)
    log.info("%s done in %.1fs -> %s", snapshot, time.perf_counter() - started, artifact.path)
    return artifact


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(level="WARNING" if args.quiet else None, verbose=args.verbose)
    try:
        completed_dir = resolve_completed_dir(args)
    except MosaicError as exc:
        log.error("%s", exc)
        return 1
    try:
        while True:
            try:
                run_once(args, completed_dir)
            except MosaicError as exc:
                log.error("%s", exc)
                if not args.watch:
                    return 1
            if not args.watch:
                return 0
            log.info("Next snapshot in %.0fs", REFRESH_INTERVAL)
            time.sleep(REFRESH_INTERVAL)
    except KeyboardInterrupt:
        log.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
