"""
Module: cli
Purpose: Command-line interface entry point.
"""

import argparse
import os
import sys
from typing import List, Sequence

from . import config as config_module
from . import reporting
from .clone_engine import clone
from .exceptions import PhotoCloneError
from .models.report import CloneReport
from .resume import parse_after
from .utils import (
    COLOR_CYAN,
    COLOR_GREEN,
    COLOR_RED,
    COLOR_YELLOW,
    DEFAULT_PIXEL_LIMIT,
    MAX_OVERRIDE_LIMIT,
    PIXEL_LIMIT_ENV,
    color_text,
    configure_pixel_limit,
    log_error,
    log_warning,
)

SUMMARY_WIDTH = 64
MAX_LISTED_ERRORS = 10


def _pixel_limit_arg(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("Pixel limit must be an integer.") from exc
    if parsed < DEFAULT_PIXEL_LIMIT or parsed > MAX_OVERRIDE_LIMIT:
        raise argparse.ArgumentTypeError(
            f"Pixel limit must be between {DEFAULT_PIXEL_LIMIT} and {MAX_OVERRIDE_LIMIT}."
        )
    return parsed


def _workers_arg(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("Workers must be an integer.") from exc
    if parsed < 1 or parsed > config_module.MAX_WORKERS:
        raise argparse.ArgumentTypeError(
            f"Workers must be between 1 and {config_module.MAX_WORKERS}."
        )
    return parsed


def _paint(text: str, color: str, use_color: bool) -> str:
    return color_text(text, color) if use_color else text


def _render_summary_box(rows: list[tuple[str, str]], *, title: str = "SUMMARY") -> List[str]:
    """
    Render SUMMARY box with deterministic width.
    """
    width = SUMMARY_WIDTH
    lines = [f"+{'-' * (width - 2)}+", f"|{f' {title} '.center(width - 2)}|"]
    lines.append(f"|{' ' * (width - 2)}|")
    for label, value in rows:
        text = f"{label:<20} {value}"
        if len(text) > width - 4:
            text = text[: width - 7] + "..."
        lines.append(f"| {text.ljust(width - 3)}|")
    lines.append(f"|{' ' * (width - 2)}|")
    lines.append(f"+{'-' * (width - 2)}+")
    return lines


def _summary_rows(report: CloneReport) -> list[tuple[str, str]]:
    stats = report.statistics
    rows = [
        ("Considered", str(report.considered)),
        ("Before resume point", str(report.excluded_by_resume)),
        ("Copied", str(stats.copied)),
        ("Converted", str(stats.converted)),
        ("  resized", str(stats.resized)),
        ("  quality adjusted", str(stats.quality_adjusted)),
        ("  to JPEG/HEIC/AVIF", f"{stats.to_jpeg}/{stats.to_heic}/{stats.to_avif}"),
        ("  GPS added", str(stats.gps_added)),
        ("Skipped", str(stats.skipped)),
        ("Failed", str(report.failed)),
    ]
    if report.resume_point is not None:
        rows.insert(1, ("Resume point", report.resume_point.strftime("%Y-%m-%d")))
    return rows


def _print_report(report: CloneReport, *, use_color: bool) -> None:
    title = "DRY RUN SUMMARY" if report.dry_run else "CLONE SUMMARY"
    for line in _render_summary_box(_summary_rows(report), title=title):
        print(line)
    if report.errors:
        print(_paint(f"{report.failed} file(s) failed:", COLOR_RED, use_color))
        for error in report.errors[:MAX_LISTED_ERRORS]:
            print(f"  {error.path}: {error.message}")
        if report.failed > MAX_LISTED_ERRORS:
            print(f"  ... and {report.failed - MAX_LISTED_ERRORS} more")
    if report.cancelled:
        print(_paint("Interrupted: remaining files were not processed.", COLOR_YELLOW, use_color))
    print(f"Log: {os.path.abspath(reporting.LOG_FILE_NAME)}")
    print(f"Report: {reporting.artifact_path(reporting.RUN_REPORT_NAME)}")


def _clone_command(args: argparse.Namespace, *, use_color: bool) -> int:
    cfg = config_module.load_config(args.config)
    if args.source:
        cfg.source = os.path.expanduser(args.source)
    if args.destination:
        cfg.destination = os.path.expanduser(args.destination)
    if args.workers is not None:
        cfg.workers = args.workers
    after = parse_after(args.after) if args.after else None

    report = clone(
        cfg,
        dry_run=args.dry_run,
        ignore_geotag=args.ignore_geotag,
        after=after,
    )
    _print_report(report, use_color=use_color)
    if report.cancelled:
        return 1
    if not report.errors:
        print(_paint("Done.", COLOR_GREEN, use_color))
    return 0


def _init_command(args: argparse.Namespace, *, use_color: bool) -> int:
    path = config_module.init_config(args.config, force=args.force)
    print(_paint(f"Wrote default configuration to {path}", COLOR_CYAN, use_color))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="photoclone",
        description="Import camera photos into a dated archive, applying rating policies and GPS backfill.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help=f"Configuration file (default: ${config_module.CONFIG_ENV} or the user config directory).",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable ANSI colors.",
    )
    parser.add_argument(
        "--max-pixels",
        type=_pixel_limit_arg,
        default=None,
        help=(
            f"Override Pillow decompression guard (default {DEFAULT_PIXEL_LIMIT} pixels). "
            f"Maximum allowed is {MAX_OVERRIDE_LIMIT}. Also configurable via ${PIXEL_LIMIT_ENV}."
        ),
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    clone_parser = subparsers.add_parser(
        "clone",
        help="Import new photos from the source into the archive",
        description=(
            "Clone copies every photo taken since the last import into <to>/YYYY/YYYY-MM-DD, "
            "resizing or converting it according to its rating and adding GPS tags from track logs.\n"
            "Files already present in the archive are never overwritten."
        ),
    )
    clone_parser.add_argument("--from", dest="source", default=None, help="Source directory (overrides config)")
    clone_parser.add_argument("--to", dest="destination", default=None, help="Archive directory (overrides config)")
    clone_parser.add_argument("--dry-run", action="store_true", help="Show what would happen without writing")
    clone_parser.add_argument("--ignore-geotag", action="store_true", help="Do not add GPS tags")
    clone_parser.add_argument(
        "--after",
        default=None,
        help="Only import files created on or after YYYY, YYYY-MM or YYYY-MM-DD",
    )
    clone_parser.add_argument("--workers", type=_workers_arg, default=None, help="Parallel workers (default from config)")

    init_parser = subparsers.add_parser(
        "init",
        help="Write the default configuration file",
    )
    init_parser.add_argument("--force", action="store_true", help="Overwrite an existing configuration")
    return parser


def main(argv: Sequence[str] | None = None):
    """
    Argument parser entry point.

    Raises:
        SystemExit: With status 1 on setup errors or interruption.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    use_color = not args.no_color and sys.stdout.isatty()

    reporting.ensure_log_initialized()
    limit, source = configure_pixel_limit(args.max_pixels)
    if source != "default":
        log_warning(f"Pixel safety limit set to {limit:,} via {source}.")

    try:
        reporting.write_log([f"[INFO] Command {args.command} started"])
        if args.command == "clone":
            exit_code = _clone_command(args, use_color=use_color)
        else:
            exit_code = _init_command(args, use_color=use_color)
    except PhotoCloneError as exc:
        log_error(f"{args.command} failed: {exc}")
        print(_paint(f"Error: {exc}", COLOR_RED, use_color), file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        log_warning(f"{args.command} interrupted by user")
        print("Interrupted.", file=sys.stderr)
        sys.exit(1)
    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
