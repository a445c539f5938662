"""
Module: clone_engine
Purpose: Per-file clone pipeline and run orchestration.
"""

import os
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from . import metadata
from .codec import RasterCodec
from .config import Config
from .exceptions import PhotoCloneError, SetupError
from .geocache import NullSearch
from .models.convertinfo import ConvertInfo
from .models.inspection import Inspection
from .models.policy import FORMAT_AVIF, FORMAT_HEIC, FORMAT_JPEG, Policy
from .models.report import CloneReport, FileError
from .models.sourceentry import SourceEntry
from .models.statistics import RunStatistics
from .organizer import determine_target_path
from .policy import plan_conversion, resolve
from .reporting import RUN_REPORT_NAME, artifact_path, write_run_report
from .resume import compute_resume_point
from .scanner import filter_after, scan_source
from .tracklogs import build_geo_search, sources_from_settings
from .utils import atomic_write_bytes, log_error, log_info, log_warning, safe_copy

GPS_WRITABLE_FORMATS = {FORMAT_JPEG}

_FORMAT_COUNTERS = {
    FORMAT_JPEG: "to_jpeg",
    FORMAT_HEIC: "to_heic",
    FORMAT_AVIF: "to_avif",
}


class PathLocks:
    """
    One lock per destination path, so the exists-check and the write for a
    given target never interleave across workers.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def get(self, path: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(path)
            if lock is None:
                lock = self._locks[path] = threading.Lock()
            return lock


def _describe(info: ConvertInfo) -> str:
    parts = []
    if info.resize:
        parts.append(f"resize to {info.resize[0]}x{info.resize[1]}")
    if info.quality is not None:
        parts.append(f"quality {info.quality}%")
    if info.target_format:
        parts.append(f"convert to {info.target_format}")
    if info.gps:
        parts.append(f"add GPS {info.gps.latitude:.6f},{info.gps.longitude:.6f}")
    return ", ".join(parts)


def _conversion_statistics(info: ConvertInfo) -> RunStatistics:
    counters = {"converted": 1}
    if info.resize:
        counters["resized"] = 1
    if info.quality is not None:
        counters["quality_adjusted"] = 1
    if info.target_format in _FORMAT_COUNTERS:
        counters[_FORMAT_COUNTERS[info.target_format]] = 1
    if info.gps:
        counters["gps_added"] = 1
    return RunStatistics(**counters)


def rewrite(entry: SourceEntry, info: ConvertInfo, codec: RasterCodec) -> bytes:
    """
    Produce the output bytes for a file that needs more than a verbatim copy.
    GPS is written into the source blob first so the re-encode carries it.
    """
    try:
        with open(entry.path, "rb") as handle:
            blob = handle.read()
    except OSError as exc:
        raise PhotoCloneError(f"Unable to read {entry.path}: {exc}") from exc

    if info.gps is not None:
        blob = metadata.add_gps(blob, info.gps.latitude, info.gps.longitude, info.gps.elevation)
    if not info.needs_raster:
        return blob

    image = codec.decode(blob)
    current = codec.current_format(image)
    if info.resize:
        image = codec.resize(image, *info.resize)
    return codec.encode(image, info.target_format or current, info.quality)


def clone_file(
    entry: SourceEntry,
    inspection: Inspection,
    destination: str,
    table: Dict[int, Policy],
    search,
    codec: RasterCodec,
    *,
    dry_run: bool = False,
    locks: PathLocks | None = None,
) -> RunStatistics:
    """
    Run the geotag, policy and placement stages for one inspected file.

    Returns:
        Statistics for this single file.

    Raises:
        PhotoCloneError: On any per-file failure.
    """
    if not inspection.taken_at_reliable:
        log_warning(f"No capture date in {entry.path}; placing by file time {inspection.taken_at:%Y-%m-%d}")

    gps = None
    if not inspection.gps_recorded and inspection.format in GPS_WRITABLE_FORMATS:
        gps = search.search(inspection.taken_at)
        if gps is None:
            log_info(f"No track point within range for {entry.path}")

    policy = resolve(inspection.rating, table)
    info = plan_conversion(policy, inspection, gps)
    target = determine_target_path(entry, inspection, info, destination)

    lock = (locks or PathLocks()).get(target)
    with lock:
        if os.path.exists(target):
            log_info(f"Skip (exists): {entry.path} -> {target}")
            return RunStatistics(skipped=1)
        if dry_run:
            action = "copy" if info is None else _describe(info)
            log_info(f"Dry run: would {action}: {entry.path} -> {target}")
            return RunStatistics(skipped=1)
        if info is None:
            safe_copy(entry.path, target)
            log_info(f"Copied: {entry.path} -> {target}")
            return RunStatistics(copied=1)
        data = rewrite(entry, info, codec)
        atomic_write_bytes(data, target)
        log_info(f"Converted ({_describe(info)}): {entry.path} -> {target}")
        return _conversion_statistics(info)


def _process(
    entry: SourceEntry,
    destination: str,
    table: Dict[int, Policy],
    search,
    codec: RasterCodec,
    dry_run: bool,
    locks: PathLocks,
) -> Tuple[RunStatistics, Optional[FileError]]:
    inspection = None
    try:
        inspection = metadata.inspect(entry)
        stats = clone_file(
            entry, inspection, destination, table, search, codec, dry_run=dry_run, locks=locks
        )
        return stats, None
    except Exception as exc:
        log_error(f"Failed to clone {entry.path}: {exc}")
        return RunStatistics(), FileError(entry.path, str(exc), inspection)


def run_clone(
    entries: Iterable[SourceEntry],
    destination: str,
    table: Dict[int, Policy],
    search,
    codec: RasterCodec,
    *,
    dry_run: bool = False,
    workers: int = 1,
) -> CloneReport:
    """
    Clone every entry into the archive and aggregate the outcomes.

    Per-file failures are collected in the report and never stop the run.
    A KeyboardInterrupt stops dispatching new files; files already in
    flight finish and the report comes back with `cancelled` set.
    """
    pending_entries = list(entries)
    report = CloneReport(dry_run=dry_run, considered=len(pending_entries))
    locks = PathLocks()
    parts: List[RunStatistics] = []

    def collect(result: Tuple[RunStatistics, Optional[FileError]]) -> None:
        stats, error = result
        parts.append(stats)
        if error is not None:
            report.errors.append(error)

    def work(entry: SourceEntry):
        return _process(entry, destination, table, search, codec, dry_run, locks)

    if workers <= 1:
        try:
            for entry in pending_entries:
                collect(work(entry))
        except KeyboardInterrupt:
            report.cancelled = True
            log_warning("Clone interrupted; stopping after the current file")
    else:
        entry_iter = iter(pending_entries)
        in_flight = set()
        executor = ThreadPoolExecutor(max_workers=workers)
        try:
            try:
                for _ in range(workers * 2):
                    entry = next(entry_iter, None)
                    if entry is None:
                        break
                    in_flight.add(executor.submit(work, entry))
                while in_flight:
                    done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                    for future in done:
                        in_flight.discard(future)
                        collect(future.result())
                        entry = next(entry_iter, None)
                        if entry is not None:
                            in_flight.add(executor.submit(work, entry))
            except KeyboardInterrupt:
                report.cancelled = True
                log_warning("Clone interrupted; waiting for in-flight files to finish")
                done, _ = wait(in_flight)
                for future in done:
                    collect(future.result())
        finally:
            executor.shutdown(wait=True)

    report.statistics = RunStatistics.merge(parts)
    return report


def _validate_paths(source: str, destination: str) -> Tuple[str, str]:
    if not source:
        raise SetupError("No source directory given (use --from or [import] from).")
    if not destination:
        raise SetupError("No destination directory given (use --to or [import] to).")
    normalized_source = os.path.abspath(source)
    normalized_destination = os.path.abspath(destination)
    if normalized_source == normalized_destination:
        raise SetupError("Source and destination must be different directories.")
    if os.path.islink(normalized_destination):
        raise SetupError(f"Destination '{normalized_destination}' is a symlink.")
    if os.path.exists(normalized_destination) and not os.path.isdir(normalized_destination):
        raise SetupError(f"Destination '{normalized_destination}' is not a directory.")
    return normalized_source, normalized_destination


def clone(
    config: Config,
    *,
    dry_run: bool = False,
    ignore_geotag: bool = False,
    after: datetime | None = None,
    codec: RasterCodec | None = None,
    sources: Sequence | None = None,
) -> CloneReport:
    """
    Full import run: resume point, scan, geo search, clone, report.

    Raises:
        SetupError: If paths are invalid or the source cannot be scanned.
    """
    source, destination = _validate_paths(config.source, config.destination)

    if after is not None:
        resume_point = after
        log_info(f"Resume point overridden: {after.isoformat()}")
    else:
        resume_point = compute_resume_point(destination)

    entries = scan_source(source, exclude=destination)
    candidates = filter_after(entries, resume_point)
    log_info(
        f"Found {len(entries)} file(s) in {source}; {len(candidates)} after resume point"
    )

    if ignore_geotag:
        search = NullSearch()
    else:
        if sources is None:
            sources = sources_from_settings(config.geotag)
        search = build_geo_search(
            sources,
            candidates,
            match_within=config.geotag.match_within,
            max_files=config.geotag.max_files,
        )

    report = run_clone(
        candidates,
        destination,
        config.policies,
        search,
        codec or RasterCodec(),
        dry_run=dry_run,
        workers=config.workers,
    )
    report.resume_point = resume_point
    report.excluded_by_resume = len(entries) - len(candidates)

    stats = report.statistics
    log_info(
        f"Clone finished: copied={stats.copied} converted={stats.converted} "
        f"skipped={stats.skipped} failed={report.failed} cancelled={report.cancelled}"
    )
    write_run_report(report, artifact_path(RUN_REPORT_NAME))
    return report
