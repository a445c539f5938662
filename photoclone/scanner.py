"""
Module: scanner
Purpose: Source directory enumeration and resume filtering.
"""

import os
from datetime import datetime
from typing import Iterable, List, Optional

from .exceptions import ScanError
from .models.sourceentry import SourceEntry
from .utils import log_error, log_warning

SUPPORTED_FORMATS = {
    "jpg",
    "jpeg",
    "png",
    "tif",
    "tiff",
    "heic",
    "heif",
    "avif",
}


def created_at(stat_result: os.stat_result) -> datetime:
    """
    Birth time where the platform reports one, modification time otherwise.
    Returned as a naive local datetime.
    """
    birth = getattr(stat_result, "st_birthtime", None)
    timestamp = birth if birth else stat_result.st_mtime
    return datetime.fromtimestamp(timestamp)


def scan_source(path: str, exclude: str | None = None) -> List[SourceEntry]:
    """
    Recursively enumerate supported images below `path`.

    Args:
        path: Source directory.
        exclude: Directory to leave out, e.g. an archive nested in the source.

    Returns:
        SourceEntry list sorted by path.

    Raises:
        ScanError: If the source is missing or not a directory.
    """
    root_path = os.path.abspath(path)
    if not os.path.exists(root_path):
        log_error(f"Path does not exist: {root_path}")
        raise ScanError(f"Path does not exist: {root_path}")
    if not os.path.isdir(root_path):
        log_error(f"Path is not a directory: {root_path}")
        raise ScanError(f"Path is not a directory: {root_path}")
    excluded = os.path.abspath(exclude) if exclude else None

    results: List[SourceEntry] = []
    for root, dirs, files in os.walk(root_path, topdown=True, followlinks=False):
        safe_dirs: List[str] = []
        for dirname in sorted(dirs):
            dir_path = os.path.join(root, dirname)
            if os.path.islink(dir_path):
                log_warning(f"Skipping symlinked directory during scan: {dir_path}")
                continue
            if excluded and os.path.abspath(dir_path) == excluded:
                continue
            safe_dirs.append(dirname)
        dirs[:] = safe_dirs
        for name in files:
            file_path = os.path.abspath(os.path.join(root, name))
            if os.path.islink(file_path):
                log_warning(f"Skipping symlinked file during scan: {file_path}")
                continue
            _, ext = os.path.splitext(file_path)
            if not ext:
                continue
            ext = ext.lstrip(".").lower()
            if ext not in SUPPORTED_FORMATS:
                continue
            try:
                stat_result = os.stat(file_path)
            except OSError as exc:
                log_error(f"Failed to read file info for {file_path}: {exc}")
                continue
            results.append(
                SourceEntry(
                    path=file_path,
                    extension=ext,
                    size=stat_result.st_size,
                    created_at=created_at(stat_result),
                )
            )

    results.sort(key=lambda entry: entry.path)
    return results


def filter_after(entries: Iterable[SourceEntry], point: Optional[datetime]) -> List[SourceEntry]:
    """
    Keep entries created at or after the resume point. None keeps everything.
    """
    if point is None:
        return list(entries)
    return [entry for entry in entries if entry.created_at >= point]
