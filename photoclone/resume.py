"""
Module: resume
Purpose: Derive the incremental resume point from the archive layout.
"""

import os
import re
from datetime import date, datetime
from typing import Optional

from .exceptions import ConfigError
from .utils import log_info

_YEAR_RE = re.compile(r"^\d{4}$")
_DAY_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_AFTER_RE = re.compile(r"^(\d{4})(?:-(\d{2})(?:-(\d{2}))?)?$")


def _newest(candidates: list[str]) -> Optional[str]:
    """Directory with the newest mtime; name breaks ties."""
    best = None
    best_key = None
    for path in candidates:
        try:
            key = (os.path.getmtime(path), os.path.basename(path))
        except OSError:
            continue
        if best_key is None or key > best_key:
            best, best_key = path, key
    return best


def _day_of(name: str) -> Optional[date]:
    match = _DAY_RE.match(name)
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def compute_resume_point(archive_root: str) -> Optional[datetime]:
    """
    Find where the previous import stopped.

    Looks at the most recently modified `YYYY` directory under the archive
    root, then at the most recently modified `YYYY-MM-DD` directory inside
    it.

    Returns:
        Local midnight of that day, January 1 of the year when no day
        directory exists, or None when the archive holds no year directory.
    """
    root = os.path.abspath(archive_root)
    if not os.path.isdir(root):
        return None
    try:
        names = os.listdir(root)
    except OSError:
        return None

    years = [
        os.path.join(root, name)
        for name in names
        if _YEAR_RE.match(name) and os.path.isdir(os.path.join(root, name))
    ]
    year_dir = _newest(years)
    if year_dir is None:
        return None
    year = int(os.path.basename(year_dir))

    try:
        day_names = os.listdir(year_dir)
    except OSError:
        day_names = []
    days = [
        os.path.join(year_dir, name)
        for name in day_names
        if _day_of(name) is not None and os.path.isdir(os.path.join(year_dir, name))
    ]
    day_dir = _newest(days)
    if day_dir is None:
        point = datetime(year, 1, 1)
    else:
        day = _day_of(os.path.basename(day_dir))
        point = datetime(day.year, day.month, day.day)
    log_info(f"Resume point derived from archive: {point.isoformat()}")
    return point


def parse_after(value: str) -> datetime:
    """
    Parse an `--after` override of the form YYYY, YYYY-MM or YYYY-MM-DD.

    Raises:
        ConfigError: If the value has another shape or is not a real date.
    """
    match = _AFTER_RE.match((value or "").strip())
    if not match:
        raise ConfigError(f"Invalid date '{value}'. Expected YYYY, YYYY-MM or YYYY-MM-DD.")
    year = int(match.group(1))
    month = int(match.group(2) or 1)
    day = int(match.group(3) or 1)
    try:
        return datetime(year, month, day)
    except ValueError as exc:
        raise ConfigError(f"Invalid date '{value}': {exc}") from exc
