"""
Module: organizer
Purpose: Target path determination for the dated archive layout.
"""

import os
from datetime import datetime

from .exceptions import PlacementError
from .models.convertinfo import ConvertInfo
from .models.inspection import Inspection
from .models.policy import FORMAT_AVIF, FORMAT_HEIC, FORMAT_JPEG
from .models.sourceentry import SourceEntry
from .utils import log_error, path_violation_message

FORMAT_EXTENSIONS = {
    FORMAT_JPEG: "jpg",
    FORMAT_HEIC: "heic",
    FORMAT_AVIF: "avif",
}


def destination_dir(base_out: str, taken_at: datetime) -> str:
    """
    `<base_out>/<YYYY>/<YYYY-MM-DD>` for the given capture time.
    """
    return os.path.join(
        os.path.abspath(base_out),
        f"{taken_at.year:04d}",
        f"{taken_at.year:04d}-{taken_at.month:02d}-{taken_at.day:02d}",
    )


def target_extension(entry: SourceEntry, info: ConvertInfo | None) -> str:
    if info is not None and info.target_format:
        return FORMAT_EXTENSIONS.get(info.target_format, info.target_format)
    return entry.extension


def determine_target_path(
    entry: SourceEntry,
    inspection: Inspection,
    info: ConvertInfo | None,
    base_out: str,
) -> str:
    """
    Compute the archive path of a source file.

    The name is the source stem plus the extension of the output format,
    placed under the capture date of the photo.

    Raises:
        PlacementError: If the computed path would escape `base_out`.
    """
    directory = destination_dir(base_out, inspection.taken_at)
    target = os.path.join(directory, f"{entry.stem}.{target_extension(entry, info)}")
    violation = path_violation_message(target, base_out, label="Target path")
    if violation:
        log_error(violation)
        raise PlacementError(violation)
    return target
