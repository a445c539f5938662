"""
Module: policy
Purpose: Map ratings to transformation policies and decide which
mutations a file actually needs.

Percentage resizes shrink the pixel count, not the side length: "50%"
keeps half the megapixels, so each side is scaled by sqrt(0.5). Users
reading only the configuration file may expect a linear resize.
"""

import math
from typing import Mapping, Optional, Tuple

from .models.convertinfo import ConvertInfo
from .models.inspection import Inspection
from .models.policy import (
    BYPASS,
    FORMAT_AVIF,
    FORMAT_HEIC,
    FORMAT_JPEG,
    FORMAT_PRESERVE,
    RESIZE_MEGAPIXELS,
    RESIZE_PERCENTAGE,
    Policy,
    Quality,
    Resize,
)
from .models.waypoint import Waypoint

PolicyTable = Mapping[int, Policy]

_FORMAT_ALIASES = {
    "jpg": FORMAT_JPEG,
    "jpeg": FORMAT_JPEG,
    "heic": FORMAT_HEIC,
    "heif": FORMAT_HEIC,
    "avif": FORMAT_AVIF,
}


def normalize_format(value: str | None) -> str | None:
    """
    Collapse extension or codec names to a format family.
    """
    if not value:
        return None
    lowered = value.lower().lstrip(".")
    return _FORMAT_ALIASES.get(lowered, lowered)


def resolve(rating: int, table: PolicyTable) -> Policy:
    """
    Look up the policy for a rating.

    Args:
        rating: Rating read from the file metadata (-1 when unrated).
        table: Rating to policy table loaded from configuration.

    Returns:
        The configured Policy, or BYPASS when the rating is not listed.
    """
    return table.get(rating, BYPASS)


def needs_resize(width: int, height: int, resize: Resize) -> Optional[Tuple[int, int]]:
    """
    Compute target dimensions for a resize directive.

    Returns:
        (width, height) when the image has to shrink, otherwise None.
        Images are never upscaled.
    """
    if width <= 0 or height <= 0:
        return None
    if resize.kind == RESIZE_PERCENTAGE:
        if resize.value >= 100:
            return None
        scale = math.sqrt(resize.value / 100.0)
    elif resize.kind == RESIZE_MEGAPIXELS:
        scale = math.sqrt(resize.value * 1_000_000 / (width * height))
        if scale >= 1.0:
            return None
    else:
        return None
    return max(1, int(width * scale)), max(1, int(height * scale))


def needs_convert(current_format: str | None, target_format: str) -> Optional[str]:
    """
    Return the target format only when it differs from the current one.
    """
    target = normalize_format(target_format)
    if target is None or target == FORMAT_PRESERVE:
        return None
    if normalize_format(current_format) == target:
        return None
    return target


def needs_quality(quality: Quality) -> Optional[int]:
    return quality.percentage


def plan_conversion(
    policy: Policy,
    inspection: Inspection,
    gps: Waypoint | None = None,
) -> Optional[ConvertInfo]:
    """
    Combine a policy with an inspection into a rewrite instruction.

    Returns:
        None when a verbatim copy is sufficient, otherwise a ConvertInfo.
        A ConvertInfo with only `gps` set is a metadata-only rewrite.
    """
    if policy.is_bypass:
        if gps is None:
            return None
        return ConvertInfo(gps=gps)

    resize = None
    if inspection.dimensions:
        width, height = inspection.dimensions
        resize = needs_resize(width, height, policy.resize)
    info = ConvertInfo(
        resize=resize,
        quality=needs_quality(policy.quality),
        target_format=needs_convert(inspection.format, policy.format),
        gps=gps,
    )
    if not info.needs_raster and info.gps is None:
        return None
    return info
