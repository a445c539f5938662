"""
Module: convertinfo
Purpose: Resolved per-file rewrite instruction.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from .waypoint import Waypoint


@dataclass(frozen=True)
class ConvertInfo:
    """
    What the rewrite step has to do for a single file.
    """

    resize: Optional[Tuple[int, int]] = None
    quality: Optional[int] = None
    target_format: Optional[str] = None
    gps: Optional[Waypoint] = None

    @property
    def needs_raster(self) -> bool:
        """True when pixels have to be decoded and re-encoded."""
        return self.resize is not None or self.quality is not None or self.target_format is not None
