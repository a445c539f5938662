"""
Module: waypoint
Purpose: Track-log sample dataclass.
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Waypoint:
    """
    One track-log sample. `time` is timezone-aware UTC.
    """

    latitude: float
    longitude: float
    time: datetime
    elevation: float = 0.0

    @property
    def epoch(self) -> int:
        return int(self.time.timestamp())
