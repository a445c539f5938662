"""
Module: inspection
Purpose: Metadata snapshot dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

UNRATED = -1


@dataclass(frozen=True)
class MetadataTags:
    """
    Raw tag strings as read from a file. Absent tags are empty strings.
    """

    mime: str = ""
    gps_lat: str = ""
    gps_lon: str = ""
    datetime: str = ""
    offset: str = ""
    rating: str = ""


@dataclass(frozen=True)
class Inspection:
    """
    Cheap metadata-only view of one source file.
    """

    path: str
    mime: str
    format: str
    gps_recorded: bool
    taken_at: datetime
    rating: int = UNRATED
    dimensions: Optional[Tuple[int, int]] = None
    taken_at_reliable: bool = True
