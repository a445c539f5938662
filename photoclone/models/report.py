"""
Module: report
Purpose: Clone run outcome dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .inspection import Inspection
from .statistics import RunStatistics


@dataclass(frozen=True)
class FileError:
    """
    A per-file failure collected during the run and reported afterwards.
    """

    path: str
    message: str
    inspection: Optional[Inspection] = None


@dataclass
class CloneReport:
    """
    Aggregated result of one clone run.
    """

    statistics: RunStatistics = field(default_factory=RunStatistics)
    errors: List[FileError] = field(default_factory=list)
    considered: int = 0
    excluded_by_resume: int = 0
    resume_point: Optional[datetime] = None
    dry_run: bool = False
    cancelled: bool = False

    @property
    def failed(self) -> int:
        return len(self.errors)
