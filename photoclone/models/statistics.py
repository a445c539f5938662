"""
Module: statistics
Purpose: Run counters with field-wise merge.
"""

from dataclasses import dataclass, fields
from typing import Iterable


@dataclass(frozen=True)
class RunStatistics:
    """
    Counters accumulated across a run. Two partial statistics combine by
    field-wise addition, so any partition of the file set merges to the same
    totals.
    """

    skipped: int = 0
    copied: int = 0
    converted: int = 0
    resized: int = 0
    quality_adjusted: int = 0
    to_jpeg: int = 0
    to_heic: int = 0
    to_avif: int = 0
    gps_added: int = 0

    def __add__(self, other: "RunStatistics") -> "RunStatistics":
        if not isinstance(other, RunStatistics):
            return NotImplemented
        return RunStatistics(
            **{f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)}
        )

    @classmethod
    def merge(cls, parts: Iterable["RunStatistics"]) -> "RunStatistics":
        total = cls()
        for part in parts:
            total = total + part
        return total

    @property
    def total(self) -> int:
        return self.skipped + self.copied + self.converted

    def as_dict(self) -> dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
