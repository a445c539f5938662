"""
Module: sourceentry
Purpose: Dataclass representing a candidate source file.
"""

import os
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class SourceEntry:
    """
    A single file found while enumerating the source directory.
    """

    path: str
    extension: str
    size: int
    created_at: datetime

    @property
    def stem(self) -> str:
        return os.path.splitext(os.path.basename(self.path))[0]
