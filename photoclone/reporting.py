"""
Module: reporting
Purpose: Logging and report generation utilities.
"""

import json
import os
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from typing import Any, List

from .models.report import CloneReport

ARTIFACTS_DIR = "artifacts"
LOG_FILE_NAME = os.path.join(ARTIFACTS_DIR, "photoclone.log")
RUN_REPORT_NAME = "run_report.json"
MAX_REPORTED_ERRORS = 500


def artifact_path(filename: str) -> str:
    return os.path.abspath(os.path.join(ARTIFACTS_DIR, filename))


def ensure_log_initialized() -> str:
    """Ensure the photoclone log file exists and return its absolute path."""
    path = os.path.abspath(LOG_FILE_NAME)
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    with open(path, "a", encoding="utf-8"):
        pass
    return path


def write_log(entries: List[str], outfile: str = LOG_FILE_NAME):
    """
    Append entries to logfile.
    """
    directory = os.path.dirname(os.path.abspath(outfile)) or "."
    os.makedirs(directory, exist_ok=True)
    timestamp = datetime.now(timezone.utc).isoformat()
    with open(outfile, "a", encoding="utf-8") as handle:
        for entry in entries:
            normalized = entry if entry.startswith("[") else f"[INFO] {entry}"
            handle.write(f"[{timestamp}] {normalized}\n")


class EnhancedJSONEncoder(json.JSONEncoder):
    def default(self, o: Any) -> Any:
        if is_dataclass(o):
            return asdict(o)
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)


def run_report_payload(report: CloneReport) -> dict[str, Any]:
    """
    Build the JSON-serialisable summary of a clone run.
    """
    errors = [
        {
            "path": error.path,
            "message": error.message,
            "rating": error.inspection.rating if error.inspection else None,
            "format": error.inspection.format if error.inspection else None,
        }
        for error in report.errors[:MAX_REPORTED_ERRORS]
    ]
    return {
        "schema_version": "1.0",
        "dry_run": report.dry_run,
        "cancelled": report.cancelled,
        "considered": report.considered,
        "excluded_by_resume": report.excluded_by_resume,
        "resume_point": report.resume_point,
        "statistics": report.statistics.as_dict(),
        "failed": report.failed,
        "errors": errors,
        "errors_truncated": report.failed > MAX_REPORTED_ERRORS,
    }


def write_run_report(report: CloneReport, outfile: str):
    """
    Save structured JSON summary of a clone run.
    """
    os.makedirs(os.path.dirname(os.path.abspath(outfile)) or ".", exist_ok=True)
    with open(outfile, "w", encoding="utf-8") as handle:
        json.dump(run_report_payload(report), handle, indent=2, cls=EnhancedJSONEncoder)
