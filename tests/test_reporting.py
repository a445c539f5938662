import json
import os
from datetime import datetime

from photoclone import reporting
from photoclone.models.inspection import Inspection
from photoclone.models.report import CloneReport, FileError
from photoclone.models.statistics import RunStatistics


def test_log_file_name_constant():
    assert reporting.LOG_FILE_NAME == "artifacts/photoclone.log"


def test_write_log_appends_timestamped_lines(tmp_path):
    outfile = tmp_path / "logs" / "run.log"
    reporting.write_log(["[ERROR] first"], str(outfile))
    reporting.write_log(["plain message"], str(outfile))

    lines = outfile.read_text().splitlines()
    assert len(lines) == 2
    assert lines[0].startswith("[") and lines[0].endswith("[ERROR] first")
    assert lines[1].endswith("[INFO] plain message")


def test_ensure_log_initialized_creates_file(isolated_artifacts):
    path = reporting.ensure_log_initialized()
    assert os.path.realpath(path) == os.path.realpath(isolated_artifacts / "artifacts" / "photoclone.log")
    assert os.path.exists(path)


def test_write_run_report(tmp_path):
    inspection = Inspection(
        path="/src/bad.jpg",
        mime="image/jpeg",
        format="jpeg",
        gps_recorded=False,
        taken_at=datetime(2023, 2, 3, 14, 29, 40),
        rating=2,
    )
    report = CloneReport(
        statistics=RunStatistics(copied=3, converted=1, to_heic=1),
        errors=[FileError("/src/bad.jpg", "Encoding heic failed", inspection), FileError("/src/x.jpg", "boom")],
        considered=6,
        excluded_by_resume=2,
        resume_point=datetime(2023, 2, 3),
        dry_run=True,
    )
    outfile = tmp_path / "run_report.json"
    reporting.write_run_report(report, str(outfile))

    payload = json.loads(outfile.read_text())
    assert payload["dry_run"] is True
    assert payload["considered"] == 6
    assert payload["excluded_by_resume"] == 2
    assert payload["resume_point"] == "2023-02-03T00:00:00"
    assert payload["statistics"]["copied"] == 3
    assert payload["statistics"]["to_heic"] == 1
    assert payload["failed"] == 2
    assert payload["errors"][0] == {
        "path": "/src/bad.jpg",
        "message": "Encoding heic failed",
        "rating": 2,
        "format": "jpeg",
    }
    assert payload["errors"][1]["rating"] is None
    assert payload["errors_truncated"] is False
