import os
from datetime import datetime

import pytest

from photoclone import scanner
from photoclone.exceptions import ScanError
from photoclone.models.sourceentry import SourceEntry


def test_scan_source_filters_supported(tmp_path):
    root = tmp_path / "photos"
    (root / "sub").mkdir(parents=True)
    (root / "a.JPG").write_bytes(b"123")
    (root / "sub" / "b.heic").write_bytes(b"1")
    (root / "note.txt").write_text("ignore")
    (root / "raw.cr2").write_bytes(b"raw")

    res = scanner.scan_source(str(root))
    assert [os.path.basename(e.path) for e in res] == ["a.JPG", "b.heic"]
    assert res[0].extension == "jpg"
    assert res[0].size == 3
    assert res[0].stem == "a"
    assert isinstance(res[0].created_at, datetime)
    assert res[0].created_at.tzinfo is None


def test_scan_source_skips_symlinks(tmp_path):
    root = tmp_path / "photos"
    root.mkdir()
    real = tmp_path / "elsewhere.jpg"
    real.write_bytes(b"x")
    os.symlink(real, root / "link.jpg")

    assert scanner.scan_source(str(root)) == []


def test_scan_source_excludes_nested_archive(tmp_path):
    root = tmp_path / "photos"
    archive = root / "archive" / "2023" / "2023-01-01"
    archive.mkdir(parents=True)
    (archive / "old.jpg").write_bytes(b"x")
    (root / "new.jpg").write_bytes(b"x")

    res = scanner.scan_source(str(root), exclude=str(root / "archive"))
    assert [os.path.basename(e.path) for e in res] == ["new.jpg"]


def test_scan_source_rejects_missing_path(tmp_path):
    with pytest.raises(ScanError):
        scanner.scan_source(str(tmp_path / "missing"))
    (tmp_path / "file.jpg").write_bytes(b"x")
    with pytest.raises(ScanError):
        scanner.scan_source(str(tmp_path / "file.jpg"))


def test_filter_after_keeps_entries_at_or_after_point():
    def entry(name, when):
        return SourceEntry(path=f"/src/{name}", extension="jpg", size=1, created_at=when)

    entries = [
        entry("old.jpg", datetime(2023, 2, 2, 23, 59)),
        entry("edge.jpg", datetime(2023, 2, 3)),
        entry("new.jpg", datetime(2023, 2, 4, 8)),
    ]
    kept = scanner.filter_after(entries, datetime(2023, 2, 3))
    assert [e.stem for e in kept] == ["edge", "new"]
    assert scanner.filter_after(entries, None) == entries


def test_created_at_prefers_birth_time(tmp_path):
    sample = tmp_path / "a.jpg"
    sample.write_bytes(b"x")
    os.utime(sample, (1_600_000_000, 1_600_000_000))
    stat_result = os.stat(sample)
    expected_ts = getattr(stat_result, "st_birthtime", None) or 1_600_000_000
    assert scanner.created_at(stat_result) == datetime.fromtimestamp(expected_ts)
