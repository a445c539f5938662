import os

import pytest
from PIL import Image

from photoclone import utils
from photoclone.exceptions import PlacementError


def test_path_violation_message(tmp_path):
    root = str(tmp_path)
    assert utils.path_violation_message(os.path.join(root, "2023", "a.jpg"), root, label="Target") is None
    message = utils.path_violation_message(os.path.join(root, "..", "a.jpg"), root, label="Target")
    assert "escapes destination" in message


def test_atomic_write_bytes_replaces_without_partials(tmp_path):
    target = tmp_path / "2023" / "2023-02-03" / "a.jpg"
    utils.atomic_write_bytes(b"hello", str(target))

    assert target.read_bytes() == b"hello"
    assert [p.name for p in target.parent.iterdir()] == ["a.jpg"]


def test_atomic_write_bytes_cleans_up_on_failure(tmp_path, monkeypatch):
    target = tmp_path / "out" / "a.jpg"
    errors: list[str] = []
    monkeypatch.setattr(utils, "log_error", errors.append)

    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(utils.os, "replace", failing_replace)
    with pytest.raises(PlacementError):
        utils.atomic_write_bytes(b"data", str(target))

    assert list((tmp_path / "out").iterdir()) == []
    assert any("disk full" in entry for entry in errors)


def test_atomic_write_bytes_cleans_up_on_interrupt(tmp_path, monkeypatch):
    target = tmp_path / "out" / "a.jpg"

    def interrupted_replace(src, dst):
        raise KeyboardInterrupt

    monkeypatch.setattr(utils.os, "replace", interrupted_replace)
    with pytest.raises(KeyboardInterrupt):
        utils.atomic_write_bytes(b"data", str(target))
    assert list((tmp_path / "out").iterdir()) == []


def test_safe_copy_preserves_content(tmp_path):
    src = tmp_path / "src.jpg"
    src.write_bytes(b"jpeg-bytes")
    dst = tmp_path / "archive" / "2023" / "dst.jpg"

    utils.safe_copy(str(src), str(dst))
    assert dst.read_bytes() == b"jpeg-bytes"
    assert not any(p.name.endswith(utils.PARTIAL_SUFFIX) for p in dst.parent.iterdir())


def test_safe_copy_missing_source_raises(tmp_path, monkeypatch):
    monkeypatch.setattr(utils, "log_error", lambda message: None)
    with pytest.raises(PlacementError):
        utils.safe_copy(str(tmp_path / "missing.jpg"), str(tmp_path / "out" / "x.jpg"))
    assert list((tmp_path / "out").iterdir()) == []


def test_configure_pixel_limit_prefers_cli(monkeypatch):
    monkeypatch.setenv(utils.PIXEL_LIMIT_ENV, str(utils.DEFAULT_PIXEL_LIMIT + 1))
    try:
        limit, source = utils.configure_pixel_limit(utils.MAX_OVERRIDE_LIMIT)
        assert (limit, source) == (utils.MAX_OVERRIDE_LIMIT, "cli")
        assert Image.MAX_IMAGE_PIXELS == utils.MAX_OVERRIDE_LIMIT

        limit, source = utils.configure_pixel_limit(None)
        assert (limit, source) == (utils.DEFAULT_PIXEL_LIMIT + 1, "env")
    finally:
        monkeypatch.delenv(utils.PIXEL_LIMIT_ENV)
        utils.configure_pixel_limit(None)


def test_configure_pixel_limit_ignores_bad_env(monkeypatch):
    warnings: list[str] = []
    monkeypatch.setattr(utils, "log_warning", warnings.append)
    monkeypatch.setenv(utils.PIXEL_LIMIT_ENV, "lots")
    try:
        assert utils.configure_pixel_limit(None) == (utils.DEFAULT_PIXEL_LIMIT, "default")
        assert warnings
    finally:
        monkeypatch.delenv(utils.PIXEL_LIMIT_ENV)
        utils.configure_pixel_limit(None)


def test_log_helpers_route_through_write_log(monkeypatch):
    entries: list[str] = []

    def fake_write_log(lines, outfile="artifacts/photoclone.log"):
        entries.extend(lines)

    monkeypatch.setattr("photoclone.reporting.write_log", fake_write_log)
    utils.log_info("hello")
    utils.log_warning("careful")
    utils.log_error("broken")
    assert entries == ["[INFO] hello", "[WARNING] careful", "[ERROR] broken"]
