import os
from datetime import datetime

import piexif
import pytest
from PIL import Image


@pytest.fixture(autouse=True)
def isolated_artifacts(tmp_path, monkeypatch):
    """Keep artifacts/ (log file, run report) inside the test's tmp dir."""
    workdir = tmp_path / "cwd"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    return workdir


def _dms(value: float):
    value = abs(value)
    degrees = int(value)
    minutes = int((value - degrees) * 60)
    seconds = round(((value - degrees) * 60 - minutes) * 60 * 100)
    return (degrees, 1), (minutes, 1), (seconds, 100)


def write_jpeg(
    path,
    *,
    size=(64, 48),
    taken: datetime | None = None,
    rating: int | None = None,
    gps: tuple[float, float] | None = None,
    color=(200, 120, 40),
):
    exif_dict = {"0th": {}, "Exif": {}, "GPS": {}, "1st": {}, "thumbnail": None}
    if taken is not None:
        stamp = taken.strftime("%Y:%m:%d %H:%M:%S")
        exif_dict["Exif"][piexif.ExifIFD.DateTimeOriginal] = stamp
        exif_dict["0th"][piexif.ImageIFD.DateTime] = stamp
    if rating is not None:
        exif_dict["0th"][piexif.ImageIFD.Rating] = rating
    if gps is not None:
        lat, lon = gps
        exif_dict["GPS"] = {
            piexif.GPSIFD.GPSLatitudeRef: "N" if lat >= 0 else "S",
            piexif.GPSIFD.GPSLatitude: _dms(lat),
            piexif.GPSIFD.GPSLongitudeRef: "E" if lon >= 0 else "W",
            piexif.GPSIFD.GPSLongitude: _dms(lon),
        }
    os.makedirs(os.path.dirname(str(path)), exist_ok=True)
    Image.new("RGB", size, color).save(str(path), "JPEG", quality=90, exif=piexif.dump(exif_dict))
    return str(path)


@pytest.fixture
def make_jpeg():
    return write_jpeg
