"""
Module: metadata
Purpose: Metadata reading (EXIF / XMP) and GPS tag writing.
"""

import io
import os
import re
from datetime import datetime
from typing import Any, Optional, Tuple

import piexif
from PIL import Image

from .exceptions import MetadataError
from .models.inspection import UNRATED, Inspection, MetadataTags
from .models.sourceentry import SourceEntry
from .utils import enforce_pixel_limit, ensure_heif_registered, log_warning

EXIF_IFD_POINTER = 0x8769
GPS_IFD_POINTER = 0x8825
TAG_DATETIME = 0x0132
TAG_RATING = 0x4746
TAG_DATETIME_ORIGINAL = 0x9003
TAG_OFFSET_TIME_ORIGINAL = 0x9011
GPS_LATITUDE_REF = 1
GPS_LATITUDE = 2
GPS_LONGITUDE_REF = 3
GPS_LONGITUDE = 4

EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"
_XMP_RATING_RE = re.compile(rb"xmp:Rating(?:=\"|>)\s*(-?\d+)")
_OFFSET_RE = re.compile(r"^[+-]\d{2}:\d{2}$")

FORMAT_FAMILIES = {
    "JPEG": "jpeg",
    "MPO": "jpeg",
    "HEIF": "heic",
    "AVIF": "avif",
    "PNG": "png",
    "TIFF": "tiff",
}
MIME_TYPES = {
    "jpeg": "image/jpeg",
    "heic": "image/heic",
    "avif": "image/avif",
    "png": "image/png",
    "tiff": "image/tiff",
}


def _rational(value: Any) -> float:
    if isinstance(value, tuple) and len(value) == 2:
        numerator, denominator = value
        return float(numerator) / float(denominator) if denominator else 0.0
    return float(value)


def _convert_gps(value: Any, ref: Any) -> float:
    degrees, minutes, seconds = (_rational(part) for part in value)
    decimal = degrees + minutes / 60 + seconds / 3600
    if isinstance(ref, bytes):
        ref = ref.decode("ascii", "ignore")
    if str(ref).strip().upper() in {"S", "W"}:
        decimal = -decimal
    return decimal


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        value = value.decode("utf-8", "ignore")
    return str(value).strip("\x00 ").strip()


def _xmp_rating(image: Image.Image) -> str:
    raw = image.info.get("xmp") or image.info.get("XML:com.adobe.xmp")
    if not raw:
        return ""
    if isinstance(raw, str):
        raw = raw.encode("utf-8")
    match = _XMP_RATING_RE.search(raw)
    return match.group(1).decode("ascii") if match else ""


def _probe(path: str) -> Tuple[MetadataTags, str, Tuple[int, int]]:
    ensure_heif_registered()
    enforce_pixel_limit()
    normalized = os.path.abspath(path)
    try:
        with Image.open(normalized) as image:
            family = FORMAT_FAMILIES.get(image.format or "", (image.format or "").lower())
            size = image.size
            exif = image.getexif()
            exif_ifd = exif.get_ifd(EXIF_IFD_POINTER)
            gps_ifd = exif.get_ifd(GPS_IFD_POINTER)

            gps_lat = gps_lon = ""
            if gps_ifd.get(GPS_LATITUDE) and gps_ifd.get(GPS_LONGITUDE):
                try:
                    gps_lat = f"{_convert_gps(gps_ifd[GPS_LATITUDE], gps_ifd.get(GPS_LATITUDE_REF, 'N')):.6f}"
                    gps_lon = f"{_convert_gps(gps_ifd[GPS_LONGITUDE], gps_ifd.get(GPS_LONGITUDE_REF, 'E')):.6f}"
                except (TypeError, ValueError, ZeroDivisionError):
                    gps_lat = gps_lon = ""

            rating = _text(exif.get(TAG_RATING)) or _xmp_rating(image)
            tags = MetadataTags(
                mime=image.get_format_mimetype() or MIME_TYPES.get(family, ""),
                gps_lat=gps_lat,
                gps_lon=gps_lon,
                datetime=_text(exif_ifd.get(TAG_DATETIME_ORIGINAL) or exif.get(TAG_DATETIME)),
                offset=_text(exif_ifd.get(TAG_OFFSET_TIME_ORIGINAL)),
                rating=rating,
            )
    except Image.DecompressionBombError as exc:
        log_warning(f"Skipped metadata for '{path}' (decompression bomb detected: {exc}).")
        raise MetadataError(f"Image exceeds pixel safety limit: {path}") from exc
    except (OSError, SyntaxError, ValueError) as exc:
        raise MetadataError(f"Unreadable image metadata for {path}: {exc}") from exc
    return tags, family, size


def read_tags(path: str) -> MetadataTags:
    """
    Read the raw tags used by the pipeline. Absent tags are empty strings.

    Raises:
        MetadataError: If the file cannot be opened as an image.
    """
    tags, _, _ = _probe(path)
    return tags


def parse_taken_at(value: str, offset: str = "") -> Optional[datetime]:
    """
    Parse an EXIF date. Aware when an `+HH:MM` offset is supplied,
    naive local otherwise.
    """
    if not value:
        return None
    try:
        parsed = datetime.strptime(value[:19], EXIF_DATETIME_FORMAT)
    except ValueError:
        return None
    if offset and _OFFSET_RE.match(offset):
        try:
            return datetime.strptime(
                f"{parsed.strftime(EXIF_DATETIME_FORMAT)}{offset.replace(':', '')}",
                EXIF_DATETIME_FORMAT + "%z",
            )
        except ValueError:
            return parsed
    return parsed


def parse_rating(value: str) -> int:
    try:
        return int(value.strip())
    except (AttributeError, ValueError):
        return UNRATED


def inspect(entry: SourceEntry) -> Inspection:
    """
    Build the metadata snapshot used to decide what to do with a file.

    The capture time falls back to the filesystem time of the entry when
    no EXIF date is present; such inspections are marked unreliable.

    Raises:
        MetadataError: If the file cannot be opened as an image.
    """
    tags, family, size = _probe(entry.path)
    taken_at = parse_taken_at(tags.datetime, tags.offset)
    reliable = taken_at is not None
    if taken_at is None:
        taken_at = entry.created_at
    return Inspection(
        path=entry.path,
        mime=tags.mime,
        format=family,
        gps_recorded=bool(tags.gps_lat and tags.gps_lon),
        taken_at=taken_at,
        rating=parse_rating(tags.rating),
        dimensions=size,
        taken_at_reliable=reliable,
    )


DMS_SECONDS_DENOMINATOR = 10000


def _deg_to_dms_rational(value: float):
    # rounding happens once, in 1/10000 s units, so seconds stay below 60
    total = round(abs(value) * 3600 * DMS_SECONDS_DENOMINATOR)
    degrees, remainder = divmod(total, 3600 * DMS_SECONDS_DENOMINATOR)
    minutes, seconds = divmod(remainder, 60 * DMS_SECONDS_DENOMINATOR)
    return (degrees, 1), (minutes, 1), (seconds, DMS_SECONDS_DENOMINATOR)


def add_gps(blob: bytes, lat: float, lon: float, alt: float = 0.0) -> bytes:
    """
    Return a copy of a JPEG blob carrying the given GPS position.

    Other EXIF fields are kept. The input buffer is not modified.

    Raises:
        MetadataError: If the blob is not a JPEG piexif can rewrite.
    """
    gps_ifd = {
        piexif.GPSIFD.GPSVersionID: (2, 3, 0, 0),
        piexif.GPSIFD.GPSLatitudeRef: "N" if lat >= 0 else "S",
        piexif.GPSIFD.GPSLatitude: _deg_to_dms_rational(lat),
        piexif.GPSIFD.GPSLongitudeRef: "E" if lon >= 0 else "W",
        piexif.GPSIFD.GPSLongitude: _deg_to_dms_rational(lon),
        piexif.GPSIFD.GPSAltitudeRef: 0 if alt >= 0 else 1,
        piexif.GPSIFD.GPSAltitude: (int(round(abs(alt) * 100)), 100),
    }
    try:
        exif_dict = piexif.load(blob)
        exif_dict["GPS"] = gps_ifd
        exif_bytes = piexif.dump(exif_dict)
        output = io.BytesIO()
        piexif.insert(exif_bytes, blob, output)
    except Exception as exc:
        raise MetadataError(f"Failed to add GPS info: {exc}") from exc
    return output.getvalue()
