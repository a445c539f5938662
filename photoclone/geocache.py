"""
Module: geocache
Purpose: GPX parsing and time-bucketed nearest-waypoint lookup.
"""

import math
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Union

from dateutil import parser as dtparser

from .exceptions import GeoCacheSealedError, IngestionError
from .models.waypoint import Waypoint
from .utils import log_info, log_warning

DEFAULT_MATCH_WITHIN = 300
_POINT_TAGS = {"trkpt", "rtept", "wpt"}

TimeLike = Union[datetime, int, float]


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(element: ET.Element, name: str) -> Optional[str]:
    for child in element:
        if _local_name(child.tag) == name and child.text:
            return child.text.strip()
    return None


def _parse_time(text: str) -> Optional[datetime]:
    try:
        parsed = dtparser.isoparse(text)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        # GPX times are UTC by definition
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _valid_position(latitude: float, longitude: float) -> bool:
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        return False
    return -90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0


def parse_gpx(data: Union[bytes, str]) -> List[Waypoint]:
    """
    Extract timestamped points from a GPX 1.0 or 1.1 document.

    Points without a usable time or with bad coordinates are dropped.

    Raises:
        IngestionError: If the document is not well-formed XML.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise IngestionError(f"Track log is not valid GPX: {exc}") from exc

    waypoints: List[Waypoint] = []
    for element in root.iter():
        if _local_name(element.tag) not in _POINT_TAGS:
            continue
        time_text = _child_text(element, "time")
        if not time_text:
            continue
        when = _parse_time(time_text)
        if when is None:
            continue
        try:
            latitude = float(element.attrib["lat"])
            longitude = float(element.attrib["lon"])
        except (KeyError, ValueError):
            continue
        if not _valid_position(latitude, longitude):
            continue
        elevation = 0.0
        ele_text = _child_text(element, "ele")
        if ele_text:
            try:
                elevation = float(ele_text)
            except ValueError:
                elevation = 0.0
        waypoints.append(Waypoint(latitude, longitude, when, elevation))
    return waypoints


def to_epoch(t: TimeLike) -> int:
    """
    Seconds since the epoch. Naive datetimes are read as local time.
    """
    if isinstance(t, datetime):
        return int(t.timestamp())
    return int(t)


class GeoCache:
    """
    Waypoints grouped into buckets of `match_within` seconds.

    Filled by `ingest`, then sealed before lookups start. The same width is
    used as the tolerance for `nearest_within`.
    """

    def __init__(self, match_within: int = DEFAULT_MATCH_WITHIN):
        if match_within <= 0:
            raise ValueError("match_within must be a positive number of seconds")
        self.match_within = int(match_within)
        self._buckets: Dict[int, List[Waypoint]] = {}
        self._sealed = False
        self._count = 0

    def __len__(self) -> int:
        return self._count

    @property
    def sealed(self) -> bool:
        return self._sealed

    def bucket_key(self, t: TimeLike) -> int:
        epoch = to_epoch(t)
        return epoch - epoch % self.match_within

    def add(self, waypoints: Iterable[Waypoint]) -> int:
        if self._sealed:
            raise GeoCacheSealedError("GeoCache is sealed; no further ingestion allowed")
        added = 0
        for waypoint in waypoints:
            self._buckets.setdefault(self.bucket_key(waypoint.epoch), []).append(waypoint)
            added += 1
        self._count += added
        return added

    def ingest(self, log: Union[bytes, str]) -> int:
        """
        Parse one GPX document and add its timestamped points.

        Returns:
            Number of waypoints inserted.

        Raises:
            IngestionError: If the document cannot be parsed at all.
            GeoCacheSealedError: If the cache was already sealed.
        """
        if self._sealed:
            raise GeoCacheSealedError("GeoCache is sealed; no further ingestion allowed")
        return self.add(parse_gpx(log))

    def seal(self) -> None:
        self._sealed = True

    def nearest(self, t: TimeLike) -> Optional[Waypoint]:
        """
        Closest waypoint in time among the previous, current and next buckets.
        Ties keep the first candidate met.
        """
        epoch = to_epoch(t)
        key = epoch - epoch % self.match_within
        best: Optional[Waypoint] = None
        best_delta = 0
        for bucket in (key - self.match_within, key, key + self.match_within):
            for waypoint in self._buckets.get(bucket, ()):
                delta = abs(waypoint.epoch - epoch)
                if best is None or delta < best_delta:
                    best = waypoint
                    best_delta = delta
        return best

    def nearest_within(self, t: TimeLike) -> Optional[Waypoint]:
        waypoint = self.nearest(t)
        if waypoint is None:
            return None
        if abs(waypoint.epoch - to_epoch(t)) > self.match_within:
            return None
        return waypoint


class NullSearch:
    """Geo search used when geotagging is disabled."""

    def search(self, t: TimeLike) -> Optional[Waypoint]:
        return None


class CacheSearch:
    """
    Geo search backed by a GeoCache. The cache is sealed on construction.
    """

    def __init__(self, cache: GeoCache):
        cache.seal()
        self.cache = cache

    def search(self, t: TimeLike) -> Optional[Waypoint]:
        return self.cache.nearest_within(t)


def build_cache(logs: Iterable[Union[bytes, str]], match_within: int = DEFAULT_MATCH_WITHIN) -> GeoCache:
    """
    Ingest every log into a new cache. Unparsable logs are logged and skipped.
    """
    cache = GeoCache(match_within)
    for index, log in enumerate(logs):
        try:
            count = cache.ingest(log)
        except IngestionError as exc:
            log_warning(f"Skipping track log #{index + 1}: {exc}")
            continue
        log_info(f"Ingested {count} waypoint(s) from track log #{index + 1}")
    return cache
