"""
Module: tracklogs
Purpose: Fetch GPX track logs and build the geo search used by a run.
"""

import json
import os
import re
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from .exceptions import TransportError
from .geocache import CacheSearch, NullSearch, build_cache
from .models.sourceentry import SourceEntry
from .utils import log_info, log_warning

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
DRIVE_QUERY = "name contains 'gpx'"
DRIVE_TOKEN_ENV = "PHOTOCLONE_DRIVE_TOKEN"
GPX_EXTENSION = ".gpx"
RANGE_PADDING = timedelta(days=1)

_DATE_PREFIX_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")

TimeRange = Tuple[datetime, datetime]


def requested_range(entries: Sequence[SourceEntry]) -> Optional[TimeRange]:
    """
    Span of the candidate files padded by one day on each side.
    """
    if not entries:
        return None
    earliest = min(entry.created_at for entry in entries)
    latest = max(entry.created_at for entry in entries)
    return earliest - RANGE_PADDING, latest + RANGE_PADDING


def name_date(name: str) -> Optional[date]:
    match = _DATE_PREFIX_RE.match(os.path.basename(name))
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def name_in_range(name: str, time_range: Optional[TimeRange]) -> bool:
    """
    Undated names are always kept; dated names must fall inside the range.
    """
    if time_range is None:
        return True
    day = name_date(name)
    if day is None:
        return True
    start, end = time_range
    return start.date() <= day <= end.date()


class TrackLogSource:
    """Anything able to list and download GPX documents."""

    name = "tracklogs"

    def list_and_download(self, time_range: Optional[TimeRange], max_files: int) -> List[bytes]:
        raise NotImplementedError


class DirectoryTrackLogs(TrackLogSource):
    """
    GPX files from a local folder, optionally named `YYYY-MM-DD...gpx`.
    """

    name = "directory"

    def __init__(self, directory: str):
        self.directory = os.path.abspath(os.path.expanduser(directory))

    def list_and_download(self, time_range: Optional[TimeRange], max_files: int) -> List[bytes]:
        if not os.path.isdir(self.directory):
            raise TransportError(f"Track log folder not found: {self.directory}")
        try:
            names = sorted(os.listdir(self.directory))
        except OSError as exc:
            raise TransportError(f"Unable to list {self.directory}: {exc}") from exc

        logs: List[bytes] = []
        for name in names:
            if max_files and len(logs) >= max_files:
                break
            if not name.lower().endswith(GPX_EXTENSION) or not name_in_range(name, time_range):
                continue
            path = os.path.join(self.directory, name)
            if not os.path.isfile(path):
                continue
            try:
                with open(path, "rb") as handle:
                    logs.append(handle.read())
            except OSError as exc:
                log_warning(f"Unable to read track log {path}: {exc}")
        return logs


class TokenProvider:
    """Supplies bearer tokens for the Drive API."""

    def get_token(self) -> str:
        raise NotImplementedError

    def refresh(self) -> str:
        raise NotImplementedError


class EnvTokenProvider(TokenProvider):
    """
    Reads a bearer token from the environment. Refreshing re-reads the
    variable, so an external helper can rotate it between calls.
    """

    def __init__(self, variable: str = DRIVE_TOKEN_ENV):
        self.variable = variable

    def get_token(self) -> str:
        token = os.getenv(self.variable, "").strip()
        if not token:
            raise TransportError(f"No Drive token found in ${self.variable}.")
        return token

    def refresh(self) -> str:
        return self.get_token()


class HttpClient:
    """Small interface so Drive calls stay mockable in tests."""

    def get(self, url: str, params: Mapping[str, str] | None = None, headers: Mapping[str, str] | None = None) -> bytes:
        raise NotImplementedError


class UrlLibHttpClient(HttpClient):
    def __init__(self, *, timeout_seconds: float = 30.0, user_agent: str = "photoclone/1.0") -> None:
        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent

    def get(self, url: str, params: Mapping[str, str] | None = None, headers: Mapping[str, str] | None = None) -> bytes:
        target = url
        if params:
            target = f"{url}?{urlencode(dict(params))}"
        request = Request(target, headers={"User-Agent": self.user_agent, **dict(headers or {})})
        with urlopen(request, timeout=self.timeout_seconds) as response:
            return response.read()


class DriveTrackLogs(TrackLogSource):
    """
    GPX files stored in Google Drive, fetched through the v3 files API.
    """

    name = "drive"

    def __init__(self, tokens: TokenProvider, http: HttpClient | None = None, *, page_size: int = 100):
        self.tokens = tokens
        self._http = http or UrlLibHttpClient()
        self.page_size = page_size

    def _authorized_get(self, url: str, params: Mapping[str, str]) -> bytes:
        token = self.tokens.get_token()
        for attempt in range(2):
            try:
                return self._http.get(url, params, {"Authorization": f"Bearer {token}"})
            except HTTPError as exc:
                if exc.code == 401 and attempt == 0:
                    log_info("Drive token rejected; refreshing once")
                    token = self.tokens.refresh()
                    continue
                raise TransportError(f"Drive request failed: HTTP {exc.code}") from exc
            except (URLError, TimeoutError, OSError) as exc:
                raise TransportError(f"Drive request failed: {exc}") from exc
        raise TransportError("Drive request failed after token refresh")

    def _get_json(self, url: str, params: Mapping[str, str]) -> Dict[str, Any]:
        payload = self._authorized_get(url, params)
        try:
            parsed = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise TransportError("Drive returned invalid JSON.") from exc
        if not isinstance(parsed, dict):
            raise TransportError("Drive returned an unexpected response shape.")
        return parsed

    def list_files(self, time_range: Optional[TimeRange], max_files: int) -> List[Dict[str, Any]]:
        files: List[Dict[str, Any]] = []
        page_token = None
        while True:
            params = {
                "q": DRIVE_QUERY,
                "pageSize": str(self.page_size),
                "fields": "nextPageToken, files(id, name, mimeType)",
            }
            if page_token:
                params["pageToken"] = page_token
            listing = self._get_json(DRIVE_FILES_URL, params)
            for item in listing.get("files", []):
                name = str(item.get("name", ""))
                if item.get("id") and name_in_range(name, time_range):
                    files.append(item)
                    if max_files and len(files) >= max_files:
                        return files
            page_token = listing.get("nextPageToken")
            if not page_token:
                return files

    def download(self, file_id: str) -> bytes:
        return self._authorized_get(f"{DRIVE_FILES_URL}/{quote(file_id, safe='')}", {"alt": "media"})

    def list_and_download(self, time_range: Optional[TimeRange], max_files: int) -> List[bytes]:
        logs = []
        for item in self.list_files(time_range, max_files):
            logs.append(self.download(str(item["id"])))
        return logs


def sources_from_settings(settings) -> List[TrackLogSource]:
    """
    Track-log sources enabled by the `[geotag]` configuration section.
    """
    sources: List[TrackLogSource] = []
    if settings.gpx_dir:
        sources.append(DirectoryTrackLogs(settings.gpx_dir))
    if settings.drive:
        sources.append(DriveTrackLogs(EnvTokenProvider()))
    return sources


def build_geo_search(
    sources: Sequence[TrackLogSource],
    entries: Sequence[SourceEntry],
    *,
    match_within: int,
    max_files: int,
):
    """
    Fetch track logs once and return a sealed CacheSearch, or NullSearch
    when nothing usable was found. Transport failures are warnings.
    """
    if not sources or not entries:
        return NullSearch()
    time_range = requested_range(entries)
    logs: List[bytes] = []
    for source in sources:
        try:
            fetched = source.list_and_download(time_range, max_files)
        except TransportError as exc:
            log_warning(f"Track log source '{source.name}' failed: {exc}")
            continue
        log_info(f"Fetched {len(fetched)} track log(s) from '{source.name}'")
        logs.extend(fetched)
    if not logs:
        return NullSearch()
    cache = build_cache(logs, match_within)
    if not len(cache):
        return NullSearch()
    return CacheSearch(cache)
