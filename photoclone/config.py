"""
Module: config
Purpose: Load the TOML configuration and parse the rating policy table.
"""

import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List

import tomli as tomllib
from appdirs import user_config_dir

from .exceptions import ConfigError
from .models.policy import (
    FORMAT_PRESERVE,
    POLICY_BYPASS,
    POLICY_CONVERT,
    Policy,
    Quality,
    Resize,
)
from .policy import normalize_format
from .utils import ensure_directory, log_info

APP_NAME = "photoclone"
CONFIG_FILE_NAME = "config.toml"
CONFIG_ENV = "PHOTOCLONE_CONFIG"
DEFAULT_MATCH_WITHIN = 300
DEFAULT_MAX_FILES = 100
MAX_WORKERS = 32

_PERCENT_RE = re.compile(r"^\s*(\d{1,3})\s*%\s*$")
_MEGAPIXEL_RE = re.compile(r"^\s*(\d+)\s*m\s*$", re.IGNORECASE)
_PRESERVE = "preserve"
_ALLOWED_FORMATS = {"heic", "heif", "jpg", "jpeg", "avif", _PRESERVE}

DEFAULT_CONFIG_TOML = """\
# photoclone configuration

[import]
from = ""
to = ""

[geotag]
# Seconds. Used as bucket width and as the maximum distance in time
# between a photo and the waypoint used to tag it.
match_within = 300
# Folder of .gpx files, named with a leading YYYY-MM-DD date.
gpx_dir = ""
max_files = 100
# Fetch GPX files from Google Drive using $PHOTOCLONE_DRIVE_TOKEN.
drive = false

[clone]
workers = 1

[[policies]]
rate = [4]
[policies.command]
format = "heic"

[[policies]]
rate = [3]
[policies.command]
format = "heic"
resize = "50m"

[[policies]]
rate = [0, 1, 2]
[policies.command]
format = "heic"
resize = "36m"
quality = "92%"
"""


@dataclass
class GeotagSettings:
    match_within: int = DEFAULT_MATCH_WITHIN
    gpx_dir: str = ""
    max_files: int = DEFAULT_MAX_FILES
    drive: bool = False


@dataclass
class Config:
    """
    Effective configuration for one run.
    """

    source: str = ""
    destination: str = ""
    geotag: GeotagSettings = field(default_factory=GeotagSettings)
    workers: int = 1
    policies: Dict[int, Policy] = field(default_factory=dict)
    path: str | None = None


def default_config_path() -> str:
    return os.path.join(user_config_dir(APP_NAME, appauthor=False), CONFIG_FILE_NAME)


def find_config_path(explicit: str | None = None) -> str:
    """
    Resolve the configuration file location.
    Priority: explicit path > $PHOTOCLONE_CONFIG > user config directory.
    """
    if explicit:
        return os.path.abspath(os.path.expanduser(explicit))
    env_value = os.getenv(CONFIG_ENV)
    if env_value:
        return os.path.abspath(os.path.expanduser(env_value))
    return default_config_path()


def parse_resize(value: Any) -> Resize:
    """
    Parse "N%", "Nm" or "preserve" into a Resize directive.

    Raises:
        ConfigError: If the value has none of the accepted shapes.
    """
    if value is None:
        return Resize.preserve()
    text = str(value)
    if text.strip().lower() == _PRESERVE:
        return Resize.preserve()
    match = _PERCENT_RE.match(text)
    if match:
        percentage = int(match.group(1))
        if percentage <= 0 or percentage > 100:
            raise ConfigError(f"Resize percentage must be within 1-100, got '{text}'.")
        return Resize.percentage(percentage)
    match = _MEGAPIXEL_RE.match(text)
    if match:
        megapixels = int(match.group(1))
        if megapixels <= 0:
            raise ConfigError(f"Resize megapixels must be positive, got '{text}'.")
        return Resize.megapixels(megapixels)
    raise ConfigError(f"Invalid resize '{text}'. Expected 'N%', 'Nm' or 'preserve'.")


def parse_quality(value: Any) -> Quality:
    if value is None:
        return Quality()
    text = str(value)
    if text.strip().lower() == _PRESERVE:
        return Quality()
    match = _PERCENT_RE.match(text)
    if not match or int(match.group(1)) > 100:
        raise ConfigError(f"Invalid quality '{text}'. Expected 'N%' (0-100) or 'preserve'.")
    return Quality(int(match.group(1)))


def parse_format(value: Any) -> str:
    if value is None:
        return FORMAT_PRESERVE
    text = str(value).strip().lower()
    if text not in _ALLOWED_FORMATS:
        raise ConfigError(
            f"Invalid format '{value}'. Expected one of: heic, jpg, jpeg, avif, preserve."
        )
    if text == _PRESERVE:
        return FORMAT_PRESERVE
    return normalize_format(text)


def parse_policy(command: Dict[str, Any] | None) -> Policy:
    """
    Build a Policy from a `[policies.command]` table. An empty command is a bypass.
    """
    if not command:
        return Policy(action=POLICY_BYPASS)
    unknown = set(command) - {"format", "resize", "quality"}
    if unknown:
        raise ConfigError(f"Unknown policy command key(s): {', '.join(sorted(unknown))}")
    return Policy(
        action=POLICY_CONVERT,
        resize=parse_resize(command.get("resize")),
        format=parse_format(command.get("format")),
        quality=parse_quality(command.get("quality")),
    )


def parse_policy_table(entries: List[Dict[str, Any]] | None) -> Dict[int, Policy]:
    """
    Expand `[[policies]]` entries into a rating -> Policy table.
    Later entries override earlier ones for the same rating.
    """
    table: Dict[int, Policy] = {}
    if entries is None:
        return table
    if not isinstance(entries, list):
        raise ConfigError("'policies' must be an array of tables.")
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ConfigError(f"policies[{index}] must be a table.")
        rates = entry.get("rate")
        if not isinstance(rates, list) or not rates:
            raise ConfigError(f"policies[{index}].rate must be a non-empty list of integers.")
        command = entry.get("command", {})
        if not isinstance(command, dict):
            raise ConfigError(f"policies[{index}].command must be a table.")
        policy = parse_policy(command)
        for rate in rates:
            if isinstance(rate, bool) or not isinstance(rate, int):
                raise ConfigError(f"policies[{index}].rate contains non-integer '{rate}'.")
            table[rate] = policy
    return table


def _int_setting(section: Dict[str, Any], key: str, default: int, *, minimum: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigError(f"'{key}' must be an integer >= {minimum}, got '{value}'.")
    return value


def config_from_dict(data: Dict[str, Any], path: str | None = None) -> Config:
    """
    Validate a parsed TOML document and convert it into a Config.
    """
    import_section = data.get("import", {}) or {}
    geotag_section = data.get("geotag", {}) or {}
    clone_section = data.get("clone", {}) or {}

    geotag = GeotagSettings(
        match_within=_int_setting(geotag_section, "match_within", DEFAULT_MATCH_WITHIN, minimum=1),
        gpx_dir=os.path.expanduser(str(geotag_section.get("gpx_dir", "") or "")),
        max_files=_int_setting(geotag_section, "max_files", DEFAULT_MAX_FILES, minimum=0),
        drive=bool(geotag_section.get("drive", False)),
    )
    workers = _int_setting(clone_section, "workers", 1, minimum=1)
    if workers > MAX_WORKERS:
        raise ConfigError(f"'workers' must be at most {MAX_WORKERS}.")

    return Config(
        source=os.path.expanduser(str(import_section.get("from", "") or "")),
        destination=os.path.expanduser(str(import_section.get("to", "") or "")),
        geotag=geotag,
        workers=workers,
        policies=parse_policy_table(data.get("policies")),
        path=path,
    )


def load_config(explicit: str | None = None) -> Config:
    """
    Read and validate the configuration file.

    Raises:
        ConfigError: If the file is missing, is not valid TOML, or holds
            malformed values.
    """
    path = find_config_path(explicit)
    if not os.path.isfile(path):
        raise ConfigError(f"Configuration file not found: {path}. Run 'photoclone init' first.")
    try:
        with open(path, "rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Unable to read configuration {path}: {exc}") from exc
    return config_from_dict(data, path=path)


def init_config(explicit: str | None = None, *, force: bool = False) -> str:
    """
    Write the default configuration file and return its path.

    Raises:
        ConfigError: If a configuration already exists and `force` is False.
    """
    path = find_config_path(explicit)
    if os.path.exists(path) and not force:
        raise ConfigError(f"Configuration already exists at {path}. Use --force to overwrite.")
    ensure_directory(os.path.dirname(path))
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(DEFAULT_CONFIG_TOML)
    log_info(f"Wrote default configuration to {path}")
    return path
