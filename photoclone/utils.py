"""
Module: utils
Purpose: Shared helper utilities for photoclone.
"""

import os
import shutil
import tempfile

from .exceptions import PhotoCloneError, PlacementError

DEFAULT_PIXEL_LIMIT = 120_000_000  # covers current full-frame and medium-format bodies
MAX_OVERRIDE_LIMIT = 400_000_000   # Hard cap for expert override
PIXEL_LIMIT_ENV = "PHOTOCLONE_MAX_PIXELS"
_PIXEL_LIMIT = DEFAULT_PIXEL_LIMIT

PARTIAL_SUFFIX = ".part"


def _apply_pillow_limit(limit: int) -> None:
    try:
        from PIL import Image
        Image.MAX_IMAGE_PIXELS = limit
    except Exception as exc:
        log_warning(
            f"Unable to update Pillow pixel safety limit to {limit:,} pixels: {exc}"
        )


def _validate_pixel_limit(value: int) -> int:
    if value < DEFAULT_PIXEL_LIMIT or value > MAX_OVERRIDE_LIMIT:
        raise ValueError(
            f"Pixel limit must be between {DEFAULT_PIXEL_LIMIT:,} and {MAX_OVERRIDE_LIMIT:,}."
        )
    return value


def configure_pixel_limit(cli_override: int | None = None) -> tuple[int, str]:
    """
    Determine and apply the effective Pillow pixel limit.
    Preference order: CLI override > environment variable > default.
    Returns tuple of (limit, source).
    """
    global _PIXEL_LIMIT
    source = "default"
    limit = DEFAULT_PIXEL_LIMIT

    if cli_override is not None:
        limit = _validate_pixel_limit(cli_override)
        source = "cli"
    else:
        env_value = os.getenv(PIXEL_LIMIT_ENV)
        if env_value:
            try:
                limit = _validate_pixel_limit(int(env_value))
                source = "env"
            except ValueError:
                log_warning(
                    f"Ignoring invalid {PIXEL_LIMIT_ENV} value '{env_value}'. "
                    f"Expected integer between {DEFAULT_PIXEL_LIMIT} and {MAX_OVERRIDE_LIMIT}."
                )

    _PIXEL_LIMIT = limit
    _apply_pillow_limit(limit)
    return limit, source


def current_pixel_limit() -> int:
    return _PIXEL_LIMIT


def enforce_pixel_limit() -> None:
    from PIL import Image

    limit = current_pixel_limit()
    if Image.MAX_IMAGE_PIXELS != limit:
        Image.MAX_IMAGE_PIXELS = limit


def ensure_heif_registered() -> bool:
    """
    Register the pillow-heif opener so Pillow can read and write HEIC.
    Returns False when registration failed.
    """
    from pillow_heif import register_heif_opener

    try:
        register_heif_opener()
    except Exception as exc:
        log_error(f"HEIF registration failed: {exc}")
        return False
    return True


COLOR_RESET = "\033[0m"
COLOR_GREEN = "\033[32m"
COLOR_RED = "\033[31m"
COLOR_YELLOW = "\033[33m"
COLOR_CYAN = "\033[36m"


def color_text(text: str, color: str) -> str:
    """
    Wrap text with ANSI color codes.
    """
    return f"{color}{text}{COLOR_RESET}"


def ensure_directory(path: str):
    """
    Create directory if it does not exist.

    Args:
        path: Directory path to create.

    Raises:
        PhotoCloneError: If the directory cannot be created.
    """
    normalized = os.path.abspath(path)
    try:
        os.makedirs(normalized, exist_ok=True)
    except OSError as exc:
        log_error(f"Failed to create directory: {normalized} ({exc})")
        raise PhotoCloneError(f"Unable to create directory: {normalized}") from exc


def path_violation_message(target: str, root: str, *, label: str) -> str | None:
    """
    Return a descriptive error message when `target` is outside `root`.
    Returns None if the path is safe.
    """
    normalized_root = os.path.abspath(root)
    normalized_target = os.path.abspath(target)
    try:
        relative = os.path.relpath(normalized_target, normalized_root)
    except ValueError:
        return (
            f"{label} '{normalized_target}' lives on a different device than '{normalized_root}'."
        )
    if relative == os.pardir or relative.startswith(os.pardir + os.sep):
        return f"{label} '{normalized_target}' escapes destination '{normalized_root}'."
    return None


def atomic_write_bytes(data: bytes, dst: str) -> None:
    """
    Write `data` to `dst` through a temporary sibling file so that an
    interrupted write never leaves a partial output behind.

    Raises:
        PlacementError: If the write fails.
    """
    normalized_dst = os.path.abspath(dst)
    directory = os.path.dirname(normalized_dst)
    ensure_directory(directory)
    fd, temp_path = tempfile.mkstemp(
        prefix=f".{os.path.basename(normalized_dst)}.", suffix=PARTIAL_SUFFIX, dir=directory
    )
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(temp_path, normalized_dst)
    except BaseException as exc:
        _discard(temp_path)
        if isinstance(exc, Exception):
            log_error(f"Failed to write {normalized_dst}: {exc}")
            raise PlacementError(f"Failed to write {normalized_dst}") from exc
        raise


def safe_copy(src: str, dst: str):
    """
    Copy file safely, preserving timestamps, through a temporary sibling.

    Raises:
        PlacementError: If the copy operation fails.
    """
    normalized_src = os.path.abspath(src)
    normalized_dst = os.path.abspath(dst)
    directory = os.path.dirname(normalized_dst)
    ensure_directory(directory)
    fd, temp_path = tempfile.mkstemp(
        prefix=f".{os.path.basename(normalized_dst)}.", suffix=PARTIAL_SUFFIX, dir=directory
    )
    os.close(fd)
    try:
        shutil.copy2(normalized_src, temp_path)
        os.replace(temp_path, normalized_dst)
        if not os.path.exists(normalized_dst):
            raise FileNotFoundError(f"Copy verification failed for {normalized_dst}")
    except BaseException as exc:
        _discard(temp_path)
        if isinstance(exc, Exception):
            log_error(f"Failed to copy {normalized_src} to {normalized_dst}: {exc}")
            raise PlacementError(f"Failed to copy {normalized_src} to {normalized_dst}") from exc
        raise


def _discard(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        log_warning(f"Unable to remove partial file {path}: {exc}")


def log_error(message: str):
    """
    Log an error message.

    Args:
        message: Error message to log.
    """
    from . import reporting  # Local import to avoid circular dependency rules

    reporting.write_log([f"[ERROR] {message}"])


def log_warning(message: str):
    """
    Log a warning message.

    Args:
        message: Warning message to log.
    """
    from . import reporting  # Local import to avoid circular dependency rules

    reporting.write_log([f"[WARNING] {message}"])


def log_info(message: str):
    """
    Log an informational message.
    """
    from . import reporting  # Local import to avoid circular dependency rules

    reporting.write_log([f"[INFO] {message}"])


# Apply initial pixel limit (default or env) on import.
configure_pixel_limit(None)
