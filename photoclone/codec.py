"""
Module: codec
Purpose: Raster decode, resize and encode through Pillow and pillow-heif.
"""

import io
from typing import Optional

from PIL import Image

from .exceptions import CodecError
from .metadata import FORMAT_FAMILIES
from .models.policy import FORMAT_AVIF, FORMAT_HEIC, FORMAT_JPEG
from .utils import enforce_pixel_limit, ensure_heif_registered, log_warning

PRESERVE_QUALITY = 95

# JPEG-style quality -> HEVC encoder quality
HEIC_QUALITY_CURVE = (
    (70, 50.0),
    (85, 60.0),
    (92, 70.0),
    (95, 80.0),
    (100, 100.0),
)

_PIL_FORMATS = {
    FORMAT_JPEG: "JPEG",
    FORMAT_HEIC: "HEIF",
    FORMAT_AVIF: "AVIF",
    "png": "PNG",
    "tiff": "TIFF",
}
_ALPHA_MODES = {"RGBA", "LA", "PA"}


def interpolate_heic_quality(quality: int) -> int:
    """
    Map a JPEG-style quality onto the HEIC encoder scale by linear
    interpolation between the curve points. Values outside the curve are
    clamped to its ends.
    """
    lower = None
    for point, mapped in HEIC_QUALITY_CURVE:
        if point == quality:
            return int(mapped)
        if point > quality:
            if lower is None:
                return int(mapped)
            low_point, low_mapped = lower
            ratio = (quality - low_point) / (point - low_point)
            return int(low_mapped + ratio * (mapped - low_mapped))
        lower = (point, mapped)
    return int(HEIC_QUALITY_CURVE[-1][1])


class RasterCodec:
    """
    Pixel-level operations used by the clone pipeline.

    Creating an instance registers the HEIF opener and applies the pixel
    safety limit, so it should be built once per run.
    """

    def __init__(self):
        if not ensure_heif_registered():
            raise CodecError("HEIF support could not be initialised")
        enforce_pixel_limit()

    def decode(self, blob: bytes) -> Image.Image:
        try:
            image = Image.open(io.BytesIO(blob))
            image.load()
        except Image.DecompressionBombError as exc:
            raise CodecError(f"Image exceeds pixel safety limit: {exc}") from exc
        except (OSError, SyntaxError, ValueError) as exc:
            raise CodecError(f"Unable to decode image: {exc}") from exc
        return image

    def dimensions(self, image: Image.Image) -> tuple[int, int]:
        return image.size

    def current_format(self, image: Image.Image) -> Optional[str]:
        if not image.format:
            return None
        return FORMAT_FAMILIES.get(image.format, image.format.lower())

    def resize(self, image: Image.Image, width: int, height: int) -> Image.Image:
        try:
            return image.resize((width, height), Image.Resampling.LANCZOS)
        except (OSError, ValueError) as exc:
            raise CodecError(f"Resize to {width}x{height} failed: {exc}") from exc

    def encode(self, image: Image.Image, target_format: str, quality: Optional[int]) -> bytes:
        """
        Encode `image` as `target_format`. A quality of None keeps the
        encoder near-lossless. EXIF, XMP and ICC data from the source are
        carried over.

        Raises:
            CodecError: If the format is unsupported or encoding fails.
        """
        pil_format = _PIL_FORMATS.get(target_format)
        if pil_format is None:
            raise CodecError(f"Unsupported target format: {target_format}")
        effective = PRESERVE_QUALITY if quality is None else quality
        if target_format == FORMAT_HEIC:
            effective = interpolate_heic_quality(effective)

        params = {"quality": effective}
        for key in ("exif", "icc_profile", "xmp"):
            value = image.info.get(key)
            if value:
                params[key] = value

        if target_format == FORMAT_JPEG and image.mode != "RGB":
            if image.mode in _ALPHA_MODES or "transparency" in image.info:
                log_warning("Dropping alpha channel while encoding JPEG")
            image = image.convert("RGB")
        elif image.mode not in {"RGB", "RGBA"}:
            image = image.convert("RGBA" if image.mode in _ALPHA_MODES else "RGB")

        buffer = io.BytesIO()
        try:
            image.save(buffer, format=pil_format, **params)
        except (OSError, ValueError, KeyError) as exc:
            raise CodecError(f"Encoding {target_format} failed: {exc}") from exc
        return buffer.getvalue()
