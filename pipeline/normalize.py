# Module: normalize
# License: MIT (Listing Studio project)
# Description: Decode, downscale and re-encode raw photos into canonical JPEG data URLs.
# Platform: Client
# Dependencies: Pillow, pillow-heif

"""
===================================
IMAGE NORMALIZER
File: normalize.py
===================================

Raw phone photos (JPEG, PNG, WebP, HEIC, ...) are reduced to one transport-safe
form before upload:

    decode → EXIF orientation → flatten alpha → downscale (never upscale)
           → JPEG at the given quality → data URL

Normalization never blocks the upload: when a file cannot be decoded, the
original bytes are passed through unchanged with their declared media type.
"""

import asyncio
import io
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Tuple

import pillow_heif
from PIL import Image, ImageOps

from pipeline.dataurl import canonical_media_type, to_data_url

logger = logging.getLogger("studio.normalize")

pillow_heif.register_heif_opener()

CANONICAL_MEDIA_TYPE = "image/jpeg"
DEFAULT_MAX_DIMENSION = 1600
DEFAULT_QUALITY = 90

_EXTRA_MEDIA_TYPES = {
    ".heic": "image/heic",
    ".heif": "image/heif",
    ".webp": "image/webp",
}


@dataclass(frozen=True)
class RawImage:
    data: bytes
    media_type: str
    filename: str = "photo"


def guess_media_type(filename: str) -> str:
    suffix = Path(filename).suffix.lower()
    if suffix in _EXTRA_MEDIA_TYPES:
        return _EXTRA_MEDIA_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(filename)
    return canonical_media_type(guessed or "application/octet-stream")


def load_raw_image(path: str) -> RawImage:
    """Read a photo from disk. The media type is guessed from the extension."""
    p = Path(path)
    return RawImage(data=p.read_bytes(), media_type=guess_media_type(p.name), filename=p.name)


def target_size(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    """
    Compute the output size for a ``width`` × ``height`` source.

    The scale factor is max_dimension / longest side, applied only when it
    is below 1.
    """
    longest = max(width, height)
    if longest <= max_dimension:
        return width, height
    scale = max_dimension / longest
    return max(1, round(width * scale)), max(1, round(height * scale))


def _to_rgb(img: Image.Image) -> Image.Image:
    """Flatten transparency onto white; JPEG has no alpha channel."""
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return img.convert("RGB")


def encode_jpeg(
    data: bytes,
    max_dimension: int = DEFAULT_MAX_DIMENSION,
    quality: int = DEFAULT_QUALITY,
) -> bytes:
    """
    Decode ``data`` and re-encode it as a bounded JPEG.

    Raises:
        OSError / PIL.UnidentifiedImageError: if the image cannot be decoded.
    """
    with Image.open(io.BytesIO(data)) as src:
        src.load()
        img = ImageOps.exif_transpose(src)
        img = _to_rgb(img)

    size = target_size(img.width, img.height, max_dimension)
    if size != img.size:
        img = img.resize(size, Image.LANCZOS)

    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality, optimize=True)
    return buf.getvalue()


def normalize_image(
    raw: RawImage,
    max_dimension: int = DEFAULT_MAX_DIMENSION,
    quality: int = DEFAULT_QUALITY,
) -> str:
    """
    Normalize one raw photo into a JPEG data URL.

    Args:
        raw: Photo bytes with declared media type and filename.
        max_dimension: Upper bound on the longest side, in pixels.
        quality: JPEG quality (1-95).

    Returns:
        data URL string. On decode failure, the original bytes with the
        declared media type.
    """
    try:
        jpeg = encode_jpeg(raw.data, max_dimension=max_dimension, quality=quality)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        logger.warning(
            "Could not normalize %s (%s): %s. Passing original through.",
            raw.filename, raw.media_type, e,
        )
        return to_data_url(raw.data, raw.media_type or "application/octet-stream")

    logger.debug(
        "Normalized %s: %d → %d bytes", raw.filename, len(raw.data), len(jpeg),
    )
    return to_data_url(jpeg, CANONICAL_MEDIA_TYPE)


def normalize_images(
    raws: Sequence[RawImage],
    max_dimension: int = DEFAULT_MAX_DIMENSION,
    quality: int = DEFAULT_QUALITY,
) -> List[str]:
    """Normalize photos in the order given."""
    return [normalize_image(r, max_dimension, quality) for r in raws]


async def normalize_images_async(
    raws: Sequence[RawImage],
    max_dimension: int = DEFAULT_MAX_DIMENSION,
    quality: int = DEFAULT_QUALITY,
) -> List[str]:
    """
    Normalize photos off the event loop, one after the other, preserving order.
    """
    loop = asyncio.get_running_loop()
    out: List[str] = []
    for raw in raws:
        out.append(await loop.run_in_executor(None, normalize_image, raw, max_dimension, quality))
    return out
