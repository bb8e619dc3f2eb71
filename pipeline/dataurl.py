# Module: dataurl
# License: MIT (Listing Studio project)
# Description: Parse and format data URLs, the only image interchange format on the wire.
# Platform: Server + Client
# Dependencies: base64, re

"""
Data URLs
=========
Format: ``data:<media-type>;base64,<payload>``
"""

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Optional

_DATA_URL_RE = re.compile(
    r"^data:(?P<media_type>[\w.+-]+/[\w.+-]+)?(?P<params>(?:;[^;,]*)*?);base64,(?P<payload>.*)$",
    re.DOTALL,
)

# Aliases seen from capture devices and older browsers
MEDIA_TYPE_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "image/x-png": "image/png",
}


def canonical_media_type(media_type: Optional[str]) -> str:
    """Lower-case a media type and resolve known aliases."""
    value = (media_type or "").strip().lower()
    return MEDIA_TYPE_ALIASES.get(value, value)


@dataclass(frozen=True)
class DataUrl:
    media_type: str
    payload: str

    @property
    def estimated_size(self) -> int:
        """Decoded byte size computed from the base64 length, without decoding."""
        length = len(self.payload)
        padding = self.payload[-2:].count("=") if length else 0
        return max(0, (length * 3) // 4 - padding)

    def decode(self) -> bytes:
        """
        Decode the base64 payload.

        Raises:
            ValueError: if the payload is not valid base64.
        """
        try:
            return base64.b64decode(self.payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"invalid base64 payload: {e}") from e

    def __str__(self) -> str:
        return f"data:{self.media_type};base64,{self.payload}"


def parse_data_url(value: str) -> DataUrl:
    """
    Split a data URL into media type and base64 payload.

    Whitespace inside the payload (line-wrapped base64) is removed.

    Raises:
        ValueError: if ``value`` is not a base64 data URL.
    """
    if not isinstance(value, str):
        raise ValueError("data URL must be a string")

    match = _DATA_URL_RE.match(value.strip())
    if match is None:
        raise ValueError("not a base64 data URL")

    payload = re.sub(r"\s+", "", match.group("payload"))
    return DataUrl(
        media_type=canonical_media_type(match.group("media_type")),
        payload=payload,
    )


def to_data_url(data: bytes, media_type: str) -> str:
    """Encode raw bytes as a data URL."""
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{canonical_media_type(media_type)};base64,{encoded}"
