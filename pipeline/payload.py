# Module: payload
# License: MIT (Listing Studio project)
# Description: Request bodies for both pipeline stages and the single image-list ingestion boundary.
# Platform: Server + Client
# Dependencies: none

"""
Payload Encoder
===============
Client side, ``build_listing_payload`` / ``build_mannequin_payload`` shape the
JSON bodies. Server side, ``GenerationRequest.from_body`` is the one place that
reads an incoming body; it accepts the image list as ``images`` or ``images[]``,
as a list or as a single string.

Image lists are truncated silently to the cap; order is always preserved.
"""

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Sequence

# Upper bound on images carried by one request body
MAX_IMAGES_PER_REQUEST = 8

IMAGE_KEYS = ("images", "images[]")


def _image_entries(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    elif not isinstance(value, (list, tuple)):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def coerce_image_list(body: Mapping[str, Any]) -> List[str]:
    """
    Read the image list from a request body in one canonical form.

    ``images`` wins over ``images[]`` unless it holds no usable entry. A scalar
    string becomes a one-element list; empty and non-string entries are dropped.
    """
    for key in IMAGE_KEYS:
        images = _image_entries(body.get(key))
        if images:
            return images
    return []


def _coerce_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in ("false", "0", "no", "off", "")
    return bool(value)


def _coerce_text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value).strip()


@dataclass
class GenerationRequest:
    images: List[str] = field(default_factory=list)
    extra: str = ""
    description: str = ""
    gender: str = ""
    use_ai: bool = True

    @classmethod
    def from_body(cls, body: Mapping[str, Any], cap: int = MAX_IMAGES_PER_REQUEST) -> "GenerationRequest":
        if not isinstance(body, Mapping):
            body = {}
        return cls(
            images=coerce_image_list(body)[:cap],
            extra=_coerce_text(body.get("extra")),
            description=_coerce_text(body.get("description")),
            gender=_coerce_text(body.get("gender")),
            use_ai=_coerce_bool(body.get("useAi"), default=True),
        )


def build_listing_payload(
    images: Sequence[str],
    extra: str = "",
    use_ai: bool = True,
    cap: int = MAX_IMAGES_PER_REQUEST,
) -> dict:
    """Body for POST /api/generate-listing."""
    return {
        "useAi": use_ai,
        "images": list(images)[:cap],
        "extra": extra or "",
    }


def build_mannequin_payload(
    images: Sequence[str],
    description: str,
    gender: str,
    cap: int = MAX_IMAGES_PER_REQUEST,
) -> dict:
    """Body for POST /api/generate-mannequin."""
    return {
        "images": list(images)[:cap],
        "description": description,
        "gender": gender,
    }
