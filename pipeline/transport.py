# Module: transport
# License: MIT (Listing Studio project)
# Description: Shape embedded images into each provider operation's wire format, with admission control.
# Platform: Server
# Dependencies: none

"""
Transport Adapter
=================
Text generation takes images inline as data URLs. Image edit takes named
binary attachments, each with an explicit media type (the provider rejects
untyped uploads).

Admission control for attachments:
    - media type must be image/jpeg, image/png or image/webp
    - decoded size must not exceed 50 MiB
    - payload must be valid base64

Inadmissible entries are dropped and logged. If none remain, the whole call is
refused with a UserInputError that lists why.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from pipeline.dataurl import parse_data_url
from pipeline.errors import UserInputError

logger = logging.getLogger("studio.transport")

ALLOWED_MEDIA_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}
MAX_ATTACHMENT_BYTES = 50 * 1024 * 1024  # 50 MiB
MAX_TEXT_IMAGES = 6


@dataclass(frozen=True)
class Attachment:
    filename: str
    data: bytes
    media_type: str

    def as_file(self) -> Tuple[str, bytes, str]:
        """(filename, content, content_type), the upload tuple the openai SDK accepts."""
        return (self.filename, self.data, self.media_type)


def to_text_inputs(images: Sequence[str], cap: int = MAX_TEXT_IMAGES) -> List[dict]:
    """Inline image parts for a multimodal text request. Data URLs pass as-is."""
    return [{"type": "input_image", "image_url": url} for url in list(images)[:cap]]


def _admit(index: int, value: str) -> Attachment:
    """Validate one data URL and decode it into an attachment."""
    try:
        data_url = parse_data_url(value)
    except ValueError:
        raise UserInputError(f"image {index}: not a base64 data URL")

    ext = ALLOWED_MEDIA_TYPES.get(data_url.media_type)
    if ext is None:
        raise UserInputError(
            f"image {index}: unsupported format {data_url.media_type or 'unknown'} "
            f"(use JPEG, PNG or WebP)"
        )

    if data_url.estimated_size > MAX_ATTACHMENT_BYTES:
        raise UserInputError(
            f"image {index}: larger than {MAX_ATTACHMENT_BYTES // (1024 * 1024)} MiB, "
            f"use a smaller photo"
        )

    try:
        data = data_url.decode()
    except ValueError:
        raise UserInputError(f"image {index}: corrupted image data")

    if len(data) > MAX_ATTACHMENT_BYTES:
        raise UserInputError(
            f"image {index}: larger than {MAX_ATTACHMENT_BYTES // (1024 * 1024)} MiB, "
            f"use a smaller photo"
        )

    return Attachment(
        filename=f"reference_{index}.{ext}",
        data=data,
        media_type=data_url.media_type,
    )


def to_image_attachments(images: Sequence[str]) -> List[Attachment]:
    """
    Decode data URLs into typed attachments for the image-edit operation.

    Order is preserved; attachment names follow the 1-based input position.

    Raises:
        UserInputError: if no image is given or none passes admission.
    """
    if not images:
        raise UserInputError("No reference images supplied. Add at least one photo.")

    attachments: List[Attachment] = []
    rejected: List[str] = []

    for index, value in enumerate(images, start=1):
        try:
            attachments.append(_admit(index, value))
        except UserInputError as e:
            rejected.append(e.message)

    if rejected:
        logger.warning("Dropped %d/%d reference images: %s",
                       len(rejected), len(images), "; ".join(rejected))

    if not attachments:
        raise UserInputError("No valid reference image: " + "; ".join(rejected))

    return attachments
