# Module: test_transport
# License: MIT (Listing Studio project)
# Description: Transport adapter and admission control tests.
# Dependencies: pytest, Pillow

"""
tests/test_transport.py
Assert:
  - Attachments carry explicit media types and keep input order
  - Unsupported formats and oversized images are dropped
  - Zero admissible images → UserInputError
  - Text inputs pass data URLs through unchanged, capped at 6
"""

import io
import sys
from pathlib import Path

import pytest
from PIL import Image

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from pipeline import transport
from pipeline.dataurl import to_data_url
from pipeline.errors import UserInputError
from pipeline.transport import Attachment, to_image_attachments, to_text_inputs


def _image_data_url(fmt: str = "JPEG", media_type: str = "image/jpeg", size=(64, 48)) -> str:
    buf = io.BytesIO()
    Image.new("RGB", size, (30, 60, 90)).save(buf, format=fmt)
    return to_data_url(buf.getvalue(), media_type)


class TestTextInputs:

    def test_passthrough(self):
        urls = [_image_data_url(), _image_data_url("PNG", "image/png")]
        parts = to_text_inputs(urls)
        assert parts == [{"type": "input_image", "image_url": u} for u in urls]

    def test_capped_at_six(self):
        urls = [f"data:image/jpeg;base64,AA{i}=" for i in range(9)]
        parts = to_text_inputs(urls)
        assert [p["image_url"] for p in parts] == urls[:6]


class TestImageAttachments:

    def test_typed_attachments_in_order(self):
        urls = [
            _image_data_url("JPEG", "image/jpeg"),
            _image_data_url("PNG", "image/png"),
            _image_data_url("WEBP", "image/webp"),
        ]
        attachments = to_image_attachments(urls)

        assert [a.filename for a in attachments] == [
            "reference_1.jpg", "reference_2.png", "reference_3.webp",
        ]
        assert [a.media_type for a in attachments] == ["image/jpeg", "image/png", "image/webp"]
        assert Image.open(io.BytesIO(attachments[1].data)).format == "PNG"

    def test_as_file_tuple(self):
        attachment = to_image_attachments([_image_data_url()])[0]
        name, data, media_type = attachment.as_file()
        assert name == "reference_1.jpg"
        assert media_type == "image/jpeg"
        assert data == attachment.data

    def test_jpg_alias_accepted(self):
        buf = io.BytesIO()
        Image.new("RGB", (8, 8)).save(buf, format="JPEG")
        url = to_data_url(buf.getvalue(), "image/jpeg").replace("image/jpeg", "image/jpg")
        assert to_image_attachments([url])[0].media_type == "image/jpeg"

    def test_unsupported_format_dropped(self):
        urls = [_image_data_url("GIF", "image/gif"), _image_data_url()]
        attachments = to_image_attachments(urls)
        assert len(attachments) == 1
        # Names follow the input position
        assert attachments[0].filename == "reference_2.jpg"

    def test_oversized_dropped(self, monkeypatch):
        monkeypatch.setattr(transport, "MAX_ATTACHMENT_BYTES", 200)
        small = to_data_url(b"\xff\xd8" + b"\x00" * 50, "image/jpeg")
        big = to_data_url(b"\xff\xd8" + b"\x00" * 500, "image/jpeg")

        attachments = to_image_attachments([big, small])
        assert [a.filename for a in attachments] == ["reference_2.jpg"]

    def test_all_invalid_raises(self):
        urls = [_image_data_url("GIF", "image/gif"), "https://example.com/a.jpg"]
        with pytest.raises(UserInputError) as exc_info:
            to_image_attachments(urls)
        assert exc_info.value.status_code == 400
        assert "image/gif" in exc_info.value.message
        assert "not a base64 data URL" in exc_info.value.message

    def test_oversized_only_raises_actionable_error(self, monkeypatch):
        monkeypatch.setattr(transport, "MAX_ATTACHMENT_BYTES", 2 * 1024 * 1024)
        big = to_data_url(b"\xff\xd8" + b"\x00" * (3 * 1024 * 1024), "image/jpeg")
        with pytest.raises(UserInputError, match="smaller photo") as exc_info:
            to_image_attachments([big])
        assert "larger than 2 MiB" in exc_info.value.message

    def test_corrupted_base64_dropped(self):
        with pytest.raises(UserInputError, match="corrupted"):
            to_image_attachments(["data:image/png;base64,@@@@"])

    def test_empty_list_raises(self):
        with pytest.raises(UserInputError):
            to_image_attachments([])

    def test_attachment_is_immutable(self):
        attachment = Attachment("a.png", b"x", "image/png")
        with pytest.raises(Exception):
            attachment.filename = "b.png"
