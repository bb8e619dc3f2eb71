# Module: test_normalize
# License: MIT (Listing Studio project)
# Description: Image normalizer tests.
# Dependencies: pytest, Pillow, numpy

"""
tests/test_normalize.py
Assert:
  - Longest side <= max dimension, media type == image/jpeg
  - Small photos are never upscaled
  - Alpha is flattened, EXIF orientation applied
  - Undecodable input passes through unchanged
  - Batch order is preserved
"""

import asyncio
import io
import sys
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from pipeline.dataurl import parse_data_url, to_data_url
from pipeline.normalize import (
    RawImage,
    guess_media_type,
    load_raw_image,
    normalize_image,
    normalize_images,
    normalize_images_async,
    target_size,
)


def _noisy_image_bytes(width: int, height: int, fmt: str = "JPEG", seed: int = 0) -> bytes:
    """Create a photo-like image with noise so it does not compress to nothing."""
    np.random.seed(seed)
    arr = np.full((height, width, 3), (120, 140, 190), dtype=np.uint8)
    noise = np.random.randint(-30, 30, (height, width, 3), dtype=np.int16)
    arr = np.clip(arr.astype(np.int16) + noise, 0, 255).astype(np.uint8)
    buf = io.BytesIO()
    Image.fromarray(arr).save(buf, format=fmt)
    return buf.getvalue()


def _decode(data_url: str) -> Image.Image:
    return Image.open(io.BytesIO(parse_data_url(data_url).decode()))


class TestTargetSize:

    def test_landscape_downscaled(self):
        assert target_size(3200, 2000, 1600) == (1600, 1000)

    def test_portrait_downscaled(self):
        assert target_size(3024, 4032, 1600) == (1200, 1600)

    def test_never_upscales(self):
        assert target_size(800, 600, 1600) == (800, 600)

    def test_exact_bound_unchanged(self):
        assert target_size(1600, 900, 1600) == (1600, 900)


class TestNormalizeImage:

    def test_large_jpeg_bounded(self):
        raw = RawImage(_noisy_image_bytes(3000, 2000), "image/jpeg", "big.jpg")
        url = normalize_image(raw)

        assert url.startswith("data:image/jpeg;base64,")
        img = _decode(url)
        assert img.format == "JPEG"
        assert max(img.size) <= 1600
        assert img.size == (1600, 1067)

    def test_custom_max_dimension(self):
        raw = RawImage(_noisy_image_bytes(1200, 900), "image/jpeg", "mid.jpg")
        img = _decode(normalize_image(raw, max_dimension=600))
        assert img.size == (600, 450)

    def test_small_image_not_upscaled(self):
        raw = RawImage(_noisy_image_bytes(320, 240), "image/jpeg", "small.jpg")
        img = _decode(normalize_image(raw))
        assert img.size == (320, 240)

    def test_png_with_alpha_becomes_white_jpeg(self):
        rgba = Image.new("RGBA", (200, 100), (255, 0, 0, 0))
        buf = io.BytesIO()
        rgba.save(buf, format="PNG")

        url = normalize_image(RawImage(buf.getvalue(), "image/png", "cutout.png"))

        assert url.startswith("data:image/jpeg;base64,")
        img = _decode(url).convert("RGB")
        r, g, b = img.getpixel((100, 50))
        assert min(r, g, b) > 240, "transparent pixels should be flattened onto white"

    def test_webp_converted_to_jpeg(self):
        raw = RawImage(_noisy_image_bytes(400, 300, fmt="WEBP"), "image/webp", "shot.webp")
        url = normalize_image(raw)
        assert parse_data_url(url).media_type == "image/jpeg"

    def test_exif_orientation_applied(self):
        img = Image.new("RGB", (400, 200), (10, 200, 10))
        exif = img.getexif()
        exif[0x0112] = 6  # rotate 90° CW on display
        buf = io.BytesIO()
        img.save(buf, format="JPEG", exif=exif.tobytes())

        out = _decode(normalize_image(RawImage(buf.getvalue(), "image/jpeg", "rotated.jpg")))
        assert out.size == (200, 400)

    def test_undecodable_input_passes_through(self):
        raw = RawImage(b"not an image at all", "image/heic", "broken.heic")
        url = normalize_image(raw)
        assert url == to_data_url(b"not an image at all", "image/heic")

    def test_quality_affects_size(self):
        raw = RawImage(_noisy_image_bytes(800, 600, seed=3), "image/jpeg", "q.jpg")
        low = parse_data_url(normalize_image(raw, quality=30)).estimated_size
        high = parse_data_url(normalize_image(raw, quality=95)).estimated_size
        assert low < high


class TestBatch:

    def test_order_preserved(self):
        raws = [
            RawImage(_noisy_image_bytes(100 + i * 10, 100, seed=i), "image/jpeg", f"{i}.jpg")
            for i in range(5)
        ]
        widths = [_decode(u).size[0] for u in normalize_images(raws)]
        assert widths == [100, 110, 120, 130, 140]

    def test_async_order_preserved(self):
        raws = [
            RawImage(_noisy_image_bytes(100 + i * 10, 100, seed=i), "image/jpeg", f"{i}.jpg")
            for i in range(4)
        ]
        urls = asyncio.run(normalize_images_async(raws, max_dimension=1600, quality=80))
        assert [_decode(u).size[0] for u in urls] == [100, 110, 120, 130]

    def test_failure_does_not_abort_batch(self):
        raws = [
            RawImage(_noisy_image_bytes(100, 100), "image/jpeg", "ok.jpg"),
            RawImage(b"garbage", "image/heic", "bad.heic"),
            RawImage(_noisy_image_bytes(120, 100), "image/jpeg", "ok2.jpg"),
        ]
        urls = normalize_images(raws)
        assert len(urls) == 3
        assert urls[1].startswith("data:image/heic;base64,")
        assert urls[2].startswith("data:image/jpeg;base64,")


class TestLoadRawImage:

    def test_load_from_disk(self, tmp_path):
        path = tmp_path / "photo.png"
        path.write_bytes(_noisy_image_bytes(50, 40, fmt="PNG"))

        raw = load_raw_image(str(path))
        assert raw.filename == "photo.png"
        assert raw.media_type == "image/png"
        assert raw.data == path.read_bytes()

    @pytest.mark.parametrize("name,expected", [
        ("IMG_0001.HEIC", "image/heic"),
        ("a.jpg", "image/jpeg"),
        ("b.webp", "image/webp"),
        ("c.unknownext", "application/octet-stream"),
    ])
    def test_guess_media_type(self, name, expected):
        assert guess_media_type(name) == expected
