from __future__ import annotations

import base64
import io

import pytest
from PIL import Image

from screen2design.vision.errors import ImageDecodeError
from screen2design.vision.image import (
    downscale_for_upload,
    get_image_format,
    image_bytes,
    image_size,
    is_valid_image_data,
    to_data_url,
)


def _encoded(size: tuple[int, int], fmt: str = "PNG") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color=(10, 200, 90)).save(buf, format=fmt)
    return buf.getvalue()


def test_data_url_helpers() -> None:
    assert is_valid_image_data("data:image/png;base64,AAAA")
    assert is_valid_image_data("data:image/webp;base64,AAAA")
    assert not is_valid_image_data("data:image/gif;base64,AAAA")
    assert not is_valid_image_data("https://example.test/a.png")
    assert get_image_format("data:image/jpeg;base64,AAAA") == "jpeg"
    assert get_image_format("not a data url") is None


def test_image_bytes_accepts_bytes_data_url_and_bare_base64() -> None:
    raw = _encoded((4, 4))
    b64 = base64.b64encode(raw).decode("ascii")
    assert image_bytes(raw) is raw
    assert image_bytes(f"data:image/png;base64,{b64}") == raw
    assert image_bytes(b64) == raw


def test_image_bytes_rejects_bad_base64() -> None:
    with pytest.raises(ImageDecodeError):
        image_bytes("data:image/png;base64,@@@not-base64@@@")


def test_image_size_and_data_url_format() -> None:
    jpeg = _encoded((30, 20), fmt="JPEG")
    assert image_size(jpeg) == (30, 20)
    assert to_data_url(jpeg).startswith("data:image/jpeg;base64,")


def test_downscale_keeps_aspect_ratio() -> None:
    res = downscale_for_upload(_encoded((400, 100)), max_width=200, max_height=200)
    assert (res.width, res.height) == (200, 50)
    assert res.data.startswith("data:image/jpeg;base64,")
    assert image_size(res.data) == (200, 50)
    assert res.original_size > 0
    assert res.compressed_size > 0


def test_downscale_leaves_small_images_at_size() -> None:
    res = downscale_for_upload(_encoded((64, 48)))
    assert (res.width, res.height) == (64, 48)
