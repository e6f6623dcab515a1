"""Image decoding, data-URL helpers and upload downscaling."""

from __future__ import annotations

import base64
import binascii
import io
import re
from dataclasses import dataclass
from typing import Final

import numpy as np
from PIL import Image, UnidentifiedImageError

from screen2design.vision.errors import DecodeUnavailableError, ImageDecodeError

ImageInput = bytes | str

_DATA_URL_RE = re.compile(r"^data:image/(\w+);base64,")

VALID_DATA_URL_PREFIXES: Final[tuple[str, ...]] = (
    "data:image/png;base64,",
    "data:image/jpeg;base64,",
    "data:image/jpg;base64,",
    "data:image/webp;base64,",
)


@dataclass(frozen=True)
class PixelData:
    """Decoded image as an ``(height, width, 4)`` uint8 RGBA array."""

    width: int
    height: int
    rgba: np.ndarray


@dataclass(frozen=True)
class CompressionResult:
    data: str
    original_size: int
    compressed_size: int
    width: int
    height: int


def is_valid_image_data(data: str) -> bool:
    """Return True if `data` is a base64 data URL of a supported image type."""
    return data.startswith(VALID_DATA_URL_PREFIXES)


def get_image_format(data: str) -> str | None:
    """Return the subtype of an image data URL (e.g. ``"png"``), if any."""
    m = _DATA_URL_RE.match(data)
    return m.group(1) if m else None


def image_bytes(data: ImageInput) -> bytes:
    """Return raw encoded bytes from bytes, a data URL or bare base64."""
    if isinstance(data, bytes):
        return data
    m = _DATA_URL_RE.match(data)
    payload = data[m.end() :] if m else data
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError("Image data is not valid base64") from e


def open_image(data: ImageInput) -> Image.Image:
    """Open (without decoding pixels) an image from bytes or a data URL."""
    try:
        return Image.open(io.BytesIO(image_bytes(data)))
    except UnidentifiedImageError as e:
        raise ImageDecodeError("Cannot identify image data") from e
    except Image.DecompressionBombError as e:
        raise ImageDecodeError(str(e)) from e


def image_size(data: ImageInput) -> tuple[int, int]:
    """Return ``(width, height)`` read from the image header."""
    return open_image(data).size


def decode_rgba(data: ImageInput) -> PixelData:
    """Decode an image into RGBA pixels.

    Raises:
        DecodeUnavailableError: If Pillow lacks a codec for the image format.
        ImageDecodeError: If the bytes are not a decodable image.
    """
    img = open_image(data)
    try:
        img.load()
    except OSError as e:
        # Pillow reports missing codecs as "decoder <name> not available".
        if "not available" in str(e):
            raise DecodeUnavailableError(f"No decoder available for {img.format} images") from e
        raise ImageDecodeError(f"Failed to decode image: {e}") from e
    rgba = np.asarray(img.convert("RGBA"), dtype=np.uint8)
    h, w = rgba.shape[:2]
    return PixelData(width=int(w), height=int(h), rgba=rgba)


def img_to_b64(img: Image.Image, fmt: str = "PNG", quality: int = 90) -> str:
    """Encode an image as base64 in the given format."""
    buf = io.BytesIO()
    if fmt.upper() == "JPEG":
        img.convert("RGB").save(buf, format="JPEG", quality=quality)
    else:
        img.save(buf, format=fmt)
    return base64.b64encode(buf.getvalue()).decode("ascii")


def to_data_url(data: ImageInput) -> str:
    """Return `data` as an image data URL suitable for a vision request."""
    if isinstance(data, str) and _DATA_URL_RE.match(data):
        return data
    raw = image_bytes(data)
    fmt = (open_image(raw).format or "PNG").lower()
    return f"data:image/{fmt};base64,{base64.b64encode(raw).decode('ascii')}"


def downscale_for_upload(
    data: ImageInput,
    *,
    max_width: int = 1920,
    max_height: int = 1080,
    quality: int = 80,
) -> CompressionResult:
    """Shrink an image to fit `max_width` x `max_height` and re-encode as JPEG."""
    raw = image_bytes(data)
    img = open_image(raw)
    w, h = img.size
    new_w, new_h = w, h
    if w > max_width or h > max_height:
        ratio = min(max_width / w, max_height / h)
        new_w = max(1, round(w * ratio))
        new_h = max(1, round(h * ratio))
        img = img.resize((new_w, new_h), Image.Resampling.LANCZOS)
    b64 = img_to_b64(img, fmt="JPEG", quality=quality)
    return CompressionResult(
        data=f"data:image/jpeg;base64,{b64}",
        original_size=len(raw),
        compressed_size=len(b64) * 3 // 4,
        width=new_w,
        height=new_h,
    )
