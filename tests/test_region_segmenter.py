from __future__ import annotations

import base64
import io

import numpy as np
import pytest
from PIL import Image

from screen2design.detectors.region_segmenter import (
    Region,
    RegionSegmenter,
    SegmenterConfig,
    dominant_colors,
    grid_size,
    merge_regions,
    merge_two,
    should_merge,
)
from screen2design.vision.errors import DecodeUnavailableError
from screen2design.vision.image import PixelData, decode_rgba
from screen2design.vision.types import Color


def _png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def _region(x: float, y: float, w: float, h: float, color: Color, count: int = 400) -> Region:
    return Region(x=x, y=y, width=w, height=h, color=color, pixel_count=count)


@pytest.mark.parametrize("size", [(40, 40), (123, 57), (400, 300), (1000, 900)])
def test_uniform_image_yields_single_element(size: tuple[int, int]) -> None:
    img = Image.new("RGB", size, color=(30, 120, 200))
    res = RegionSegmenter().analyze(_png_bytes(img))
    assert res.success
    assert res.error_kind is None
    assert len(res.elements) == 1
    assert res.elements[0].type == "rectangle"
    assert (res.width, res.height) == size


def test_uniform_small_image_covers_whole_frame() -> None:
    img = Image.new("RGB", (123, 57), color=(255, 0, 0))
    res = RegionSegmenter().analyze(_png_bytes(img))
    e = res.elements[0]
    assert (e.x, e.y, e.width, e.height) == (0, 0, 123, 57)
    assert e.color == Color(1.0, 0.0, 0.0)


def test_two_color_halves_yield_two_regions() -> None:
    arr = np.zeros((40, 80, 3), dtype=np.uint8)
    arr[:, :40] = (255, 0, 0)
    arr[:, 40:] = (0, 0, 255)
    res = RegionSegmenter().analyze(_png_bytes(Image.fromarray(arr)))
    boxes = [(e.x, e.y, e.width, e.height) for e in res.elements]
    assert boxes == [(0, 0, 40, 40), (40, 0, 40, 40)]
    assert res.elements[0].color == Color(1.0, 0.0, 0.0)
    assert res.elements[1].color == Color(0.0, 0.0, 1.0)


def test_grid_size_has_floor_of_twenty() -> None:
    assert grid_size(100, 100) == 20
    assert grid_size(1000, 800) == 40
    assert grid_size(1000, 810) == 40


def test_merge_two_is_union_with_weighted_color() -> None:
    a = _region(0, 0, 20, 20, Color(1.0, 0.2, 0.0), count=400)
    b = _region(20, 5, 10, 30, Color(0.9, 0.25, 0.05), count=200)
    assert should_merge(a, b, color_threshold=30)

    m = merge_two(a, b)
    assert (m.x, m.y, m.width, m.height) == (0, 0, 30, 35)
    assert m.pixel_count == 600
    assert m.color.r == pytest.approx((1.0 * 400 + 0.9 * 200) / 600)
    assert m.color.g == pytest.approx((0.2 * 400 + 0.25 * 200) / 600)
    assert m.color.b == pytest.approx((0.0 * 400 + 0.05 * 200) / 600)


def test_should_merge_rejects_distant_or_dissimilar_regions() -> None:
    red = Color(1.0, 0.0, 0.0)
    a = _region(0, 0, 20, 20, red)
    # gap of 10 on x
    assert not should_merge(a, _region(30, 0, 20, 20, red), color_threshold=30)
    # gap within 5 on x
    assert should_merge(a, _region(25, 0, 20, 20, red), color_threshold=30)
    # adjacent on x but no vertical overlap
    assert not should_merge(a, _region(20, 40, 20, 20, red), color_threshold=30)
    # adjacent but color difference 0.5 * 255 > 30 * 3
    assert not should_merge(a, _region(20, 0, 20, 20, Color(0.5, 0.0, 0.0)), color_threshold=30)
    # nested
    assert should_merge(_region(0, 0, 40, 40, red), _region(20, 20, 20, 20, red), 30)


def test_merge_regions_is_single_pass() -> None:
    gray = Color(0.5, 0.5, 0.5)
    a = _region(0, 0, 20, 20, gray)
    c = _region(40, 0, 20, 20, gray)
    b = _region(20, 0, 20, 20, gray)
    # c is examined before a absorbs b, and is not revisited afterwards.
    merged = merge_regions([a, c, b], color_threshold=30)
    assert [(r.x, r.width) for r in merged] == [(0, 40), (40, 20)]


def test_max_regions_stops_scanning() -> None:
    img = Image.new("RGB", (200, 200), color=(10, 10, 10))
    seg = RegionSegmenter(SegmenterConfig(max_regions=3))
    res = seg.analyze(_png_bytes(img))
    e = res.elements[0]
    assert len(res.elements) == 1
    assert (e.x, e.y, e.width, e.height) == (0, 0, 60, 20)


def test_no_region_large_enough_is_analysis_failure() -> None:
    img = Image.new("RGB", (10, 10), color=(0, 0, 0))
    res = RegionSegmenter(SegmenterConfig(min_region_size=200)).analyze(_png_bytes(img))
    assert not res.success
    assert res.error_kind == "analysis_failed"
    assert res.elements == []


def test_dominant_colors_ranked_by_frequency() -> None:
    arr = np.full((40, 40, 3), 255, dtype=np.uint8)
    arr[:10, :] = (0, 0, 0)
    pixels = decode_rgba(_png_bytes(Image.fromarray(arr)))
    palette = dominant_colors(pixels)
    assert palette[0] == Color(1.0, 1.0, 1.0)
    assert palette[1] == Color(0.0, 0.0, 0.0)
    assert len(palette) == 2


def test_dominant_colors_ties_keep_first_seen_order() -> None:
    rgba = np.zeros((1, 8, 4), dtype=np.uint8)
    rgba[0, 0] = (0, 0, 255, 255)
    rgba[0, 4] = (255, 0, 0, 255)
    palette = dominant_colors(PixelData(width=8, height=1, rgba=rgba))
    assert palette == [Color(0.0, 0.0, 1.0), Color(1.0, 0.0, 0.0)]


def test_analyze_reports_palette() -> None:
    img = Image.new("RGB", (64, 64), color=(64, 128, 192))
    res = RegionSegmenter().analyze(_png_bytes(img))
    assert res.dominant_colors == [Color(64 / 255, 128 / 255, 192 / 255)]


def test_undecodable_bytes_are_analysis_failure() -> None:
    res = RegionSegmenter().analyze(b"definitely not an image")
    assert not res.success
    assert res.error_kind == "analysis_failed"
    assert res.error is not None and "Local image processing failed" in res.error


def test_missing_decoder_is_distinguishable() -> None:
    def no_decoder(_: bytes | str) -> PixelData:
        raise DecodeUnavailableError("No decoder available for PNG images")

    res = RegionSegmenter(decoder=no_decoder).analyze(b"whatever")
    assert not res.success
    assert res.error_kind == "decode_unavailable"


def test_decode_rgba_maps_missing_codec(monkeypatch: pytest.MonkeyPatch) -> None:
    import screen2design.vision.image as image_mod

    class _NoCodecImage:
        format = "JPEG"

        def load(self) -> None:
            raise OSError("decoder jpeg not available")

    monkeypatch.setattr(image_mod.Image, "open", lambda _fp: _NoCodecImage())
    with pytest.raises(DecodeUnavailableError, match="JPEG"):
        decode_rgba(b"\xff\xd8\xff")


def test_decode_rgba_accepts_data_url() -> None:
    png = _png_bytes(Image.new("RGBA", (3, 2), color=(1, 2, 3, 4)))
    url = "data:image/png;base64," + base64.b64encode(png).decode("ascii")
    pixels = decode_rgba(url)
    assert (pixels.width, pixels.height) == (3, 2)
    assert pixels.rgba.shape == (2, 3, 4)
    assert tuple(pixels.rgba[0, 0]) == (1, 2, 3, 4)
