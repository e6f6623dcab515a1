"""Local region segmentation: grid sampling, adjacency merge and palette extraction.

The segmenter is coarse. It overlays a square grid on the image,
averages each cell's color, then merges neighboring cells of similar color
into rectangles. It is the default path and the fallback when the remote
vision service is unavailable.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from time import perf_counter

import numpy as np
from PIL import features

from screen2design.vision.errors import RecognitionError
from screen2design.vision.geometry import touches, union_rect
from screen2design.vision.image import ImageInput, PixelData, decode_rgba
from screen2design.vision.types import AnalysisResult, Color, RecognizedElement

LOG = logging.getLogger(__name__)

_MIN_GRID = 20
_ADJACENCY_GAP = 5.0
_PALETTE_SIZE = 5
_PALETTE_LEVEL = 32
_PALETTE_SAMPLES = 100_000


@dataclass(frozen=True, slots=True, kw_only=True)
class SegmenterConfig:
    """Segmentation thresholds.

    Attributes:
        color_threshold: Per-channel tolerance (0-255 scale); two regions merge
            when their summed channel difference is at most three times this.
        min_region_size: Cells with fewer pixels are discarded.
        max_regions: Scanning stops once this many cells have been kept.
    """

    color_threshold: float = 30
    min_region_size: int = 20
    max_regions: int = 50


@dataclass(frozen=True)
class Region:
    """A provisional block of near-uniform color."""

    x: float
    y: float
    width: float
    height: float
    color: Color
    pixel_count: int


def grid_size(width: int, height: int) -> int:
    """Return the grid cell edge length for an image of the given size."""
    return int(max(_MIN_GRID, min(width, height) / 20))


def find_region(rgba: np.ndarray, x0: int, y0: int, size: int) -> Region | None:
    """Average the in-bounds pixels of the cell at ``(x0, y0)``."""
    h, w = rgba.shape[:2]
    x1 = min(x0 + size, w)
    y1 = min(y0 + size, h)
    block = rgba[y0:y1, x0:x1, :3]
    count = int(block.shape[0] * block.shape[1])
    if count == 0:
        return None
    mean = block.reshape(-1, 3).mean(axis=0, dtype=np.float64) / 255.0
    return Region(
        x=x0,
        y=y0,
        width=x1 - x0,
        height=y1 - y0,
        color=Color(float(mean[0]), float(mean[1]), float(mean[2])),
        pixel_count=count,
    )


def color_distance(a: Color, b: Color) -> float:
    """Summed absolute channel difference on the 0-255 scale."""
    return (abs(a.r - b.r) + abs(a.g - b.g) + abs(a.b - b.b)) * 255


def should_merge(a: Region, b: Region, color_threshold: float) -> bool:
    """Return True if `a` and `b` have similar color and touch spatially."""
    if color_distance(a.color, b.color) > color_threshold * 3:
        return False
    return touches(a, b, gap=_ADJACENCY_GAP)


def merge_two(a: Region, b: Region) -> Region:
    """Union of two regions with a pixel-count-weighted average color."""
    x, y, w, h = union_rect(a, b)
    total = a.pixel_count + b.pixel_count
    return Region(
        x=x,
        y=y,
        width=w,
        height=h,
        color=Color(
            (a.color.r * a.pixel_count + b.color.r * b.pixel_count) / total,
            (a.color.g * a.pixel_count + b.color.g * b.pixel_count) / total,
            (a.color.b * a.pixel_count + b.color.b * b.pixel_count) / total,
        ),
        pixel_count=total,
    )


def merge_regions(regions: list[Region], color_threshold: float) -> list[Region]:
    """Single left-to-right merge pass over `regions`.

    Each surviving region absorbs every later, not yet consumed region it
    touches at the time it is examined. The pass is not repeated, so long
    chains of similar regions may stay split.
    """
    if len(regions) <= 1:
        return list(regions)

    merged: list[Region] = []
    used: set[int] = set()
    for i, region in enumerate(regions):
        if i in used:
            continue
        used.add(i)
        current = region
        for j in range(i + 1, len(regions)):
            if j in used:
                continue
            if should_merge(current, regions[j], color_threshold):
                current = merge_two(current, regions[j])
                used.add(j)
        merged.append(current)
    return merged


def dominant_colors(pixels: PixelData, top_k: int = _PALETTE_SIZE) -> list[Color]:
    """Return the `top_k` most frequent colors after 32-level quantization.

    Pixels are sampled with a stride that grows with image size; ties are
    broken by first occurrence.
    """
    flat = pixels.rgba.reshape(-1, 4)
    if flat.shape[0] == 0:
        return []
    step = max(4, (pixels.width * pixels.height) // _PALETTE_SAMPLES)
    sampled = flat[::step, :3].astype(np.float64)
    quantized = np.floor(sampled / _PALETTE_LEVEL + 0.5) * _PALETTE_LEVEL
    keys, first_idx, counts = np.unique(
        quantized, axis=0, return_index=True, return_counts=True
    )
    order = sorted(range(len(keys)), key=lambda i: (-int(counts[i]), int(first_idx[i])))
    return [
        Color(*(min(1.0, float(c) / 255) for c in keys[i]))
        for i in order[:top_k]
    ]


def regions_to_elements(regions: list[Region]) -> list[RecognizedElement]:
    return [
        RecognizedElement(
            type="rectangle",
            x=r.x,
            y=r.y,
            width=r.width,
            height=r.height,
            color=r.color,
        )
        for r in regions
    ]


class RegionSegmenter:
    """Grid-based color segmentation running entirely in-process."""

    def __init__(
        self,
        config: SegmenterConfig | None = None,
        *,
        decoder: Callable[[ImageInput], PixelData] = decode_rgba,
    ) -> None:
        """Initialize the segmenter.

        Args:
            config: Segmentation thresholds; defaults apply when omitted.
            decoder: Turns encoded image data into RGBA pixels.
        """
        self.config = config or SegmenterConfig()
        self.decoder = decoder

    def is_available(self) -> bool:
        """Return True if the runtime can decode common (PNG) images."""
        return bool(features.check("zlib"))

    def detect_regions(self, pixels: PixelData) -> list[Region]:
        """Sample the grid, then merge similar adjacent cells."""
        size = grid_size(pixels.width, pixels.height)
        cells: list[Region] = []
        for y in range(0, pixels.height, size):
            for x in range(0, pixels.width, size):
                region = find_region(pixels.rgba, x, y, size)
                if region is None or region.pixel_count < self.config.min_region_size:
                    continue
                cells.append(region)
                if len(cells) >= self.config.max_regions:
                    LOG.info("Region cap reached: max_regions=%s", self.config.max_regions)
                    return merge_regions(cells, self.config.color_threshold)
        return merge_regions(cells, self.config.color_threshold)

    def analyze_pixels(self, pixels: PixelData) -> AnalysisResult:
        """Segment already decoded pixels."""
        t0 = perf_counter()
        palette = dominant_colors(pixels)
        regions = self.detect_regions(pixels)
        LOG.info(
            "Local segmentation: size=%sx%s regions=%s took=%.3fs",
            pixels.width,
            pixels.height,
            len(regions),
            perf_counter() - t0,
        )
        if not regions:
            return AnalysisResult.failure(
                "analysis_failed",
                f"No regions of at least {self.config.min_region_size} pixels "
                f"in a {pixels.width}x{pixels.height} image",
            )
        return AnalysisResult(
            width=pixels.width,
            height=pixels.height,
            elements=regions_to_elements(regions),
            dominant_colors=palette,
        )

    def analyze(self, image: ImageInput) -> AnalysisResult:
        """Decode `image` and segment it; decoding problems become failed results."""
        try:
            pixels = self.decoder(image)
        except RecognitionError as e:
            LOG.warning("Local image decoding failed (%s): %s", e.kind, e)
            return AnalysisResult.failure(e.kind, f"Local image processing failed: {e}")
        return self.analyze_pixels(pixels)
