"""Geometry helpers (adjacency, union, edge bounds) for axis-aligned rectangles."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol


class SupportsRect(Protocol):
    """Anything with an ``x, y, width, height`` rectangle."""

    @property
    def x(self) -> float: ...

    @property
    def y(self) -> float: ...

    @property
    def width(self) -> float: ...

    @property
    def height(self) -> float: ...


@dataclass(frozen=True)
class Bounds:
    """Edge and center coordinates of the element at `index`."""

    index: int
    left: float
    top: float
    right: float
    bottom: float
    center_x: float
    center_y: float


def bounds_of(rects: Sequence[SupportsRect]) -> list[Bounds]:
    """Compute :class:`Bounds` for each rectangle, keeping input order."""
    return [
        Bounds(
            index=i,
            left=r.x,
            top=r.y,
            right=r.x + r.width,
            bottom=r.y + r.height,
            center_x=r.x + r.width / 2,
            center_y=r.y + r.height / 2,
        )
        for i, r in enumerate(rects)
    ]


def union_rect(a: SupportsRect, b: SupportsRect) -> tuple[float, float, float, float]:
    """Return ``(x, y, width, height)`` of the smallest rectangle covering both."""
    x = min(a.x, b.x)
    y = min(a.y, b.y)
    right = max(a.x + a.width, b.x + b.width)
    bottom = max(a.y + a.height, b.y + b.height)
    return x, y, right - x, bottom - y


def touches(a: SupportsRect, b: SupportsRect, gap: float = 5.0) -> bool:
    """Return True if the rectangles are within `gap` on one axis and overlap on the other.

    Overlapping or nested rectangles count as touching: the separation on an
    axis is negative once their spans intersect.
    """
    gap_x = max(a.x, b.x) - min(a.x + a.width, b.x + b.width)
    gap_y = max(a.y, b.y) - min(a.y + a.height, b.y + b.height)
    return (gap_x <= gap and gap_y < 0) or (gap_y <= gap and gap_x < 0)
