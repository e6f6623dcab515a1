"""Core design-element data types shared across detectors and pipelines."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final, Literal

if TYPE_CHECKING:
    from screen2design.vision.errors import ErrorKind

ElementType = Literal["rectangle", "circle", "text", "image", "frame", "line"]
Constraint = Literal["min", "center", "max", "stretch", "scale"]
Alignment = Literal["start", "center", "end", "stretch"]
Direction = Literal["horizontal", "vertical"]

ELEMENT_TYPES: Final[set[str]] = {"rectangle", "circle", "text", "image", "frame", "line"}


@dataclass(frozen=True)
class Color:
    """RGB color with channels normalized to [0, 1] and an optional alpha."""

    r: float
    g: float
    b: float
    a: float | None = None

    @classmethod
    def gray(cls) -> Color:
        """Return the mid-gray used when a color cannot be parsed."""
        return cls(0.5, 0.5, 0.5)

    def to_hex(self) -> str:
        """Render as ``#RRGGBB`` (alpha is dropped)."""
        return "#" + "".join(
            f"{round(max(0.0, min(1.0, c)) * 255):02X}" for c in (self.r, self.g, self.b)
        )


@dataclass(frozen=True)
class LayoutConstraints:
    """Per-axis resize behavior of an element inside its container."""

    horizontal: Constraint
    vertical: Constraint


@dataclass(frozen=True)
class Padding:
    """Inner spacing of a container element, supplied by the host."""

    top: float
    right: float
    bottom: float
    left: float


@dataclass(frozen=True)
class LayoutInfo:
    """Layout metadata of an element.

    Attributes:
        constraints: Filled in by the layout analyzer.
        padding, gap, alignment, direction: Auto-layout hints supplied by the
            host for container elements. Recognition never sets them; the
            layout analyzer and the JSON export carry them through unchanged.
    """

    constraints: LayoutConstraints | None = None
    padding: Padding | None = None
    gap: float | None = None
    alignment: Alignment | None = None
    direction: Direction | None = None


@dataclass(frozen=True)
class RecognizedElement:
    """A typed, positioned design primitive.

    Attributes:
        type: Element kind.
        x, y: Top-left corner, relative to the analyzed image origin.
        width, height: Size in pixels; negative values are clamped to 0.
        color: Fill color, if known.
        text: Text content for ``text`` elements.
        font_size: Font size for ``text`` elements.
        children: Nested elements, if any.
        layout: Constraint data, only set by the layout analyzer.
    """

    type: ElementType
    x: float
    y: float
    width: float
    height: float
    color: Color | None = None
    text: str | None = None
    font_size: float | None = None
    children: tuple[RecognizedElement, ...] = ()
    layout: LayoutInfo | None = None

    def __post_init__(self) -> None:
        if self.width < 0:
            object.__setattr__(self, "width", 0.0)
        if self.height < 0:
            object.__setattr__(self, "height", 0.0)

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height


@dataclass(frozen=True)
class LayoutRow:
    """A horizontal band of elements sharing a center line."""

    y: float
    height: float
    elements: tuple[int, ...]


@dataclass(frozen=True)
class LayoutColumn:
    """A vertical band of elements sharing a center line."""

    x: float
    width: float
    elements: tuple[int, ...]


@dataclass(frozen=True)
class GridInfo:
    column_count: int
    row_count: int
    column_gap: int
    row_gap: int


@dataclass(frozen=True)
class LayoutStructure:
    """Rows, columns and the implied grid of an element list."""

    rows: tuple[LayoutRow, ...] = ()
    columns: tuple[LayoutColumn, ...] = ()
    grid_info: GridInfo | None = None


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of analyzing one image.

    Attributes:
        width, height: Analyzed image dimensions (0 on failure).
        elements: Elements in detection order (not z-order).
        dominant_colors: Palette, when the producer computes one.
        layout_structure: Set by the layout post-pass.
        success: Whether the analysis produced a usable result.
        error: Human-readable failure description.
        error_kind: Machine-readable failure category.
    """

    width: int
    height: int
    elements: list[RecognizedElement] = field(default_factory=list)
    dominant_colors: list[Color] | None = None
    layout_structure: LayoutStructure | None = None
    success: bool = True
    error: str | None = None
    error_kind: ErrorKind | None = None

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> AnalysisResult:
        """Build a failed result carrying no elements."""
        return cls(width=0, height=0, elements=[], success=False, error=message, error_kind=kind)
