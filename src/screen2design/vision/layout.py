"""Layout analysis: rows, columns, grid, alignment and responsive constraints."""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace

from screen2design.vision.geometry import Bounds, bounds_of
from screen2design.vision.types import (
    Constraint,
    GridInfo,
    LayoutColumn,
    LayoutConstraints,
    LayoutInfo,
    LayoutRow,
    LayoutStructure,
    RecognizedElement,
)

# Above this share of the container an element stretches with it.
_STRETCH_RATIO = 0.8
# Edge distances below this share of the container count as pinned.
_EDGE_RATIO = 0.1


@dataclass(frozen=True, slots=True, kw_only=True)
class LayoutAnalyzerConfig:
    """Layout analysis tolerances.

    Attributes:
        alignment_threshold: Max coordinate difference for two edges to align.
            Row and column detection use twice this value.
        min_group_size: Rows/columns with fewer members are dropped.
    """

    alignment_threshold: float = 5
    min_group_size: int = 2


@dataclass(frozen=True)
class Spacing:
    horizontal_gaps: list[float]
    vertical_gaps: list[float]


@dataclass(frozen=True)
class AlignmentGroups:
    """Element index groups sharing an edge or center coordinate."""

    left: list[list[int]]
    right: list[list[int]]
    top: list[list[int]]
    bottom: list[list[int]]
    center_x: list[list[int]]
    center_y: list[list[int]]


def group_by_value(
    bounds: Sequence[Bounds],
    key: Callable[[Bounds], float],
    threshold: float,
) -> list[list[int]]:
    """Single-linkage 1-D clustering of element indices.

    Values are sorted and a new group starts whenever the gap to the previous
    value exceeds `threshold`.
    """
    groups: list[list[int]] = []
    current: list[int] = []
    last = float("-inf")
    for b in sorted(bounds, key=key):
        value = key(b)
        if current and value - last > threshold:
            groups.append(current)
            current = []
        current.append(b.index)
        last = value
    if current:
        groups.append(current)
    return groups


def most_common_rounded(values: Sequence[float]) -> int:
    """Return the modal value after rounding half up; ties go to the first value seen."""
    if not values:
        return 0
    # Counter.most_common keeps insertion order among equal counts.
    return Counter(math.floor(v + 0.5) for v in values).most_common(1)[0][0]


def _positive_gaps(spans: Sequence[tuple[float, float]]) -> list[float]:
    ordered = sorted(spans, key=lambda s: s[0])
    gaps: list[float] = []
    for (start, size), (next_start, _) in zip(ordered, ordered[1:]):
        gap = next_start - (start + size)
        if gap > 0:
            gaps.append(gap)
    return gaps


def infer_axis_constraint(start: float, size: float, container: float) -> Constraint:
    """Infer how an element should follow its container along one axis.

    Args:
        start: Element offset from the container's near edge.
        size: Element extent along the axis.
        container: Container extent along the axis.
    """
    near = start
    far = container - (start + size)
    threshold = container * _EDGE_RATIO
    if size > container * _STRETCH_RATIO:
        return "stretch"
    if abs(near - far) < threshold:
        return "center"
    if near < far and near < threshold:
        return "min"
    if far < near and far < threshold:
        return "max"
    return "scale"


class LayoutAnalyzer:
    """Derives layout structure and constraints from element geometry."""

    def __init__(self, config: LayoutAnalyzerConfig | None = None) -> None:
        self.config = config or LayoutAnalyzerConfig()

    def analyze_structure(
        self,
        elements: Sequence[RecognizedElement],
        container_width: float,
        container_height: float,
    ) -> LayoutStructure:
        """Detect rows, columns and, when present, an implied grid.

        The container size is accepted for symmetry with
        :meth:`generate_all_constraints`; grouping depends only on elements.
        """
        if not elements:
            return LayoutStructure()
        bounds = bounds_of(elements)
        rows = self._detect_rows(bounds)
        columns = self._detect_columns(bounds)
        grid_info = self._detect_grid(rows, columns)
        return LayoutStructure(rows=rows, columns=columns, grid_info=grid_info)

    def generate_constraints(
        self,
        element: RecognizedElement,
        container_width: float,
        container_height: float,
    ) -> LayoutInfo:
        return LayoutInfo(
            constraints=LayoutConstraints(
                horizontal=infer_axis_constraint(element.x, element.width, container_width),
                vertical=infer_axis_constraint(element.y, element.height, container_height),
            )
        )

    def generate_all_constraints(
        self,
        elements: Sequence[RecognizedElement],
        container_width: float,
        container_height: float,
    ) -> list[RecognizedElement]:
        """Return copies of `elements` carrying inferred constraints.

        Layout fields other than ``constraints`` already present on an element
        are kept. Inputs are never modified.
        """
        out: list[RecognizedElement] = []
        for element in elements:
            inferred = self.generate_constraints(element, container_width, container_height)
            base = element.layout or LayoutInfo()
            out.append(replace(element, layout=replace(base, constraints=inferred.constraints)))
        return out

    def analyze_spacing(self, elements: Sequence[RecognizedElement]) -> Spacing:
        """Positive gaps between neighbors sorted by left edge and by top edge."""
        if len(elements) < 2:
            return Spacing(horizontal_gaps=[], vertical_gaps=[])
        bounds = bounds_of(elements)

        def gaps(start: Callable[[Bounds], float], end: Callable[[Bounds], float]) -> list[float]:
            ordered = sorted(bounds, key=start)
            out: list[float] = []
            for a, b in zip(ordered, ordered[1:]):
                gap = start(b) - end(a)
                if gap > 0:
                    out.append(gap)
            return out

        return Spacing(
            horizontal_gaps=gaps(lambda b: b.left, lambda b: b.right),
            vertical_gaps=gaps(lambda b: b.top, lambda b: b.bottom),
        )

    def detect_alignment(self, elements: Sequence[RecognizedElement]) -> AlignmentGroups:
        bounds = bounds_of(elements)
        t = self.config.alignment_threshold
        return AlignmentGroups(
            left=group_by_value(bounds, lambda b: b.left, t),
            right=group_by_value(bounds, lambda b: b.right, t),
            top=group_by_value(bounds, lambda b: b.top, t),
            bottom=group_by_value(bounds, lambda b: b.bottom, t),
            center_x=group_by_value(bounds, lambda b: b.center_x, t),
            center_y=group_by_value(bounds, lambda b: b.center_y, t),
        )

    def _groups(self, bounds: list[Bounds], key: Callable[[Bounds], float]) -> list[list[int]]:
        groups = group_by_value(bounds, key, self.config.alignment_threshold * 2)
        return [g for g in groups if len(g) >= self.config.min_group_size]

    def _detect_rows(self, bounds: list[Bounds]) -> tuple[LayoutRow, ...]:
        rows: list[LayoutRow] = []
        for group in self._groups(bounds, lambda b: b.center_y):
            top = min(bounds[i].top for i in group)
            bottom = max(bounds[i].bottom for i in group)
            rows.append(LayoutRow(y=top, height=bottom - top, elements=tuple(group)))
        return tuple(rows)

    def _detect_columns(self, bounds: list[Bounds]) -> tuple[LayoutColumn, ...]:
        columns: list[LayoutColumn] = []
        for group in self._groups(bounds, lambda b: b.center_x):
            left = min(bounds[i].left for i in group)
            right = max(bounds[i].right for i in group)
            columns.append(LayoutColumn(x=left, width=right - left, elements=tuple(group)))
        return tuple(columns)

    def _detect_grid(
        self,
        rows: tuple[LayoutRow, ...],
        columns: tuple[LayoutColumn, ...],
    ) -> GridInfo | None:
        if len(rows) < 2 and len(columns) < 2:
            return None
        row_gap = most_common_rounded(_positive_gaps([(r.y, r.height) for r in rows]))
        column_gap = most_common_rounded(_positive_gaps([(c.x, c.width) for c in columns]))
        return GridInfo(
            column_count=len(columns),
            row_count=len(rows),
            column_gap=column_gap,
            row_gap=row_gap,
        )
