"""JSON export of analysis results for hosts that consume plain JSON."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from screen2design.vision.types import (
    AnalysisResult,
    Color,
    LayoutInfo,
    LayoutStructure,
    RecognizedElement,
)


class _ColorJson(BaseModel):
    r: float
    g: float
    b: float
    a: float | None = None


class _ConstraintsJson(BaseModel):
    horizontal: str
    vertical: str


class _PaddingJson(BaseModel):
    top: float
    right: float
    bottom: float
    left: float


class _LayoutJson(BaseModel):
    constraints: _ConstraintsJson | None = None
    padding: _PaddingJson | None = None
    gap: float | None = None
    alignment: str | None = None
    direction: str | None = None


class _ElementJson(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    x: float
    y: float
    width: float
    height: float
    color: _ColorJson | None = None
    text: str | None = None
    font_size: float | None = Field(default=None, alias="fontSize")
    children: list[_ElementJson] = Field(default_factory=list)
    layout: _LayoutJson | None = None


class _RowJson(BaseModel):
    y: float
    height: float
    elements: list[int]


class _ColumnJson(BaseModel):
    x: float
    width: float
    elements: list[int]


class _GridJson(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    column_count: int = Field(alias="columnCount")
    row_count: int = Field(alias="rowCount")
    column_gap: int = Field(alias="columnGap")
    row_gap: int = Field(alias="rowGap")


class _StructureJson(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rows: list[_RowJson]
    columns: list[_ColumnJson]
    grid_info: _GridJson | None = Field(default=None, alias="gridInfo")


class _ResultJson(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    width: int
    height: int
    elements: list[_ElementJson]
    dominant_colors: list[_ColorJson] | None = Field(default=None, alias="dominantColors")
    layout_structure: _StructureJson | None = Field(default=None, alias="layoutStructure")
    success: bool
    error: str | None = None
    error_kind: str | None = Field(default=None, alias="errorKind")


def _rgba(c: Color) -> _ColorJson:
    return _ColorJson(r=c.r, g=c.g, b=c.b, a=c.a)


def _color(c: Color | None) -> _ColorJson | None:
    return None if c is None else _rgba(c)


def _layout(info: LayoutInfo | None) -> _LayoutJson | None:
    if info is None:
        return None
    return _LayoutJson(
        constraints=(
            _ConstraintsJson(
                horizontal=info.constraints.horizontal,
                vertical=info.constraints.vertical,
            )
            if info.constraints
            else None
        ),
        padding=(
            _PaddingJson(
                top=info.padding.top,
                right=info.padding.right,
                bottom=info.padding.bottom,
                left=info.padding.left,
            )
            if info.padding
            else None
        ),
        gap=info.gap,
        alignment=info.alignment,
        direction=info.direction,
    )


def _element(e: RecognizedElement) -> _ElementJson:
    return _ElementJson(
        type=e.type,
        x=e.x,
        y=e.y,
        width=e.width,
        height=e.height,
        color=_color(e.color),
        text=e.text,
        font_size=e.font_size,
        children=[_element(c) for c in e.children],
        layout=_layout(e.layout),
    )


def _structure(s: LayoutStructure | None) -> _StructureJson | None:
    if s is None:
        return None
    grid = s.grid_info
    return _StructureJson(
        rows=[_RowJson(y=r.y, height=r.height, elements=list(r.elements)) for r in s.rows],
        columns=[_ColumnJson(x=c.x, width=c.width, elements=list(c.elements)) for c in s.columns],
        grid_info=(
            _GridJson(
                column_count=grid.column_count,
                row_count=grid.row_count,
                column_gap=grid.column_gap,
                row_gap=grid.row_gap,
            )
            if grid
            else None
        ),
    )


def result_to_json(result: AnalysisResult, indent: int | None = 2) -> str:
    """Serialize `result` with camelCase keys, omitting unset optional fields."""
    out = _ResultJson(
        width=result.width,
        height=result.height,
        elements=[_element(e) for e in result.elements],
        dominant_colors=(
            [_rgba(c) for c in result.dominant_colors]
            if result.dominant_colors is not None
            else None
        ),
        layout_structure=_structure(result.layout_structure),
        success=result.success,
        error=result.error,
        error_kind=result.error_kind,
    )
    return out.model_dump_json(indent=indent, by_alias=True, exclude_none=True)
