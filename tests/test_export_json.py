from __future__ import annotations

import json

from screen2design.vision.export_json import result_to_json
from screen2design.vision.layout import LayoutAnalyzer
from screen2design.vision.types import (
    AnalysisResult,
    Color,
    GridInfo,
    LayoutConstraints,
    LayoutInfo,
    LayoutRow,
    LayoutStructure,
    Padding,
    RecognizedElement,
)


def test_keys_are_camel_case_and_nones_omitted() -> None:
    child = RecognizedElement(type="text", x=4, y=4, width=40, height=12, text="OK", font_size=14)
    frame = RecognizedElement(
        type="frame",
        x=0,
        y=0,
        width=100,
        height=40,
        color=Color(1.0, 1.0, 1.0, 0.5),
        children=(child,),
        layout=LayoutInfo(constraints=LayoutConstraints(horizontal="stretch", vertical="min")),
    )
    result = AnalysisResult(
        width=100,
        height=40,
        elements=[frame],
        layout_structure=LayoutStructure(
            rows=(LayoutRow(y=0, height=40, elements=(0,)),),
            grid_info=GridInfo(column_count=0, row_count=2, column_gap=0, row_gap=8),
        ),
    )

    data = json.loads(result_to_json(result))

    assert set(data) == {"width", "height", "elements", "layoutStructure", "success"}
    out = data["elements"][0]
    assert out["color"] == {"r": 1.0, "g": 1.0, "b": 1.0, "a": 0.5}
    assert out["layout"] == {"constraints": {"horizontal": "stretch", "vertical": "min"}}
    assert out["children"][0]["fontSize"] == 14
    assert "font_size" not in out["children"][0]
    assert data["layoutStructure"]["gridInfo"] == {
        "columnCount": 0,
        "rowCount": 2,
        "columnGap": 0,
        "rowGap": 8,
    }


def test_failure_carries_error_kind() -> None:
    data = json.loads(result_to_json(AnalysisResult.failure("timeout", "too slow"), indent=None))
    assert data == {
        "width": 0,
        "height": 0,
        "elements": [],
        "success": False,
        "error": "too slow",
        "errorKind": "timeout",
    }


def test_palette_and_host_layout_hints_are_exported() -> None:
    container = RecognizedElement(
        type="frame",
        x=0,
        y=0,
        width=200,
        height=100,
        layout=LayoutInfo(
            padding=Padding(top=8, right=12, bottom=8, left=12),
            gap=4,
            alignment="center",
            direction="horizontal",
        ),
    )
    (constrained,) = LayoutAnalyzer().generate_all_constraints([container], 400, 300)
    result = AnalysisResult(
        width=400,
        height=300,
        elements=[constrained],
        dominant_colors=[Color(1.0, 1.0, 1.0), Color(0.0, 0.25, 0.5)],
    )

    data = json.loads(result_to_json(result))

    assert data["dominantColors"] == [
        {"r": 1.0, "g": 1.0, "b": 1.0},
        {"r": 0.0, "g": 0.25, "b": 0.5},
    ]
    assert data["elements"][0]["layout"] == {
        "constraints": {"horizontal": "min", "vertical": "min"},
        "padding": {"top": 8.0, "right": 12.0, "bottom": 8.0, "left": 12.0},
        "gap": 4.0,
        "alignment": "center",
        "direction": "horizontal",
    }
