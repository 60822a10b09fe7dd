from types import SimpleNamespace

import pytest

from app.services.hybrid_field_pipeline import (
    Box,
    FieldStyle,
    RelativePosition,
    UnlabeledFieldPlacer,
)

from builders import hint, line, ocr_page, word

ANCHOR = Box(300, 100, 50, 20)


@pytest.mark.parametrize("position, expected", [
    (RelativePosition.RIGHT, Box(355, 100, 120, 20)),
    (RelativePosition.LEFT, Box(175, 100, 120, 20)),
    (RelativePosition.ABOVE, Box(265, 125, 120, 20)),
    (RelativePosition.BELOW, Box(265, 75, 120, 20)),
])
def test_offset_box_per_direction(settings, position, expected):
    assert UnlabeledFieldPlacer(settings).offset_box(ANCHOR, FieldStyle.UNDERLINE, position) == expected


def test_offset_box_uses_style_size(settings):
    placer = UnlabeledFieldPlacer(settings)

    box = placer.offset_box(ANCHOR, FieldStyle.SELECTION_MARK, RelativePosition.RIGHT)

    assert (box.width, box.height) == (15.0, 15.0)
    assert box.center_y == pytest.approx(ANCHOR.center_y)
    assert placer.default_size(FieldStyle.BOX_WITH_TITLE) == (80.0, 35.0)
    assert placer.default_size(FieldStyle.TITLE_RIGHT) == (120.0, 20.0)


def test_anchors_on_best_resolved_field(settings):
    resolved = [
        SimpleNamespace(label="מס' הסוכן", box=Box(300, 699, 32, 22)),
        SimpleNamespace(label="שם הסוכן", box=Box(398, 699, 44, 22)),
    ]
    page = ocr_page()

    box = UnlabeledFieldPlacer(settings).place(hint("שם הסוכן", "right"), resolved, page)

    assert box == Box(447, 700, 120, 20)


def test_anchors_on_ocr_text_without_resolved_field(settings):
    page = ocr_page(
        lines=[line("הערות נוספות", 400, 300, 100)],
        words=[word("הערות", 450, 300, 50), word("נוספות", 400, 300, 45)]
    )

    box = UnlabeledFieldPlacer(settings).place(hint("הערות", "below", "box_with_title"), [], page)

    assert box.width == 80.0
    assert box.center_x == pytest.approx(475.0)
    assert box.top == pytest.approx(295.0)


def test_weak_resolved_match_is_ignored(settings):
    resolved = [SimpleNamespace(label="טלפון", box=Box(300, 699, 32, 22))]

    assert UnlabeledFieldPlacer(settings).place(hint("פקס", "left"), resolved, ocr_page()) is None
