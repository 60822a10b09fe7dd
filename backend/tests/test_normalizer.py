import math

import pytest

from app.services.hybrid_field_pipeline import (
    CoordinateNormalizer,
    DiagnosticKind,
    PageExtractionError,
    RawOcrPage,
    RawTextElement,
    Severity,
)

from builders import PAGE_HEIGHT, kv_pair, mark, poly, raw_page, text


def zero_width_polygon(x, y, height):
    """A polygon collapsed to a vertical segment (inches, top-left)."""
    left = x / 72
    top = (PAGE_HEIGHT - y - height) / 72
    bottom = (PAGE_HEIGHT - y) / 72
    return (left, top, left, top, left, bottom, left, bottom)


def test_normalizes_lines_words_and_marks(sample_ocr_page):
    page, diagnostics = CoordinateNormalizer().normalize_page(sample_ocr_page)

    assert diagnostics == []
    assert page.width == pytest.approx(595.0)
    assert page.height == pytest.approx(842.0)
    assert len(page.text_lines) == 4
    assert len(page.words) == 9
    assert len(page.selection_marks) == 1

    agent_line = page.text_lines[1]
    assert agent_line.box.x == pytest.approx(300.0)
    assert agent_line.box.y == pytest.approx(700.0)
    assert agent_line.box.width == pytest.approx(210.0)
    assert agent_line.box.height == pytest.approx(20.0)

    checkbox = page.selection_marks[0]
    assert checkbox.box.x == pytest.approx(395.0)
    assert checkbox.box.y == pytest.approx(400.0)


def test_degenerate_word_falls_back_to_enclosing_line():
    raw = raw_page(
        lines=[text("אישור תקנון", 420, 400, 100, 15)],
        words=[
            text("אישור", 470, 400, 50, 15),
            RawTextElement(content="תקנון", polygon=zero_width_polygon(440, 400, 15)),
        ]
    )

    page, diagnostics = CoordinateNormalizer().normalize_page(raw)

    assert len(page.words) == 2
    assert all(w.box.width > 0 and w.box.height > 0 for w in page.words)
    fallback = page.words[1]
    assert fallback.box == page.text_lines[0].box

    assert len(diagnostics) == 1
    assert diagnostics[0].kind == DiagnosticKind.DEGENERATE_GEOMETRY
    assert diagnostics[0].severity == Severity.WARNING
    assert "enclosing line" in diagnostics[0].message


def test_degenerate_word_without_enclosing_line_is_dropped():
    raw = raw_page(
        lines=[text("אישור תקנון", 420, 400, 100, 15)],
        words=[RawTextElement(content="חתימה", polygon=zero_width_polygon(100, 200, 15))]
    )

    page, diagnostics = CoordinateNormalizer().normalize_page(raw)

    assert page.words == ()
    assert [d.kind for d in diagnostics] == [DiagnosticKind.DEGENERATE_GEOMETRY]
    assert "dropped" in diagnostics[0].message


def test_non_finite_word_located_by_content():
    nan_polygon = (math.nan,) * 8
    raw = raw_page(
        lines=[text("שם הסוכן:", 400, 700, 100, 20)],
        words=[RawTextElement(content="הסוכן:", polygon=nan_polygon)]
    )

    page, diagnostics = CoordinateNormalizer().normalize_page(raw)

    assert len(page.words) == 1
    assert page.words[0].box == page.text_lines[0].box
    assert len(diagnostics) == 1


@pytest.mark.parametrize("corner", [None, "n/a"])
def test_unreadable_corner_is_recovered_from_remaining_corners(corner):
    polygon = list(poly(445, 700, 30, 20))
    polygon[0] = corner
    raw = raw_page(
        lines=[text("שם הסוכן:", 400, 700, 100, 20)],
        words=[RawTextElement(content="הסוכן:", polygon=tuple(polygon))]
    )

    page, diagnostics = CoordinateNormalizer().normalize_page(raw)

    assert len(page.words) == 1
    assert page.words[0].box == page.text_lines[0].box
    assert [d.kind for d in diagnostics] == [DiagnosticKind.DEGENERATE_GEOMETRY]
    assert "enclosing line" in diagnostics[0].message


def test_degenerate_line_is_dropped():
    raw = raw_page(
        lines=[
            RawTextElement(content="קו שבור", polygon=zero_width_polygon(200, 500, 20)),
            text("שם:", 400, 700, 30, 20),
        ]
    )

    page, diagnostics = CoordinateNormalizer().normalize_page(raw)

    assert [line.content for line in page.text_lines] == ["שם:"]
    assert len(diagnostics) == 1


def test_degenerate_mark_inside_line_uses_line_box():
    raw = raw_page(
        lines=[text("כן", 300, 300, 60, 15)],
        marks=[mark(320, 300, 0, 15)]
    )

    page, diagnostics = CoordinateNormalizer().normalize_page(raw)

    assert len(page.selection_marks) == 1
    assert page.selection_marks[0].box.width == pytest.approx(60.0)
    assert diagnostics[0].kind == DiagnosticKind.DEGENERATE_GEOMETRY


def test_key_value_pair_with_degenerate_value_is_dropped():
    raw = raw_page(
        lines=[text("טלפון:", 450, 600, 50, 20)],
        kv_pairs=[kv_pair("טלפון:", (450, 600, 50, 20), (300, 600, 0, 20))]
    )

    page, diagnostics = CoordinateNormalizer().normalize_page(raw)

    assert page.kv_pairs_with_value == ()
    assert len(diagnostics) == 1


def test_key_value_pair_is_normalized():
    raw = raw_page(
        lines=[text("טלפון:", 450, 600, 50, 20)],
        kv_pairs=[kv_pair("טלפון:", (450, 600, 50, 20), (300, 598, 140, 24))]
    )

    page, _ = CoordinateNormalizer().normalize_page(raw)

    pair = page.kv_pairs_with_value[0]
    assert pair.value_box.x == pytest.approx(300.0)
    assert pair.value_box.width == pytest.approx(140.0)


@pytest.mark.parametrize("width, height", [(0.0, 11.69), (8.27, -1.0), (math.nan, 11.69)])
def test_invalid_page_dimensions_raise(width, height):
    raw = RawOcrPage(page_number=3, width=width, height=height)

    with pytest.raises(PageExtractionError) as excinfo:
        CoordinateNormalizer().normalize_page(raw)

    assert excinfo.value.page_number == 3


def test_input_is_not_mutated(sample_ocr_page):
    before = sample_ocr_page.lines[0].polygon

    CoordinateNormalizer().normalize_page(sample_ocr_page)

    assert sample_ocr_page.lines[0].polygon == before
    assert before == poly(420, 780, 90, 24)
