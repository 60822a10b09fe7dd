"""
Evidence builders for tests.

Geometry is written in engine space (points, bottom-left origin) and turned
into layout polygons with box_to_polygon, so expected boxes can be read
straight off the fixtures.
"""
from app.services.hybrid_field_pipeline import (
    Box,
    FieldStyle,
    InputType,
    RawKeyValuePair,
    RawOcrPage,
    RawSelectionMark,
    RawTable,
    RawTableCell,
    RawTextElement,
    RelativePosition,
    SemanticField,
    SemanticPage,
    UnlabeledFieldHint,
    box_to_polygon,
)
from app.services.hybrid_field_pipeline.evidence import (
    OcrPage,
    OcrSelectionMark,
    OcrTable,
    OcrTableCell,
    OcrTextLine,
    OcrWord,
)

# A4 in points
PAGE_WIDTH = 595.0
PAGE_HEIGHT = 842.0


def poly(x, y, width, height):
    return tuple(box_to_polygon(Box(x, y, width, height), PAGE_HEIGHT))


def text(content, x, y, width, height, confidence=0.99):
    return RawTextElement(content=content, polygon=poly(x, y, width, height), confidence=confidence)


def mark(x, y, width=15, height=15, state="unselected"):
    return RawSelectionMark(state=state, polygon=poly(x, y, width, height), confidence=0.95)


def cell(row, column, content, x, y, width, height):
    return RawTableCell(row_index=row, column_index=column, content=content, polygon=poly(x, y, width, height))


def kv_pair(key, key_box, value_box):
    return RawKeyValuePair(key=key, key_polygon=poly(*key_box), value_polygon=poly(*value_box), confidence=0.9)


def raw_page(lines=(), words=(), marks=(), tables=(), kv_pairs=(), page_number=1):
    return RawOcrPage(
        page_number=page_number,
        width=PAGE_WIDTH / 72,
        height=PAGE_HEIGHT / 72,
        lines=tuple(lines),
        words=tuple(words),
        selection_marks=tuple(marks),
        tables=tuple(tables),
        key_value_pairs=tuple(kv_pairs)
    )


def table(row_count, column_count, cells):
    return RawTable(row_count=row_count, column_count=column_count, cells=tuple(cells))


def semantic_field(label, style, input_type="text", **kwargs):
    return SemanticField(
        label_text=label,
        field_type=FieldStyle(style),
        input_type=InputType(input_type),
        **kwargs
    )


def hint(nearby_text, position, style="underline", input_type="text", description="empty box"):
    return UnlabeledFieldHint(
        field_type=FieldStyle(style),
        input_type=InputType(input_type),
        visual_description=description,
        nearby_text=nearby_text,
        relative_position=RelativePosition(position)
    )


def semantic_page(fields=(), hints=(), page_number=1, **kwargs):
    return SemanticPage(
        page_number=page_number,
        fields=tuple(fields),
        unlabeled_fields=tuple(hints),
        **kwargs
    )


# ----------------------------------------------------------------------
# Normalized evidence, for stage-level tests
# ----------------------------------------------------------------------

def line(content, x, y, width, height=20.0):
    return OcrTextLine(content=content, box=Box(x, y, width, height))


def word(content, x, y, width, height=20.0):
    return OcrWord(content=content, box=Box(x, y, width, height), confidence=0.99)


def ocr_page(lines=(), words=(), marks=(), tables=(), kv_pairs=(), page_number=1):
    return OcrPage(
        page_number=page_number,
        width=PAGE_WIDTH,
        height=PAGE_HEIGHT,
        text_lines=tuple(lines),
        words=tuple(words),
        tables=tuple(tables),
        selection_marks=tuple(marks),
        kv_pairs_with_value=tuple(kv_pairs)
    )


def ocr_mark(x, y, width=15.0, height=15.0, state="unselected"):
    return OcrSelectionMark(state=state, box=Box(x, y, width, height))


def ocr_table(cells):
    """cells: (row, column, content, x, y, width, height) tuples."""
    built = tuple(
        OcrTableCell(row_index=r, column_index=c, content=content, box=Box(x, y, w, h))
        for r, c, content, x, y, w, h in cells
    )
    return OcrTable(
        row_count=max(c.row_index for c in built) + 1,
        column_count=max(c.column_index for c in built) + 1,
        cells=built
    )
