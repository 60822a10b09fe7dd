"""
Evidence Records
================

Immutable records for the two upstream evidence sources of a page.

Geometric evidence (layout service):
- RawOcrPage: polygons in inches, top-left origin, exactly as delivered
- OcrPage: the normalized view (points, bottom-left origin) used downstream

Semantic evidence (field-analysis service):
- SemanticField: a labelled field with style, input type and grouping
- UnlabeledFieldHint: a detected field the service could not name
- SemanticPage: all semantic evidence for one page
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from .geometry import Box, POINTS_PER_INCH


class FieldStyle(str, Enum):
    """Visual style of the input area, as reported by the semantic service."""
    UNDERLINE = "underline"
    BOX_WITH_TITLE = "box_with_title"
    DIGIT_BOXES = "digit_boxes"
    TABLE_CELL = "table_cell"
    TITLE_RIGHT = "title_right"
    SELECTION_MARK = "selection_mark"


class InputType(str, Enum):
    """Kind of value the field accepts."""
    TEXT = "text"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    SIGNATURE = "signature"
    DROPDOWN = "dropdown"
    DATE = "date"
    NUMBER = "number"


class RelativePosition(str, Enum):
    """Where an unlabeled field sits relative to its nearby text."""
    LEFT = "left"
    RIGHT = "right"
    ABOVE = "above"
    BELOW = "below"


class Direction(str, Enum):
    LTR = "ltr"
    RTL = "rtl"


# ============================================================================
# Raw geometric evidence (normalizer input)
# ============================================================================

@dataclass(frozen=True)
class RawTextElement:
    """A line or word with its layout polygon."""
    content: str
    polygon: Tuple[float, ...]
    confidence: float = 1.0


@dataclass(frozen=True)
class RawSelectionMark:
    state: str
    polygon: Tuple[float, ...]
    confidence: float = 1.0


@dataclass(frozen=True)
class RawTableCell:
    row_index: int
    column_index: int
    content: str
    polygon: Tuple[float, ...]


@dataclass(frozen=True)
class RawTable:
    row_count: int
    column_count: int
    cells: Tuple[RawTableCell, ...] = ()


@dataclass(frozen=True)
class RawKeyValuePair:
    key: str
    key_polygon: Tuple[float, ...]
    value_polygon: Tuple[float, ...]
    confidence: float = 1.0


@dataclass(frozen=True)
class RawOcrPage:
    """
    One page of layout-service output.

    Page width and height are in inches, like the polygons.
    """
    page_number: int
    width: float
    height: float
    lines: Tuple[RawTextElement, ...] = ()
    words: Tuple[RawTextElement, ...] = ()
    selection_marks: Tuple[RawSelectionMark, ...] = ()
    tables: Tuple[RawTable, ...] = ()
    key_value_pairs: Tuple[RawKeyValuePair, ...] = ()

    @property
    def width_points(self) -> float:
        return self.width * POINTS_PER_INCH

    @property
    def height_points(self) -> float:
        return self.height * POINTS_PER_INCH


# ============================================================================
# Normalized geometric evidence
# ============================================================================

@dataclass(frozen=True)
class OcrTextLine:
    content: str
    box: Box


@dataclass(frozen=True)
class OcrWord:
    content: str
    box: Box
    confidence: float = 1.0


@dataclass(frozen=True)
class OcrSelectionMark:
    state: str
    box: Box
    confidence: float = 1.0

    @property
    def is_selected(self) -> bool:
        return self.state.lower() == "selected"


@dataclass(frozen=True)
class OcrTableCell:
    row_index: int
    column_index: int
    content: str
    box: Box


@dataclass(frozen=True)
class OcrTable:
    row_count: int
    column_count: int
    cells: Tuple[OcrTableCell, ...] = ()

    def cell_at(self, row_index: int, column_index: int) -> Optional[OcrTableCell]:
        for cell in self.cells:
            if cell.row_index == row_index and cell.column_index == column_index:
                return cell
        return None


@dataclass(frozen=True)
class OcrKeyValuePair:
    key: str
    key_box: Box
    value_box: Box
    confidence: float = 1.0


@dataclass(frozen=True)
class OcrPage:
    """Normalized geometric evidence for one page (points, bottom-left origin)."""
    page_number: int
    width: float
    height: float
    text_lines: Tuple[OcrTextLine, ...] = ()
    words: Tuple[OcrWord, ...] = ()
    tables: Tuple[OcrTable, ...] = ()
    selection_marks: Tuple[OcrSelectionMark, ...] = ()
    kv_pairs_with_value: Tuple[OcrKeyValuePair, ...] = ()


# ============================================================================
# Semantic evidence
# ============================================================================

@dataclass(frozen=True)
class SemanticField:
    """A field named by the semantic service (no reliable coordinates)."""
    label_text: str
    field_type: FieldStyle
    input_type: InputType
    required: bool = False
    section: Optional[str] = None
    row_group: Optional[str] = None
    related_fields: Tuple[str, ...] = ()
    has_visible_boundary: Optional[bool] = None
    visual_description: Optional[str] = None
    digit_count: Optional[int] = None


@dataclass(frozen=True)
class UnlabeledFieldHint:
    """A detected field without a label, positioned relative to nearby text."""
    field_type: FieldStyle
    input_type: InputType
    visual_description: str
    nearby_text: str
    relative_position: RelativePosition
    section: Optional[str] = None


@dataclass(frozen=True)
class SemanticPage:
    page_number: int
    fields: Tuple[SemanticField, ...] = ()
    unlabeled_fields: Tuple[UnlabeledFieldHint, ...] = field(default_factory=tuple)
    total_field_count: Optional[int] = None
    # Optional page size in points, checked against the layout evidence
    page_width: Optional[float] = None
    page_height: Optional[float] = None
