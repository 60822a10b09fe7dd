"""
Box Resolver
============

Computes the input-area box of a matched field from its label anchor and the
page's geometric evidence.

Each field style is one pure function `(field, ResolverContext) -> Resolution | None`,
registered in RESOLVERS and dispatched on `field.field_type`:

- underline: the blank span next to the label, on the reading side
- digit_boxes: the same span cut into N equal segments
- box_with_title: an empty cell or key-value area below/beside the title,
  else a synthesized default box under it
- table_cell: the cell under the matching column header
- selection_mark: the nearest unclaimed checkbox glyph in the row
- title_right: the span beside the label, kept inside the label's row band

None means "no geometry for this style"; the page pipeline then falls back
to the unlabeled-field placer.

Coordinate System:
------------------
All boxes are PDF points, bottom-left origin (see geometry.py).
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

import numpy as np

from .evidence import (
    Direction,
    FieldStyle,
    OcrPage,
    OcrTableCell,
    OcrTextLine,
    SemanticField,
)
from .geometry import Box
from .label_text import text_similarity
from .settings import FusionSettings

logger = logging.getLogger(__name__)

# "9 digits", "8 boxes", "10 ספרות", "6 משבצות"
DIGIT_COUNT_PATTERN = re.compile(
    r'(\d+)\s*(?:digits?|boxes|box|ספרות|תיבות|משבצות)',
    re.IGNORECASE
)
ROW_GROUP_INDEX_PATTERN = re.compile(r'(\d+)\s*$')

# Smallest height (points) of the area left under a title inside its own cell
MIN_TITLE_CELL_HEIGHT = 8.0


class ClaimedMarks:
    """
    Selection marks already assigned on the current page.

    One instance per page; resolvers claim marks through it so no mark is
    ever assigned to two fields.
    """

    def __init__(self):
        self._claimed: Set[int] = set()

    def claim(self, index: int) -> None:
        if index in self._claimed:
            raise ValueError(f"Selection mark {index} is already claimed")
        self._claimed.add(index)

    def __contains__(self, index: int) -> bool:
        return index in self._claimed

    def __len__(self) -> int:
        return len(self._claimed)

    @property
    def indices(self) -> Set[int]:
        return set(self._claimed)


@dataclass(frozen=True)
class ResolverContext:
    """Everything a style resolver may look at."""
    page: OcrPage
    line: OcrTextLine
    anchor: Box                        # label word run (or line) box
    direction: Direction
    settings: FusionSettings
    claimed_marks: ClaimedMarks
    next_boundary: Optional[float] = None   # where the next field's cluster starts


@dataclass(frozen=True)
class Resolution:
    box: Box
    synthesized: bool = False
    segments: Tuple[Box, ...] = ()
    evidence: str = "line_span"        # which evidence produced the box (for logging)


Resolver = Callable[[SemanticField, ResolverContext], Optional[Resolution]]


# ============================================================================
# Shared geometry
# ============================================================================

def _row_end(ctx: ResolverContext) -> float:
    """
    Where the blank area after a line-ending label stops.

    The nearest other OCR line in the same row band on the reading side,
    else the page margin.
    """
    gap = ctx.settings.label_gap
    margin = ctx.page.width * ctx.settings.page_margin_ratio
    same_row = [
        line for line in ctx.page.text_lines
        if line != ctx.line and line.box.same_row(ctx.line.box, tolerance=ctx.line.box.height / 2)
    ]
    if ctx.direction == Direction.RTL:
        blockers = [line.box.right for line in same_row if line.box.right <= ctx.anchor.x]
        return max(blockers) + gap if blockers else margin
    blockers = [line.box.x for line in same_row if line.box.x >= ctx.anchor.right]
    return min(blockers) - gap if blockers else ctx.page.width - margin


def horizontal_span(ctx: ResolverContext) -> Optional[Tuple[float, float]]:
    """
    Blank span next to the label on the reading side.

    From the label edge to the next cluster boundary; without one, to the end
    of the line; when the line ends at the label, to the end of the row.

    Returns:
        (left, right) in points, or None when the span is narrower than
        min_input_width
    """
    settings = ctx.settings
    gap = settings.label_gap
    min_width = settings.min_input_width

    if ctx.direction == Direction.RTL:
        right = ctx.anchor.x - gap
        if ctx.next_boundary is not None:
            left = ctx.next_boundary + gap
        else:
            left = ctx.line.box.x
            if right - left < min_width:
                left = _row_end(ctx)
    else:
        left = ctx.anchor.right + gap
        if ctx.next_boundary is not None:
            right = ctx.next_boundary - gap
        else:
            right = ctx.line.box.right
            if right - left < min_width:
                right = _row_end(ctx)

    if right - left < min_width:
        logger.debug(f"Span next to {ctx.line.content!r} too narrow ({right - left:.1f}pt)")
        return None
    return left, right


def _padded_row_box(ctx: ResolverContext, left: float, right: float) -> Box:
    pad = ctx.settings.vertical_padding
    return Box(left, ctx.line.box.y - pad, right - left, ctx.line.box.height + 2 * pad)


def _contains_selection_mark(box: Box, page: OcrPage) -> bool:
    return any(box.contains_point(m.box.center_x, m.box.center_y) for m in page.selection_marks)


def _matching_value_boxes(field: SemanticField, ctx: ResolverContext) -> Iterator[Box]:
    """Value boxes of key-value pairs whose key is this field's label."""
    for kv in ctx.page.kv_pairs_with_value:
        if text_similarity(kv.key, field.label_text) < ctx.settings.similarity_threshold:
            continue
        if kv.key_box.intersection_area(ctx.anchor) <= 0:
            continue
        yield kv.value_box


def _row_value_box(field: SemanticField, ctx: ResolverContext) -> Optional[Box]:
    """A key-value area in the label's row band on the reading side."""
    candidates = []
    for value in _matching_value_boxes(field, ctx):
        if not value.same_row(ctx.anchor):
            continue
        if ctx.direction == Direction.RTL:
            on_side = value.center_x < ctx.anchor.x
            inside = ctx.next_boundary is None or value.x >= ctx.next_boundary
        else:
            on_side = value.center_x > ctx.anchor.right
            inside = ctx.next_boundary is None or value.right <= ctx.next_boundary
        if on_side and inside:
            candidates.append(value)
    if not candidates:
        return None
    return min(candidates, key=lambda b: b.gap_distance(ctx.anchor))


def digit_count(field: SemanticField, settings: FusionSettings) -> int:
    """Number of digit segments: explicit count, then description, then default."""
    if field.digit_count and field.digit_count > 0:
        return field.digit_count
    if field.visual_description:
        m = DIGIT_COUNT_PATTERN.search(field.visual_description)
        if m and int(m.group(1)) > 0:
            return int(m.group(1))
    return settings.digit_count_for(field.input_type.value)


def split_segments(box: Box, count: int) -> Tuple[Box, ...]:
    """Split a box into `count` equal-width segments, left to right."""
    edges = np.linspace(box.x, box.right, count + 1)
    return tuple(
        Box(float(edges[i]), box.y, float(edges[i + 1] - edges[i]), box.height)
        for i in range(count)
    )


# ============================================================================
# Style resolvers
# ============================================================================

def resolve_underline(field: SemanticField, ctx: ResolverContext) -> Optional[Resolution]:
    value = _row_value_box(field, ctx)
    if value is not None:
        return Resolution(value, evidence="key_value")

    span = horizontal_span(ctx)
    if span is None:
        return None
    return Resolution(_padded_row_box(ctx, *span))


def resolve_digit_boxes(field: SemanticField, ctx: ResolverContext) -> Optional[Resolution]:
    span = horizontal_span(ctx)
    if span is None:
        return None
    box = _padded_row_box(ctx, *span)
    count = digit_count(field, ctx.settings)
    return Resolution(box, segments=split_segments(box, count))


def resolve_title_right(field: SemanticField, ctx: ResolverContext) -> Optional[Resolution]:
    span = horizontal_span(ctx)
    if span is None:
        return None
    left, right = span
    return Resolution(Box(left, ctx.anchor.y, right - left, ctx.anchor.height))


def _title_cell_candidates(ctx: ResolverContext) -> List[Box]:
    """Empty cells below/beside the title, and the free part of the title's own cell."""
    anchor = ctx.anchor
    reach = ctx.settings.default_box_height * 2
    candidates = []
    for table in ctx.page.tables:
        for cell in table.cells:
            box = cell.box
            if box.contains_point(anchor.center_x, anchor.center_y):
                free_height = anchor.y - ctx.settings.label_gap - box.y
                if free_height >= MIN_TITLE_CELL_HEIGHT:
                    candidates.append(Box(box.x, box.y, box.width, free_height))
                continue
            if cell.content.strip():
                continue
            if box.gap_distance(anchor) > reach:
                continue
            below = box.top <= anchor.center_y and min(box.right, anchor.right) > max(box.x, anchor.x)
            beside = box.same_row(anchor)
            if below or beside:
                candidates.append(box)
    return candidates


def resolve_box_with_title(field: SemanticField, ctx: ResolverContext) -> Optional[Resolution]:
    anchor = ctx.anchor
    page = ctx.page

    cells = [b for b in _title_cell_candidates(ctx) if not _contains_selection_mark(b, page)]
    if cells:
        return Resolution(min(cells, key=lambda b: b.gap_distance(anchor)), evidence="table_cell")

    values = [b for b in _matching_value_boxes(field, ctx) if not _contains_selection_mark(b, page)]
    if values:
        return Resolution(min(values, key=lambda b: b.gap_distance(anchor)), evidence="key_value")

    settings = ctx.settings
    width = max(anchor.width * 1.5, settings.box_with_title_min_width)
    height = width / settings.box_with_title_aspect
    top = anchor.y - settings.label_gap
    box = Box(anchor.center_x - width / 2, top - height, width, height)
    return Resolution(box, synthesized=True, evidence="synthesized")


def _header_cell(field: SemanticField, ctx: ResolverContext):
    """The table cell carrying the label: (table, cell) or (None, None)."""
    threshold = ctx.settings.similarity_threshold
    anchor = ctx.anchor
    matches = []
    for table in ctx.page.tables:
        for cell in table.cells:
            if text_similarity(cell.content, field.label_text) >= threshold:
                matches.append((table, cell))
    if not matches:
        return None, None
    return min(matches, key=lambda tc: (
        not tc[1].box.contains_point(anchor.center_x, anchor.center_y),
        tc[1].box.center_distance(anchor)
    ))


def _target_row(field: SemanticField, table, header: OcrTableCell, threshold: float) -> int:
    if field.section:
        for cell in table.cells:
            if cell.column_index == 0 and text_similarity(cell.content, field.section) >= threshold:
                return cell.row_index
    if field.row_group:
        m = ROW_GROUP_INDEX_PATTERN.search(field.row_group)
        if m and table.cell_at(int(m.group(1)), header.column_index) is not None:
            return int(m.group(1))
    return header.row_index + 1


def resolve_table_cell(field: SemanticField, ctx: ResolverContext) -> Optional[Resolution]:
    table, header = _header_cell(field, ctx)
    if header is not None:
        row = _target_row(field, table, header, ctx.settings.similarity_threshold)
        target = table.cell_at(row, header.column_index)
        if target is not None and target is not header:
            return Resolution(target.box, evidence="table_cell")

    anchor = ctx.anchor
    for table in ctx.page.tables:
        for cell in table.cells:
            if cell.box.contains_point(anchor.center_x, anchor.center_y):
                return Resolution(cell.box, evidence="table_cell")
    return None


def resolve_selection_mark(field: SemanticField, ctx: ResolverContext) -> Optional[Resolution]:
    anchor = ctx.anchor
    max_distance = ctx.settings.selection_mark_max_distance

    best: Optional[Tuple[float, int]] = None
    for index, mark in enumerate(ctx.page.selection_marks):
        if index in ctx.claimed_marks:
            continue
        if not mark.box.same_row(anchor):
            continue
        distance = mark.box.gap_distance(anchor)
        if distance > max_distance:
            continue
        if best is None or distance < best[0]:
            best = (distance, index)

    if best is None:
        return None
    ctx.claimed_marks.claim(best[1])
    logger.debug(f"Claimed selection mark {best[1]} for {field.label_text!r} ({best[0]:.1f}pt away)")
    return Resolution(ctx.page.selection_marks[best[1]].box, evidence="selection_mark")


RESOLVERS: Dict[FieldStyle, Resolver] = {
    FieldStyle.UNDERLINE: resolve_underline,
    FieldStyle.DIGIT_BOXES: resolve_digit_boxes,
    FieldStyle.BOX_WITH_TITLE: resolve_box_with_title,
    FieldStyle.TABLE_CELL: resolve_table_cell,
    FieldStyle.SELECTION_MARK: resolve_selection_mark,
    FieldStyle.TITLE_RIGHT: resolve_title_right,
}


def resolve(field: SemanticField, ctx: ResolverContext) -> Optional[Resolution]:
    """Dispatch a field to the resolver for its style."""
    resolution = RESOLVERS[field.field_type](field, ctx)
    if resolution is None:
        logger.debug(f"No {field.field_type.value} geometry for {field.label_text!r}")
    else:
        logger.debug(
            f"{field.label_text!r} -> {resolution.box.rounded()} "
            f"({field.field_type.value}, {resolution.evidence})"
        )
    return resolution
