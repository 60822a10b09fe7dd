"""
Field Assembler
===============

Turns resolved boxes into the editor's field list for one page.

Steps:
------
1. Names: Hebrew dictionary name, else ASCII slug, else field_<n>;
   collisions get _2, _3 in resolution order
2. Row groups: members outside the group's dominant row band are moved onto it
3. Page bounds: boxes clipped to the page, empty ones dropped
4. Confidence: base score by provenance minus 0.1 per penalty, floor 0.1
5. Overlaps: the weaker of two overlapping fields is moved below the
   stronger one, or dropped when they nearly coincide; ties are flagged
6. Order: rows top to bottom, each row in its lines' reading direction,
   sections kept together; tab_index 1..n
7. Validation diagnostics: low confidence

Confidence Scale:
-----------------
    exact label on its own line    1.0
    partitioned line               0.8
    synthesized geometry           0.6
    unlabeled / fallback placement 0.5
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from .diagnostics import Diagnostic, DiagnosticKind, Severity
from .evidence import Direction, FieldStyle, InputType, OcrPage, RelativePosition
from .geometry import Box
from .label_text import clean_label, detect_direction, field_name_for
from .settings import FusionSettings

logger = logging.getLogger(__name__)


class Provenance(str, Enum):
    """How a field's box was obtained."""
    EXACT_LINE = "exact_line"
    PARTITIONED = "partitioned"
    SYNTHESIZED = "synthesized"
    UNLABELED = "unlabeled"
    FALLBACK_PLACEMENT = "fallback_placement"


BASE_CONFIDENCE: Dict[Provenance, float] = {
    Provenance.EXACT_LINE: 1.0,
    Provenance.PARTITIONED: 0.8,
    Provenance.SYNTHESIZED: 0.6,
    Provenance.UNLABELED: 0.5,
    Provenance.FALLBACK_PLACEMENT: 0.5,
}

CONFIDENCE_PENALTY = 0.1
MIN_CONFIDENCE = 0.1

# Input types that keep their own editor type
PASSTHROUGH_TYPES = (InputType.CHECKBOX, InputType.RADIO, InputType.SIGNATURE, InputType.DROPDOWN)


@dataclass
class ResolvedField:
    """A field with its final box, before naming and scoring."""
    label: str
    box: Box
    provenance: Provenance
    page_number: int
    field_type: FieldStyle
    input_type: InputType
    required: bool = False
    section: Optional[str] = None
    row_group: Optional[str] = None
    fuzzy: bool = False
    penalties: int = 0
    segments: Tuple[Box, ...] = ()
    # Reading direction of the label's OCR line; None for unlabeled hints
    direction: Optional[Direction] = None
    # Set for unlabeled hints only: the text the field sits next to
    nearby_text: Optional[str] = None
    relative_position: Optional[RelativePosition] = None


@dataclass
class ExtractedField:
    """One fillable field, as consumed by the form editor."""
    type: str
    name: str
    label: str
    x: float
    y: float
    width: float
    height: float
    page_number: int
    direction: str
    required: bool
    confidence: float
    section_name: Optional[str] = None
    tab_index: int = 0
    source: str = ""
    segments: List[Box] = field(default_factory=list)

    @property
    def box(self) -> Box:
        return Box(self.x, self.y, self.width, self.height)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'type': self.type,
            'name': self.name,
            'label': self.label,
            'x': self.x,
            'y': self.y,
            'width': self.width,
            'height': self.height,
            'page_number': self.page_number,
            'direction': self.direction,
            'required': self.required,
            'confidence': self.confidence,
            'section_name': self.section_name,
            'tab_index': self.tab_index,
            'source': self.source,
            'segments': [s.to_dict() for s in self.segments]
        }


def output_type(field_type: FieldStyle, input_type: InputType) -> str:
    """Editor field type for a semantic style/input type pair."""
    if input_type in PASSTHROUGH_TYPES:
        return input_type.value
    if field_type == FieldStyle.SELECTION_MARK:
        return InputType.CHECKBOX.value
    return InputType.TEXT.value


def score(provenance: Provenance, penalties: int = 0) -> float:
    confidence = BASE_CONFIDENCE[provenance] - CONFIDENCE_PENALTY * penalties
    return round(max(MIN_CONFIDENCE, confidence), 2)


def clip_box(box: Box, width: float, height: float) -> Optional[Box]:
    """Intersection of a box with the page, or None when nothing is left."""
    x0 = max(0.0, box.x)
    y0 = max(0.0, box.y)
    x1 = min(width, box.right)
    y1 = min(height, box.top)
    if x1 - x0 <= 0 or y1 - y0 <= 0:
        return None
    return Box(x0, y0, x1 - x0, y1 - y0)


def dominant_row(ys: Sequence[float], tolerance: float) -> float:
    """
    Bottom of the row band [y, y + tolerance] holding the most values.

    Ties go to the earliest value.
    """
    best_y = ys[0]
    best_count = 0
    for y in ys:
        count = sum(1 for other in ys if y <= other <= y + tolerance)
        if count > best_count:
            best_y, best_count = y, count
    return best_y


class FieldAssembler:
    """Builds the final, ordered field list for a page."""

    def __init__(self, settings: Optional[FusionSettings] = None):
        self.settings = settings or FusionSettings()

    def assemble(
        self,
        resolved: Sequence[ResolvedField],
        page: OcrPage
    ) -> Tuple[List[ExtractedField], List[Diagnostic]]:
        """
        Assemble resolved fields into ExtractedFields.

        Args:
            resolved: Fields in resolution order
            page: Normalized OCR page (bounds and reading direction)

        Returns:
            Tuple of (fields in tab order, diagnostics)
        """
        diagnostics: List[Diagnostic] = []
        names = self._assign_names(resolved)
        aligned = self._align_row_groups(resolved, names, page.page_number, diagnostics)

        fields: List[ExtractedField] = []
        line_directions: Dict[str, Direction] = {}
        for r, name in zip(aligned, names):
            box = clip_box(r.box, page.width, page.height)
            if box is None:
                logger.warning(f"Page {page.page_number}: field {name!r} outside the page {r.box}, dropped")
                diagnostics.append(self._diagnostic(
                    DiagnosticKind.OUT_OF_BOUNDS, Severity.WARNING, page.page_number,
                    f"Field {name!r} lies outside the page and was dropped", r.label, name
                ))
                continue
            if box != r.box:
                diagnostics.append(self._diagnostic(
                    DiagnosticKind.OUT_OF_BOUNDS, Severity.INFO, page.page_number,
                    f"Field {name!r} clipped to the page", r.label, name
                ))
            segments = [s for s in (clip_box(s, page.width, page.height) for s in r.segments) if s is not None]

            fields.append(ExtractedField(
                type=output_type(r.field_type, r.input_type),
                name=name,
                label=clean_label(r.label),
                x=box.x,
                y=box.y,
                width=box.width,
                height=box.height,
                page_number=r.page_number,
                direction=detect_direction(r.nearby_text or r.label).value,
                required=r.required,
                confidence=score(r.provenance, r.penalties + (1 if r.fuzzy else 0)),
                section_name=r.section,
                source=r.provenance.value,
                segments=segments
            ))
            if r.direction is not None:
                line_directions[name] = r.direction

        fields = self.resolve_overlaps(fields, page, diagnostics)

        fields = self.order_fields(fields, self.page_direction(page), line_directions)
        fields, split_sections = self.group_sections(fields)
        for section in split_sections:
            diagnostics.append(self._diagnostic(
                DiagnosticKind.SECTION_REGROUPED, Severity.INFO, page.page_number,
                f"Fields of section {section!r} are not adjacent on the page; kept together in tab order",
                section
            ))
        for index, f in enumerate(fields, start=1):
            f.tab_index = index

        for f in fields:
            if f.confidence < self.settings.low_confidence_threshold:
                diagnostics.append(self._diagnostic(
                    DiagnosticKind.LOW_CONFIDENCE, Severity.INFO, page.page_number,
                    f"Field {f.name!r} has low confidence ({f.confidence:.2f})", f.label, f.name
                ))

        logger.info(
            f"Page {page.page_number}: assembled {len(fields)} fields "
            f"({len(diagnostics)} assembly diagnostics)"
        )
        return fields, diagnostics

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    @staticmethod
    def _base_name(r: ResolvedField, index: int) -> str:
        if r.nearby_text is not None:
            position = r.relative_position.value if r.relative_position else "near"
            return f"{field_name_for(r.nearby_text, index)}_{position}"
        return field_name_for(r.label, index)

    def _assign_names(self, resolved: Sequence[ResolvedField]) -> List[str]:
        names: List[str] = []
        taken = set()
        for index, r in enumerate(resolved):
            base = self._base_name(r, index)
            name = base
            n = 1
            while name in taken:
                n += 1
                name = f"{base}_{n}"
            taken.add(name)
            names.append(name)
        return names

    # ------------------------------------------------------------------
    # Row groups
    # ------------------------------------------------------------------

    def _align_row_groups(
        self,
        resolved: Sequence[ResolvedField],
        names: Sequence[str],
        page_number: int,
        diagnostics: List[Diagnostic]
    ) -> List[ResolvedField]:
        """Move row-group outliers onto the group's dominant row band."""
        tolerance = self.settings.row_group_y_tolerance
        aligned = list(resolved)

        groups: Dict[str, List[int]] = {}
        for index, r in enumerate(resolved):
            if r.row_group:
                groups.setdefault(r.row_group, []).append(index)

        for row_group, members in groups.items():
            if len(members) < 2:
                continue
            row_y = dominant_row([resolved[i].box.y for i in members], tolerance)
            for i in members:
                r = resolved[i]
                if row_y <= r.box.y <= row_y + tolerance:
                    continue
                dy = row_y - r.box.y
                aligned[i] = replace(
                    r,
                    box=r.box.translated(dy=dy),
                    segments=tuple(s.translated(dy=dy) for s in r.segments),
                    penalties=r.penalties + 1
                )
                message = f"Field {names[i]!r} moved {dy:+.1f}pt onto row group {row_group!r}"
                logger.warning(f"Page {page_number}: {message}")
                diagnostics.append(self._diagnostic(
                    DiagnosticKind.ROW_GROUP_REALIGNED, Severity.WARNING, page_number,
                    message, r.label, names[i]
                ))
        return aligned

    # ------------------------------------------------------------------
    # Overlaps
    # ------------------------------------------------------------------

    def resolve_overlaps(
        self,
        fields: Sequence[ExtractedField],
        page: OcrPage,
        diagnostics: List[Diagnostic]
    ) -> List[ExtractedField]:
        """
        Settle overlapping field pairs, earlier fields first.

        The stronger field keeps its box; the weaker one is moved below it, or
        dropped when the two nearly coincide. Pairs that neither confidence nor
        the required flag can order are flagged for manual review.

        Returns:
            Surviving fields, in input order
        """
        removed: Set[int] = set()
        for i, a in enumerate(fields):
            for j in range(i + 1, len(fields)):
                if i in removed:
                    break
                if j in removed:
                    continue
                b = fields[j]
                ratio = a.box.overlap_ratio(b.box)
                if ratio <= self.settings.overlap_threshold:
                    continue

                kept, weaker, may_drop = self._overlap_winner(a, b)
                if kept is None:
                    self._flag_overlap(a, b, ratio, "similar confidence", page.page_number, diagnostics)
                    continue

                if may_drop and ratio > self.settings.overlap_removal_ratio:
                    removed.add(j if weaker is b else i)
                    message = (
                        f"Field {weaker.name!r} ({weaker.confidence:.2f}) dropped, "
                        f"{ratio:.0%} of it covers {kept.name!r} ({kept.confidence:.2f})"
                    )
                    logger.warning(f"Page {page.page_number}: {message}")
                    diagnostics.append(self._diagnostic(
                        DiagnosticKind.OVERLAP_REMOVED, Severity.WARNING, page.page_number,
                        message, weaker.label, weaker.name
                    ))
                    continue

                dy = kept.y - self.settings.overlap_gap - weaker.height - weaker.y
                if weaker.y + dy < 0:
                    self._flag_overlap(a, b, ratio, "no room below", page.page_number, diagnostics)
                    continue

                weaker.y += dy
                weaker.segments = [s.translated(dy=dy) for s in weaker.segments]
                message = f"Field {weaker.name!r} moved {dy:+.1f}pt below {kept.name!r} ({ratio:.0%} overlap)"
                logger.warning(f"Page {page.page_number}: {message}")
                diagnostics.append(self._diagnostic(
                    DiagnosticKind.OVERLAP_ADJUSTED, Severity.WARNING, page.page_number,
                    message, weaker.label, weaker.name
                ))

        return [f for index, f in enumerate(fields) if index not in removed]

    def _overlap_winner(
        self,
        a: ExtractedField,
        b: ExtractedField
    ) -> Tuple[Optional[ExtractedField], Optional[ExtractedField], bool]:
        """(kept, weaker, weaker may be dropped); (None, None, False) for a tie."""
        if round(abs(a.confidence - b.confidence), 2) >= self.settings.overlap_confidence_margin:
            return (a, b, True) if a.confidence > b.confidence else (b, a, True)
        if a.required != b.required:
            return (a, b, False) if a.required else (b, a, False)
        return None, None, False

    def _flag_overlap(
        self,
        a: ExtractedField,
        b: ExtractedField,
        ratio: float,
        reason: str,
        page_number: int,
        diagnostics: List[Diagnostic]
    ) -> None:
        logger.warning(f"Page {page_number}: fields {a.name!r} and {b.name!r} overlap ({ratio:.0%}), {reason}")
        for f, other in ((a, b), (b, a)):
            diagnostics.append(self._diagnostic(
                DiagnosticKind.FIELD_OVERLAP, Severity.WARNING, page_number,
                f"Field {f.name!r} overlaps {other.name!r} ({ratio:.0%}, {reason}); review manually",
                f.label, f.name
            ))

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    @staticmethod
    def page_direction(page: OcrPage) -> Direction:
        return detect_direction(' '.join(line.content for line in page.text_lines))

    def order_fields(
        self,
        fields: Sequence[ExtractedField],
        direction: Direction,
        line_directions: Optional[Dict[str, Direction]] = None
    ) -> List[ExtractedField]:
        """
        Tab order: rows top to bottom, then reading direction within a row.

        A row starts at the topmost remaining field and takes every field whose
        vertical center is within row_order_tolerance of it. The row reads in
        the majority direction of its fields' OCR lines (line_directions, keyed
        by field name); rows without a majority read in `direction`.
        """
        line_directions = line_directions or {}
        tolerance = self.settings.row_order_tolerance
        remaining = sorted(fields, key=lambda f: (f.page_number, -f.box.center_y))
        ordered: List[ExtractedField] = []

        while remaining:
            head = remaining[0]
            row = [
                f for f in remaining
                if f.page_number == head.page_number
                and abs(f.box.center_y - head.box.center_y) <= tolerance
            ]
            if self._row_direction(row, line_directions, direction) == Direction.RTL:
                row.sort(key=lambda f: (-f.box.right, -f.box.x))
            else:
                row.sort(key=lambda f: (f.box.x, f.box.right))
            ordered.extend(row)
            taken = {id(f) for f in row}
            remaining = [f for f in remaining if id(f) not in taken]
        return ordered

    @staticmethod
    def _row_direction(
        row: Sequence[ExtractedField],
        line_directions: Dict[str, Direction],
        default: Direction
    ) -> Direction:
        votes = [line_directions[f.name] for f in row if f.name in line_directions]
        rtl = votes.count(Direction.RTL)
        ltr = len(votes) - rtl
        if rtl == ltr:
            return default
        return Direction.RTL if rtl > ltr else Direction.LTR

    @staticmethod
    def group_sections(fields: Sequence[ExtractedField]) -> Tuple[List[ExtractedField], List[str]]:
        """
        Keep the fields of each section consecutive.

        A section's later fields move up behind its first one; fields without
        a section keep their place.

        Returns:
            Tuple of (reordered fields, sections that other fields had split)
        """
        first_position: Dict[str, int] = {}
        positions: Dict[str, List[int]] = {}
        keys: List[Tuple[int, int]] = []
        for position, f in enumerate(fields):
            if f.section_name:
                first_position.setdefault(f.section_name, position)
                positions.setdefault(f.section_name, []).append(position)
                keys.append((first_position[f.section_name], position))
            else:
                keys.append((position, position))

        order = sorted(range(len(fields)), key=lambda i: keys[i])
        split = [section for section, p in positions.items() if p[-1] - p[0] + 1 != len(p)]
        return [fields[i] for i in order], split

    @staticmethod
    def _diagnostic(
        kind: DiagnosticKind,
        severity: Severity,
        page_number: int,
        message: str,
        label: Optional[str] = None,
        field_name: Optional[str] = None
    ) -> Diagnostic:
        return Diagnostic(
            kind=kind,
            severity=severity,
            message=message,
            page_number=page_number,
            label=label,
            field_name=field_name
        )
