"""
Coordinate Normalizer
=====================

Converts raw layout evidence (inch polygons, top-left origin) into the
point-space OcrPage used by every later stage.

Degenerate geometry:
--------------------
A polygon with zero width/height, a wrong corner count or non-finite values
cannot become a valid Box. Such an element:
1. Falls back to the nearest enclosing text-line box, when one exists
2. Is dropped otherwise

Either way a warning diagnostic is emitted; a Box with width or height <= 0
never leaves this module.
"""

import logging
import math
from typing import List, Optional, Sequence, Tuple

from .diagnostics import Diagnostic, DiagnosticKind, PageExtractionError, Severity
from .evidence import (
    OcrKeyValuePair,
    OcrPage,
    OcrSelectionMark,
    OcrTable,
    OcrTableCell,
    OcrTextLine,
    OcrWord,
    RawOcrPage,
)
from .geometry import Box, DegenerateGeometryError, finite_points_box, normalize_polygon
from .label_text import normalize_label

logger = logging.getLogger(__name__)


class CoordinateNormalizer:
    """
    Normalizes one page of layout evidence.

    Stateless; a single instance can serve many pages concurrently.
    """

    # How far (points) an element may stick out of a line and still be enclosed by it
    ENCLOSING_TOLERANCE = 2.0

    def normalize_page(self, raw: RawOcrPage) -> Tuple[OcrPage, List[Diagnostic]]:
        """
        Normalize all geometric evidence of a page.

        Args:
            raw: Layout-service page (inches, top-left origin)

        Returns:
            Tuple of (OcrPage in points, geometry diagnostics)

        Raises:
            PageExtractionError: page dimensions are missing or invalid
        """
        if not (math.isfinite(raw.width) and math.isfinite(raw.height)) or raw.width <= 0 or raw.height <= 0:
            raise PageExtractionError(
                raw.page_number,
                f"invalid page dimensions {raw.width}x{raw.height} in"
            )

        page_width = raw.width_points
        page_height = raw.height_points
        diagnostics: List[Diagnostic] = []

        # Lines first: they are the fallback for everything else
        lines: List[OcrTextLine] = []
        for line in raw.lines:
            try:
                lines.append(OcrTextLine(content=line.content, box=normalize_polygon(line.polygon, page_height)))
            except DegenerateGeometryError as e:
                diagnostics.append(self._degenerate(raw.page_number, 'line', line.content, e, None))

        words: List[OcrWord] = []
        for word in raw.words:
            box = self._element_box(
                raw.page_number, 'word', word.content, word.polygon, page_height, lines, diagnostics
            )
            if box is not None:
                words.append(OcrWord(content=word.content, box=box, confidence=word.confidence))

        marks: List[OcrSelectionMark] = []
        for mark in raw.selection_marks:
            box = self._element_box(
                raw.page_number, 'selection mark', None, mark.polygon, page_height, lines, diagnostics
            )
            if box is not None:
                marks.append(OcrSelectionMark(state=mark.state, box=box, confidence=mark.confidence))

        tables: List[OcrTable] = []
        for table in raw.tables:
            cells = []
            for cell in table.cells:
                box = self._element_box(
                    raw.page_number, 'table cell', cell.content or None, cell.polygon, page_height, lines, diagnostics
                )
                if box is not None:
                    cells.append(OcrTableCell(
                        row_index=cell.row_index,
                        column_index=cell.column_index,
                        content=cell.content,
                        box=box
                    ))
            tables.append(OcrTable(row_count=table.row_count, column_count=table.column_count, cells=tuple(cells)))

        kv_pairs: List[OcrKeyValuePair] = []
        for kv in raw.key_value_pairs:
            key_box = self._element_box(
                raw.page_number, 'key', kv.key, kv.key_polygon, page_height, lines, diagnostics
            )
            # A value area is never text-line content, so it cannot borrow a line box
            try:
                value_box = normalize_polygon(kv.value_polygon, page_height)
            except DegenerateGeometryError as e:
                diagnostics.append(self._degenerate(raw.page_number, 'value', kv.key, e, None))
                continue
            if key_box is not None:
                kv_pairs.append(OcrKeyValuePair(
                    key=kv.key,
                    key_box=key_box,
                    value_box=value_box,
                    confidence=kv.confidence
                ))

        page = OcrPage(
            page_number=raw.page_number,
            width=page_width,
            height=page_height,
            text_lines=tuple(lines),
            words=tuple(words),
            tables=tuple(tables),
            selection_marks=tuple(marks),
            kv_pairs_with_value=tuple(kv_pairs)
        )

        logger.info(
            f"Normalized page {raw.page_number}: {len(lines)} lines, {len(words)} words, "
            f"{len(marks)} selection marks, {len(tables)} tables, {len(kv_pairs)} key-value pairs "
            f"({len(diagnostics)} geometry warnings)"
        )
        return page, diagnostics

    def _element_box(
        self,
        page_number: int,
        element: str,
        content: Optional[str],
        polygon: Sequence[float],
        page_height: float,
        lines: List[OcrTextLine],
        diagnostics: List[Diagnostic]
    ) -> Optional[Box]:
        """Normalize one element polygon, falling back to its enclosing line."""
        try:
            return normalize_polygon(polygon, page_height)
        except DegenerateGeometryError as e:
            fallback = self._enclosing_line(polygon, page_height, content, lines)
            diagnostics.append(self._degenerate(page_number, element, content, e, fallback))
            return fallback.box if fallback else None

    def _enclosing_line(
        self,
        polygon: Sequence[float],
        page_height: float,
        content: Optional[str],
        lines: List[OcrTextLine]
    ) -> Optional[OcrTextLine]:
        """
        Find the text line that encloses a degenerate element.

        Located by its finite corners when there are any, otherwise by
        content containment (words only).
        """
        located = finite_points_box(polygon, page_height)
        if located is not None:
            enclosing = [
                line for line in lines
                if line.box.contains(located, tolerance=self.ENCLOSING_TOLERANCE)
            ]
            if enclosing:
                return min(enclosing, key=lambda line: (
                    line.box.area,
                    line.box.center_distance(located)
                ))
            return None

        if content:
            needle = normalize_label(content)
            if needle:
                for line in lines:
                    if needle in normalize_label(line.content):
                        return line
        return None

    @staticmethod
    def _degenerate(
        page_number: int,
        element: str,
        content: Optional[str],
        error: DegenerateGeometryError,
        fallback: Optional[OcrTextLine]
    ) -> Diagnostic:
        what = f"{element} {content!r}" if content else element
        if fallback is not None:
            outcome = f"using enclosing line {fallback.content!r}"
        else:
            outcome = "dropped"
        message = f"Degenerate {what}: {error}; {outcome}"
        logger.warning(f"Page {page_number}: {message}")
        return Diagnostic(
            kind=DiagnosticKind.DEGENERATE_GEOMETRY,
            severity=Severity.WARNING,
            message=message,
            page_number=page_number,
            label=content
        )
