"""
Unlabeled-Field Placer
======================

Places fields that have no label geometry of their own:
- hints the semantic service reported without a label
- labelled fields whose style resolver found nothing (fallback)
- labelled fields whose label never matched, recovered through a hint

The box is anchored on the resolved field whose label best matches the
hint's nearby text, else on the OCR text itself, and offset by a fixed gap
in the hint's relative direction. Without an anchor nothing is placed.
"""

import logging
from typing import Dict, Optional, Sequence, Tuple

from .evidence import FieldStyle, OcrPage, RelativePosition, UnlabeledFieldHint
from .geometry import Box
from .label_matcher import LabelMatcher
from .label_text import text_similarity
from .settings import FusionSettings

logger = logging.getLogger(__name__)

# (width, height) in points per style; everything else uses the settings default
DEFAULT_SIZES: Dict[FieldStyle, Tuple[float, float]] = {
    FieldStyle.SELECTION_MARK: (15.0, 15.0),
    FieldStyle.DIGIT_BOXES: (120.0, 22.0),
    FieldStyle.BOX_WITH_TITLE: (80.0, 35.0),
}


class UnlabeledFieldPlacer:
    """Default-sized placement relative to an anchor box."""

    def __init__(self, settings: Optional[FusionSettings] = None, matcher: Optional[LabelMatcher] = None):
        self.settings = settings or FusionSettings()
        self.matcher = matcher or LabelMatcher(self.settings)

    def place(self, hint: UnlabeledFieldHint, resolved_fields: Sequence, page: OcrPage) -> Optional[Box]:
        """
        Compute a box for a hint.

        Args:
            hint: The unlabeled field (or a hint derived from a labelled one)
            resolved_fields: Fields placed so far; anything with .label and .box
            page: Normalized OCR page

        Returns:
            Box, or None when no anchor could be found
        """
        anchor = self.find_anchor(hint.nearby_text, resolved_fields, page)
        if anchor is None:
            logger.warning(
                f"Page {page.page_number}: no anchor for {hint.field_type.value} field "
                f"near {hint.nearby_text!r}"
            )
            return None
        return self.offset_box(anchor, hint.field_type, hint.relative_position)

    def find_anchor(self, nearby_text: str, resolved_fields: Sequence, page: OcrPage) -> Optional[Box]:
        """Box of the best-matching resolved field, else of the OCR text."""
        threshold = self.settings.similarity_threshold
        best = None
        best_score = 0.0
        for resolved in resolved_fields:
            score = text_similarity(resolved.label, nearby_text)
            if score >= threshold and score > best_score:
                best, best_score = resolved, score
        if best is not None:
            logger.debug(f"Anchored {nearby_text!r} on resolved field {best.label!r} ({best_score:.2f})")
            return best.box

        match = self.matcher.locate_text(nearby_text, page)
        if match is not None:
            logger.debug(f"Anchored {nearby_text!r} on OCR line {match.line.content!r}")
            return match.anchor_box
        return None

    def default_size(self, style: FieldStyle) -> Tuple[float, float]:
        return DEFAULT_SIZES.get(style, (self.settings.default_box_width, self.settings.default_box_height))

    def offset_box(self, anchor: Box, style: FieldStyle, position: RelativePosition) -> Box:
        """Default-sized box beside the anchor, centered on the other axis."""
        width, height = self.default_size(style)
        offset = self.settings.placement_offset

        if position == RelativePosition.RIGHT:
            return Box(anchor.right + offset, anchor.center_y - height / 2, width, height)
        if position == RelativePosition.LEFT:
            return Box(anchor.x - offset - width, anchor.center_y - height / 2, width, height)
        if position == RelativePosition.ABOVE:
            return Box(anchor.center_x - width / 2, anchor.top + offset, width, height)
        return Box(anchor.center_x - width / 2, anchor.y - offset - height, width, height)
