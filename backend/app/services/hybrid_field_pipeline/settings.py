"""
Fusion engine tuning.

Values that no fixture pins down (fuzzy threshold, digit counts) live here
instead of being hard-coded in the stages that use them.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict


def _default_digit_counts() -> Dict[str, int]:
    # Local phone numbers (10), dd/mm/yyyy (8); numbers fall back to the
    # default count (Israeli ID, 9)
    return {
        'text': 10,
        'date': 8,
    }


@dataclass(frozen=True)
class FusionSettings:
    """Tuning for one pipeline instance. Immutable, safe to share across workers."""

    # Label matching
    fuzzy_match_ratio: float = 0.25
    similarity_threshold: float = 0.85

    # Digit boxes
    default_digit_count: int = 9
    digit_counts_by_input_type: Dict[str, int] = field(default_factory=_default_digit_counts)

    # Row geometry, in PDF points
    row_group_y_tolerance: float = 8.0
    row_order_tolerance: float = 10.0
    selection_mark_max_distance: float = 60.0
    label_gap: float = 3.0
    vertical_padding: float = 1.0
    min_input_width: float = 20.0
    page_margin_ratio: float = 0.05

    # Default sizes for synthesized boxes
    default_box_width: float = 120.0
    default_box_height: float = 20.0
    box_with_title_min_width: float = 80.0
    box_with_title_aspect: float = 80.0 / 35.0
    placement_offset: float = 5.0

    # Output validation
    low_confidence_threshold: float = 0.7
    overlap_threshold: float = 0.3
    # Overlap resolution: above this ratio the weaker field is dropped instead
    # of moved; confidences closer than the margin count as a tie
    overlap_removal_ratio: float = 0.8
    overlap_confidence_margin: float = 0.1
    overlap_gap: float = 5.0

    # Document-level parallelism
    page_workers: int = 4

    @classmethod
    def from_config(cls) -> 'FusionSettings':
        """Build settings from environment-backed application config."""
        from app.config import Config
        return cls(**Config.get_fusion_config())

    def digit_count_for(self, input_type: str) -> int:
        return self.digit_counts_by_input_type.get(input_type, self.default_digit_count)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
