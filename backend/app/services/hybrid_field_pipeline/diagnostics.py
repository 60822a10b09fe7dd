"""
Diagnostics and Errors
======================

Recoverable problems are reported as Diagnostic records next to the field
list, so the editor can highlight them for manual correction. Only an
evidence-shape mismatch aborts a page (PageExtractionError).
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional


class DiagnosticKind(str, Enum):
    DEGENERATE_GEOMETRY = "degenerate_geometry"
    UNMATCHED_FIELD = "unmatched_field"
    RELATED_FIELD_MISMATCH = "related_field_mismatch"
    RESOLVER_FALLBACK = "resolver_fallback"
    UNPLACED_FIELD = "unplaced_field"
    UNPLACED_HINT = "unplaced_hint"
    ROW_GROUP_REALIGNED = "row_group_realigned"
    OUT_OF_BOUNDS = "out_of_bounds"
    FIELD_OVERLAP = "field_overlap"
    OVERLAP_ADJUSTED = "overlap_adjusted"
    OVERLAP_REMOVED = "overlap_removed"
    SECTION_REGROUPED = "section_regrouped"
    LOW_CONFIDENCE = "low_confidence"
    UNCLAIMED_SELECTION_MARK = "unclaimed_selection_mark"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Diagnostic:
    kind: DiagnosticKind
    severity: Severity
    message: str
    page_number: int
    label: Optional[str] = None
    field_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['kind'] = self.kind.value
        data['severity'] = self.severity.value
        return data


class PageExtractionError(Exception):
    """
    The two evidence sources disagree about a page.

    Fatal for that page only; the caller decides whether to refetch the
    page's evidence or skip it.
    """

    def __init__(self, page_number: Optional[int], reason: str):
        self.page_number = page_number
        self.reason = reason
        where = f"page {page_number}" if page_number is not None else "document"
        super().__init__(f"Evidence mismatch on {where}: {reason}")
