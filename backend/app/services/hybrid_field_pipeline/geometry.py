"""
Page Geometry
=============

Point-space boxes and the polygon conversion used by the coordinate normalizer.

Coordinate Systems:
-------------------
- Layout service: inches, top-left origin, polygons of 4 corners
  (TL, TR, BR, BL, clockwise)
- Engine: PDF points, bottom-left origin, axis-aligned boxes

Every downstream stage works in engine space only. The layout polygons are
read exactly once, in the normalizer.
"""

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

POINTS_PER_INCH = 72.0


class DegenerateGeometryError(ValueError):
    """Raised when a polygon cannot produce a box with positive area."""


@dataclass(frozen=True)
class Box:
    """
    Axis-aligned rectangle in PDF points.

    (x, y) is the bottom-left corner; y grows towards the top of the page.
    """
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        """X coordinate of right edge."""
        return self.x + self.width

    @property
    def top(self) -> float:
        """Y coordinate of top edge."""
        return self.y + self.height

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def is_valid(self) -> bool:
        """Positive, finite dimensions."""
        values = (self.x, self.y, self.width, self.height)
        if not all(math.isfinite(v) for v in values):
            return False
        return self.width > 0 and self.height > 0

    def to_dict(self) -> Dict[str, float]:
        return {
            'x': self.x,
            'y': self.y,
            'width': self.width,
            'height': self.height
        }

    def rounded(self, digits: int = 2) -> 'Box':
        return Box(
            x=round(self.x, digits),
            y=round(self.y, digits),
            width=round(self.width, digits),
            height=round(self.height, digits)
        )

    def translated(self, dx: float = 0.0, dy: float = 0.0) -> 'Box':
        return Box(self.x + dx, self.y + dy, self.width, self.height)

    def intersection_area(self, other: 'Box') -> float:
        x_overlap = max(0.0, min(self.right, other.right) - max(self.x, other.x))
        y_overlap = max(0.0, min(self.top, other.top) - max(self.y, other.y))
        return x_overlap * y_overlap

    def overlap_ratio(self, other: 'Box') -> float:
        """Intersection relative to the smaller box (0-1)."""
        smaller = min(self.area, other.area)
        if smaller <= 0:
            return 0.0
        return self.intersection_area(other) / smaller

    def contains_point(self, px: float, py: float, tolerance: float = 0.0) -> bool:
        return (
            self.x - tolerance <= px <= self.right + tolerance
            and self.y - tolerance <= py <= self.top + tolerance
        )

    def contains(self, other: 'Box', tolerance: float = 0.0) -> bool:
        return (
            other.x >= self.x - tolerance
            and other.right <= self.right + tolerance
            and other.y >= self.y - tolerance
            and other.top <= self.top + tolerance
        )

    def gap_distance(self, other: 'Box') -> float:
        """
        Euclidean distance between the closest edges of two boxes.

        Zero when the boxes touch or overlap.
        """
        dx = max(0.0, other.x - self.right, self.x - other.right)
        dy = max(0.0, other.y - self.top, self.y - other.top)
        return math.hypot(dx, dy)

    def center_distance(self, other: 'Box') -> float:
        """Calculate center-to-center distance."""
        return math.hypot(self.center_x - other.center_x, self.center_y - other.center_y)

    def vertical_overlap(self, other: 'Box') -> float:
        return max(0.0, min(self.top, other.top) - max(self.y, other.y))

    def same_row(self, other: 'Box', tolerance: Optional[float] = None) -> bool:
        """
        Check if two boxes sit on the same horizontal row.

        Without an explicit tolerance, the row band is the taller box's height.
        """
        if tolerance is None:
            tolerance = max(self.height, other.height)
        return abs(self.center_y - other.center_y) <= tolerance


def union_boxes(boxes: Iterable[Box]) -> Optional[Box]:
    """Smallest box enclosing all given boxes, or None for no boxes."""
    boxes = list(boxes)
    if not boxes:
        return None
    x_min = min(b.x for b in boxes)
    y_min = min(b.y for b in boxes)
    x_max = max(b.right for b in boxes)
    y_max = max(b.top for b in boxes)
    return Box(x_min, y_min, x_max - x_min, y_max - y_min)


def normalize_polygon(polygon: Sequence[float], page_height: float) -> Box:
    """
    Convert a layout polygon (inches, top-left origin) into a point-space Box.

    Args:
        polygon: 8 numbers, 4 corners clockwise from top-left
        page_height: Page height in points

    Returns:
        Box in points with bottom-left origin

    Raises:
        DegenerateGeometryError: wrong length, missing or non-numeric corners,
            non-finite values, zero area
    """
    if polygon is None or len(polygon) != 8:
        raise DegenerateGeometryError(
            f"Polygon must have 8 coordinates, got {0 if polygon is None else len(polygon)}"
        )

    try:
        values = [float(v) for v in polygon]
    except (TypeError, ValueError) as e:
        raise DegenerateGeometryError(f"Polygon has non-numeric coordinates: {e}") from e
    if not all(math.isfinite(v) for v in values):
        raise DegenerateGeometryError(f"Polygon has non-finite coordinates: {values}")

    xs = values[0::2]
    ys = values[1::2]

    x_min = min(xs) * POINTS_PER_INCH
    x_max = max(xs) * POINTS_PER_INCH
    y_top = page_height - min(ys) * POINTS_PER_INCH
    y_bottom = page_height - max(ys) * POINTS_PER_INCH

    box = Box(x=x_min, y=y_bottom, width=x_max - x_min, height=y_top - y_bottom)
    if box.width <= 0 or box.height <= 0:
        raise DegenerateGeometryError(
            f"Polygon has zero area ({box.width:.3f}x{box.height:.3f} pt)"
        )
    return box


def box_to_polygon(box: Box, page_height: float) -> List[float]:
    """
    Convert a point-space Box back into a layout polygon.

    Exact inverse of normalize_polygon; corners are TL, TR, BR, BL.
    """
    x_min = box.x / POINTS_PER_INCH
    x_max = (box.x + box.width) / POINTS_PER_INCH
    y_min = (page_height - box.y - box.height) / POINTS_PER_INCH
    y_max = (page_height - box.y) / POINTS_PER_INCH

    return [
        x_min, y_min,
        x_max, y_min,
        x_max, y_max,
        x_min, y_max,
    ]


def finite_points_box(polygon: Sequence[float], page_height: float) -> Optional[Box]:
    """
    Best-effort box over the finite corners of a polygon.

    Used to locate degenerate elements; the result may have zero area.
    """
    if not polygon:
        return None
    points = []
    for i in range(0, len(polygon) - 1, 2):
        px, py = polygon[i], polygon[i + 1]
        try:
            px, py = float(px), float(py)
        except (TypeError, ValueError):
            continue
        if math.isfinite(px) and math.isfinite(py):
            points.append((px * POINTS_PER_INCH, page_height - py * POINTS_PER_INCH))
    if not points:
        return None
    x_min = min(p[0] for p in points)
    x_max = max(p[0] for p in points)
    y_min = min(p[1] for p in points)
    y_max = max(p[1] for p in points)
    return Box(x_min, y_min, x_max - x_min, y_max - y_min)
