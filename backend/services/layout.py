"""
Layout Orientation Service

Detects whether a template was drawn left-to-right or top-to-bottom and
rotates horizontal layouts into the vertical flow used by the process editor.
All functions are pure.
"""

from enum import Enum
from typing import Iterable, List, Tuple

from schemas.process_flow import Position


class Orientation(str, Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


def classify_orientation(points: Iterable[Position]) -> Orientation:
    """
    Classify a layout by its bounding box.

    HORIZONTAL only when the x spread is strictly larger than the y spread.
    Equal spreads, a single point and an empty layout are all VERTICAL.
    """
    points = list(points)
    if not points:
        return Orientation.VERTICAL

    xs = [p.x for p in points]
    ys = [p.y for p in points]
    x_range = max(xs) - min(xs)
    y_range = max(ys) - min(ys)

    if x_range > y_range:
        return Orientation.HORIZONTAL
    return Orientation.VERTICAL


def transform_position(orientation: Orientation, point: Position) -> Position:
    """Swap axes for horizontal layouts; vertical layouts pass through unchanged."""
    if orientation == Orientation.HORIZONTAL:
        return Position(x=point.y, y=point.x)
    return Position(x=point.x, y=point.y)


def normalize_positions(points: Iterable[Position]) -> Tuple[Orientation, List[Position]]:
    """
    Classify once for the whole layout, then transform every point with that result.

    Returns:
        The detected orientation and the transformed points, in input order
    """
    points = list(points)
    orientation = classify_orientation(points)
    return orientation, [transform_position(orientation, p) for p in points]
