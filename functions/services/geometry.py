"""Calibration and measurement geometry.

Two scale factors appear in this module and must never be mixed:

- calibration scale: pixels per foot, established from two clicked points and
  a known real-world distance. Converts document-space pixels to feet.
- zoom: the display factor between document space and the current view.
  Only used to map pointer positions in and rendered shapes out.
"""

import math
from typing import Optional, Sequence, Union

import structlog

from config.errors import CalibrationError, ErrorCode
from models.measurement import MeasurementType, Point, check_point_count

logger = structlog.get_logger(__name__)


def distance(p1: Point, p2: Point) -> float:
    """Euclidean distance between two points."""
    return math.hypot(p2.x - p1.x, p2.y - p1.y)


def shoelace_area(points: Sequence[Point]) -> float:
    """Polygon area in px² using the Shoelace formula.

    Vertex order is taken as given; the absolute value makes clockwise and
    counter-clockwise input yield the same positive area.
    """
    n = len(points)
    if n < 3:
        return 0.0
    total = 0.0
    for i in range(n):
        j = (i + 1) % n
        total += points[i].x * points[j].y
        total -= points[j].x * points[i].y
    return abs(total) / 2.0


def midpoint(p1: Point, p2: Point) -> Point:
    return Point(x=(p1.x + p2.x) / 2, y=(p1.y + p2.y) / 2)


def centroid(points: Sequence[Point]) -> Point:
    """Vertex average, used for label placement."""
    n = len(points)
    return Point(
        x=sum(p.x for p in points) / n,
        y=sum(p.y for p in points) / n,
    )


# =============================================================================
# CALIBRATION
# =============================================================================


def parse_distance_feet(raw: Union[str, float, int, None]) -> float:
    """Parse the real-world distance entered in the calibration prompt.

    Raises:
        CalibrationError: If the entry is empty, non-numeric, non-finite or <= 0.
    """
    if isinstance(raw, bool) or raw is None:
        feet = None
    elif isinstance(raw, (int, float)):
        feet = float(raw)
    else:
        try:
            feet = float(str(raw).strip())
        except ValueError:
            feet = None

    if feet is None or not math.isfinite(feet):
        raise CalibrationError(
            code=ErrorCode.CALIBRATION_INVALID_DISTANCE,
            message=f"Distance must be a number of feet, got {raw!r}",
            details={"input": str(raw)}
        )
    if feet <= 0:
        raise CalibrationError(
            code=ErrorCode.CALIBRATION_INVALID_DISTANCE,
            message="Distance must be greater than zero feet",
            details={"input": str(raw)}
        )
    return feet


def compute_calibration_scale(
    p1: Point,
    p2: Point,
    feet: Union[str, float, int, None]
) -> float:
    """Pixels per foot from two document-space points and a known distance.

    Raises:
        CalibrationError: On invalid distance or coincident points.
    """
    known_feet = parse_distance_feet(feet)
    pixel_distance = distance(p1, p2)
    if pixel_distance == 0:
        raise CalibrationError(
            code=ErrorCode.CALIBRATION_INCOMPLETE,
            message="Calibration points must be two distinct locations",
            details={"p1": [p1.x, p1.y], "p2": [p2.x, p2.y]}
        )
    scale = pixel_distance / known_feet
    logger.debug("calibration_scale_computed", pixel_distance=pixel_distance, feet=known_feet, scale=scale)
    return scale


# =============================================================================
# VALUES
# =============================================================================


def linear_feet(points: Sequence[Point], scale: float) -> float:
    """Length in feet of a two-point linear measurement."""
    check_point_count(MeasurementType.LINEAR, len(points))
    return distance(points[0], points[1]) / scale


def area_square_feet(points: Sequence[Point], scale: float) -> float:
    """Area in square feet: px² divided by scale²."""
    check_point_count(MeasurementType.AREA, len(points))
    return shoelace_area(points) / (scale * scale)


def measurement_value(measurement_type: str, points: Sequence[Point], scale: float) -> float:
    """Derived value for a measurement of the given type."""
    kind = MeasurementType(measurement_type)
    if kind == MeasurementType.LINEAR:
        return linear_feet(points, scale)
    if kind == MeasurementType.AREA:
        return area_square_feet(points, scale)
    if kind == MeasurementType.COUNT:
        return float(len(points))
    return 0.0


# =============================================================================
# VIEW <-> DOCUMENT
# =============================================================================


def to_document_point(view_x: float, view_y: float, zoom: float) -> Point:
    """Map a pointer position in the current view back to document space."""
    if zoom <= 0:
        raise ValueError(f"zoom must be positive, got {zoom}")
    return Point(x=view_x / zoom, y=view_y / zoom)


def to_view_point(point: Point, zoom: float, offset: Optional[Point] = None) -> Point:
    """Map a document-space point into the current view."""
    dx = offset.x if offset else 0.0
    dy = offset.y if offset else 0.0
    return Point(x=point.x * zoom + dx, y=point.y * zoom + dy)
