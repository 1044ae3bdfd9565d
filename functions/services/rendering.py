"""Rebuild view-space shapes for saved measurements.

Stored points are in document space; the current view's zoom maps them onto
the screen. Values and labels come from each measurement's stored value, so
recalibrating the session never changes what a saved measurement shows.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple, Union

import structlog

from models.measurement import Measurement, MeasurementType, Point
from services.geometry import centroid, midpoint, to_view_point

logger = structlog.get_logger(__name__)

DEFAULT_COLOR = "#3b82f6"
HIGHLIGHT_COLOR = "#f59e0b"
MARKER_RADIUS = 10
LINEAR_LABEL_OFFSET = 20
NOTE_BACKGROUND = "rgba(255,255,200,0.9)"
LABEL_BACKGROUND = "rgba(255,255,255,0.8)"


@dataclass(frozen=True)
class LineShape:
    start: Point
    end: Point
    color: str
    stroke_width: int = 2


@dataclass(frozen=True)
class PolygonShape:
    vertices: Tuple[Point, ...]
    color: str
    fill: str
    stroke_width: int = 2


@dataclass(frozen=True)
class MarkerShape:
    center: Point
    number: int
    color: str
    radius: int = MARKER_RADIUS


@dataclass(frozen=True)
class TextLabel:
    position: Point
    text: str
    color: str
    background: str = LABEL_BACKGROUND


Shape = Union[LineShape, PolygonShape, MarkerShape, TextLabel]


@dataclass
class RenderedMeasurement:
    """Shapes drawn for one saved measurement."""

    measurement_id: str
    highlighted: bool
    shapes: List[Shape] = field(default_factory=list)


def format_value(value: Optional[float], unit: str) -> str:
    return f"{(value or 0):.1f} {unit}"


def render_measurement(
    measurement: Measurement,
    zoom: float,
    highlighted: bool = False
) -> Optional[RenderedMeasurement]:
    """Shapes for one measurement, or None when its points cannot be drawn."""
    color = HIGHLIGHT_COLOR if highlighted else DEFAULT_COLOR
    points = measurement.points
    view = [to_view_point(p, zoom) for p in points]
    rendered = RenderedMeasurement(measurement_id=measurement.id, highlighted=highlighted)
    kind = MeasurementType(measurement.type)

    if kind == MeasurementType.LINEAR:
        if len(points) < 2:
            return None
        mid = to_view_point(midpoint(points[0], points[1]), zoom)
        rendered.shapes.append(LineShape(start=view[0], end=view[1], color=color))
        rendered.shapes.append(TextLabel(
            position=Point(x=mid.x, y=mid.y - LINEAR_LABEL_OFFSET),
            text=format_value(measurement.value, measurement.unit),
            color=color,
        ))

    elif kind == MeasurementType.AREA:
        if len(points) < 3:
            return None
        rendered.shapes.append(PolygonShape(vertices=tuple(view), color=color, fill=f"{color}20"))
        rendered.shapes.append(TextLabel(
            position=to_view_point(centroid(points), zoom),
            text=format_value(measurement.value, measurement.unit),
            color=color,
        ))

    elif kind == MeasurementType.COUNT:
        for i, center in enumerate(view, start=1):
            rendered.shapes.append(MarkerShape(center=center, number=i, color=color))

    else:
        if not points:
            return None
        rendered.shapes.append(TextLabel(
            position=view[0],
            text=measurement.label or "Note",
            color=color,
            background=NOTE_BACKGROUND,
        ))

    return rendered


def render_measurements(
    measurements: Iterable[Measurement],
    zoom: float,
    page_number: int,
    highlight_id: Optional[str] = None
) -> List[RenderedMeasurement]:
    """Shapes for every saved measurement on the current page.

    Args:
        measurements: Saved measurements (any page).
        zoom: Current display zoom (view pixels per document unit).
        page_number: Page shown in the viewer; other pages are skipped.
        highlight_id: Measurement to draw in the highlight color.
    """
    if zoom <= 0:
        raise ValueError(f"zoom must be positive, got {zoom}")

    results = []
    for m in measurements:
        if m.page_number != page_number:
            continue
        rendered = render_measurement(m, zoom, highlighted=(m.id == highlight_id))
        if rendered is None:
            logger.warning("measurement_not_renderable", measurement_id=m.id, type=m.type, points=len(m.points))
            continue
        results.append(rendered)
    return results
