"""Shape capture state machine for the measurement overlay.

Translates pointer events (clicks and double-clicks in document space) into
finished MeasurementDrafts. Every in-progress shape is represented by exactly
one capture state, so a gesture can only finalize the shape its tool started.

Gestures:
- scale:  click P1, click P2, then confirm_calibration(feet)
- linear: click start, click end (finalizes)
- area:   click each vertex, double-click to finalize (needs >= 3 vertices)
- count:  click each marker, double-click to finalize
- note:   single click finalizes
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

import structlog

from config.errors import CalibrationError, CaptureError, ErrorCode
from config.settings import settings
from models.measurement import MeasurementDraft, MeasurementType, Point, unit_for
from services.geometry import compute_calibration_scale, distance, measurement_value

logger = structlog.get_logger(__name__)

DEFAULT_NOTE_LABEL = "Note"

# Scale persisted for unit-less measurements captured before calibration
UNCALIBRATED_SCALE = 1.0


class Tool(str, Enum):
    """Overlay toolbar tools."""

    SELECT = "select"
    SCALE = "scale"
    LINEAR = "linear"
    AREA = "area"
    COUNT = "count"
    NOTE = "note"


CALIBRATED_TOOLS = frozenset({Tool.LINEAR, Tool.AREA})


# =============================================================================
# CAPTURE STATES
# =============================================================================


@dataclass(frozen=True)
class Idle:
    """Nothing in progress for the active tool."""


@dataclass(frozen=True)
class Calibrating:
    """First calibration point placed, waiting for the second."""

    first: Point


@dataclass(frozen=True)
class ConfirmingCalibration:
    """Both calibration points placed; waiting for the real-world distance."""

    first: Point
    second: Point
    pixel_distance: float


@dataclass(frozen=True)
class CapturingLinear:
    start: Point


@dataclass(frozen=True)
class CapturingArea:
    vertices: Tuple[Point, ...]


@dataclass(frozen=True)
class CapturingCount:
    markers: Tuple[Point, ...]


CaptureState = Union[
    Idle,
    Calibrating,
    ConfirmingCalibration,
    CapturingLinear,
    CapturingArea,
    CapturingCount,
]


# =============================================================================
# SESSION
# =============================================================================


class CaptureSession:
    """Per-page capture session for one document viewing session.

    Holds the session calibration (pixels per foot) and the in-progress shape.
    Nothing here performs I/O; finalized drafts are handed to the caller to
    persist.
    """

    def __init__(
        self,
        page_number: int = 1,
        default_calibration_feet: Optional[float] = None,
        calibration_scale: Optional[float] = None
    ):
        if page_number < 1:
            raise ValueError(f"page_number must be >= 1, got {page_number}")
        if calibration_scale is not None and calibration_scale <= 0:
            raise ValueError(f"calibration_scale must be positive, got {calibration_scale}")
        self.page_number = page_number
        self.default_calibration_feet = (
            settings.default_calibration_feet
            if default_calibration_feet is None
            else default_calibration_feet
        )
        self.calibration_scale = calibration_scale
        self.tool = Tool.SELECT
        self.state: CaptureState = Idle()

    # -------------------------------------------------------------------------
    # Tool handling
    # -------------------------------------------------------------------------

    @property
    def is_calibrated(self) -> bool:
        return self.calibration_scale is not None

    def available_tools(self) -> Tuple[Tool, ...]:
        """Tools currently enabled on the toolbar."""
        return tuple(t for t in Tool if self.is_calibrated or t not in CALIBRATED_TOOLS)

    def select_tool(self, tool: Union[Tool, str]) -> None:
        """Switch tools, abandoning any in-progress shape.

        Raises:
            CaptureError: If a linear/area tool is selected before calibration.
        """
        tool = Tool(tool)
        if tool in CALIBRATED_TOOLS and not self.is_calibrated:
            raise CaptureError(
                code=ErrorCode.TOOL_UNAVAILABLE,
                message=f"Calibrate the page scale before using the {tool.value} tool",
                tool=tool.value
            )
        self._abandon("tool_switch")
        self.tool = tool

    def set_page(self, page_number: int) -> None:
        """Move to another page; in-progress shapes are page-scoped."""
        if page_number < 1:
            raise ValueError(f"page_number must be >= 1, got {page_number}")
        if page_number != self.page_number:
            self._abandon("page_change")
            self.page_number = page_number

    def clear(self) -> None:
        """Drop any in-progress shape or calibration points."""
        self._abandon("clear")

    def _abandon(self, reason: str) -> None:
        if not isinstance(self.state, Idle):
            logger.debug(
                "capture_abandoned",
                reason=reason,
                tool=self.tool.value,
                state=type(self.state).__name__,
                points=len(self.pending_points),
            )
        self.state = Idle()

    @property
    def pending_points(self) -> Tuple[Point, ...]:
        """Points of the in-progress shape, for drawing rubber-band previews."""
        state = self.state
        if isinstance(state, Calibrating):
            return (state.first,)
        if isinstance(state, ConfirmingCalibration):
            return (state.first, state.second)
        if isinstance(state, CapturingLinear):
            return (state.start,)
        if isinstance(state, CapturingArea):
            return state.vertices
        if isinstance(state, CapturingCount):
            return state.markers
        return ()

    # -------------------------------------------------------------------------
    # Pointer events
    # -------------------------------------------------------------------------

    def click(self, point: Point, label: Optional[str] = None) -> Optional[MeasurementDraft]:
        """Handle a single click at a document-space point.

        Returns:
            A finalized draft for linear (second click) and note tools,
            otherwise None.
        """
        tool = self.tool
        state = self.state

        if tool == Tool.SCALE:
            if isinstance(state, Calibrating):
                self.state = ConfirmingCalibration(
                    first=state.first,
                    second=point,
                    pixel_distance=distance(state.first, point),
                )
            elif not isinstance(state, ConfirmingCalibration):
                self.state = Calibrating(first=point)
            return None

        if tool == Tool.LINEAR:
            if isinstance(state, CapturingLinear):
                self.state = Idle()
                return self._finalize(MeasurementType.LINEAR, [state.start, point])
            self.state = CapturingLinear(start=point)
            return None

        if tool == Tool.AREA:
            vertices = state.vertices if isinstance(state, CapturingArea) else ()
            self.state = CapturingArea(vertices=vertices + (point,))
            return None

        if tool == Tool.COUNT:
            markers = state.markers if isinstance(state, CapturingCount) else ()
            self.state = CapturingCount(markers=markers + (point,))
            return None

        if tool == Tool.NOTE:
            self.state = Idle()
            return self._finalize(MeasurementType.NOTE, [point], label=label or DEFAULT_NOTE_LABEL)

        return None

    def double_click(self) -> Optional[MeasurementDraft]:
        """Finalize an area or count capture.

        The double-click adds no point of its own. An area with fewer than
        three vertices is discarded without a draft.
        """
        state = self.state

        if isinstance(state, CapturingArea):
            self.state = Idle()
            if len(state.vertices) < 3:
                logger.debug("area_discarded", vertices=len(state.vertices))
                return None
            return self._finalize(MeasurementType.AREA, list(state.vertices))

        if isinstance(state, CapturingCount):
            self.state = Idle()
            return self._finalize(MeasurementType.COUNT, list(state.markers))

        return None

    # -------------------------------------------------------------------------
    # Calibration
    # -------------------------------------------------------------------------

    def confirm_calibration(self, feet=None) -> float:
        """Apply the real-world distance entered for the two calibration points.

        Accepts a number or the raw prompt text; None accepts the pre-filled
        default distance. On success the session scale is replaced;
        measurements already captured keep their own frozen scale. The session
        returns to idle with the select tool either way.

        Raises:
            CalibrationError: On invalid distance; the previous scale is kept.
        """
        state = self.state
        if not isinstance(state, ConfirmingCalibration):
            raise CalibrationError(
                code=ErrorCode.CALIBRATION_INCOMPLETE,
                message="Click two points on a known dimension before entering a distance"
            )

        if feet is None:
            feet = self.default_calibration_feet

        self.state = Idle()
        self.tool = Tool.SELECT
        try:
            scale = compute_calibration_scale(state.first, state.second, feet)
        except CalibrationError as e:
            logger.info("calibration_rejected", code=e.code, reason=e.message, page=self.page_number)
            raise

        previous = self.calibration_scale
        self.calibration_scale = scale
        logger.info(
            "calibration_set",
            page=self.page_number,
            scale=scale,
            previous_scale=previous,
            pixel_distance=state.pixel_distance,
        )
        return scale

    def cancel_calibration(self) -> None:
        if isinstance(self.state, (Calibrating, ConfirmingCalibration)):
            self.state = Idle()
        self.tool = Tool.SELECT

    # -------------------------------------------------------------------------
    # Finalization
    # -------------------------------------------------------------------------

    def _finalize(
        self,
        measurement_type: MeasurementType,
        points,
        label: Optional[str] = None
    ) -> MeasurementDraft:
        if measurement_type in (MeasurementType.LINEAR, MeasurementType.AREA):
            scale = self.calibration_scale
        else:
            scale = self.calibration_scale or UNCALIBRATED_SCALE

        draft = MeasurementDraft(
            type=measurement_type,
            value=measurement_value(measurement_type, points, scale),
            unit=unit_for(measurement_type),
            label=label,
            points=points,
            page_number=self.page_number,
            scale=scale,
        )
        logger.info(
            "measurement_finalized",
            type=measurement_type.value,
            value=draft.value,
            unit=draft.unit,
            points=len(points),
            page=self.page_number,
        )
        return draft
