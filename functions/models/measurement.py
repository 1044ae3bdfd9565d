"""Blueprint measurement models for Takeoff.

Pydantic models for measurements drawn on a plan file page. Points are kept
in document space (unscaled page coordinates); each measurement freezes the
calibration scale (pixels per foot) active when it was captured.
"""

import math
from enum import Enum
from typing import Any, Dict, List, Optional
from datetime import datetime

from pydantic import BaseModel, Field, model_validator


# =============================================================================
# ENUMS
# =============================================================================


class MeasurementType(str, Enum):
    """Kind of annotation drawn on a page."""

    LINEAR = "linear"
    AREA = "area"
    COUNT = "count"
    NOTE = "note"


UNIT_BY_TYPE: Dict[str, str] = {
    MeasurementType.LINEAR.value: "LF",
    MeasurementType.AREA.value: "SF",
    MeasurementType.COUNT.value: "EA",
    MeasurementType.NOTE.value: "EA",
}

# (minimum, maximum) point counts; None means unbounded
POINT_LIMITS: Dict[str, tuple] = {
    MeasurementType.LINEAR.value: (2, 2),
    MeasurementType.AREA.value: (3, None),
    MeasurementType.COUNT.value: (1, None),
    MeasurementType.NOTE.value: (1, 1),
}

VALUE_TOLERANCE = 1e-6


# =============================================================================
# GEOMETRY
# =============================================================================


class Point(BaseModel):
    """A 2D coordinate in document space."""

    x: float = Field(..., description="Horizontal document coordinate")
    y: float = Field(..., description="Vertical document coordinate")

    @model_validator(mode="after")
    def check_finite(self) -> "Point":
        if not (math.isfinite(self.x) and math.isfinite(self.y)):
            raise ValueError("Point coordinates must be finite numbers")
        return self


def unit_for(measurement_type: str) -> str:
    """Fixed unit for a measurement type."""
    return UNIT_BY_TYPE[MeasurementType(measurement_type).value]


def check_point_count(measurement_type: str, count: int) -> None:
    """Raise ValueError when ``count`` violates the per-type point rule."""
    kind = MeasurementType(measurement_type).value
    minimum, maximum = POINT_LIMITS[kind]
    if count < minimum or (maximum is not None and count > maximum):
        if minimum == maximum:
            expected = f"exactly {minimum}"
        else:
            expected = f"at least {minimum}"
        raise ValueError(
            f"{kind} measurement requires {expected} point(s), got {count}"
        )


# =============================================================================
# MEASUREMENT MODELS
# =============================================================================


class MeasurementDraft(BaseModel):
    """A finalized shape ready to be saved.

    This is the Save payload: ``{type, value, unit, label?, points,
    pageNumber, scale}``. A draft only exists in complete form; partial
    shapes never become drafts.
    """

    type: MeasurementType = Field(..., description="Measurement kind")
    value: float = Field(..., ge=0, description="LF, SF, count, or 0 for notes")
    unit: str = Field(..., description="Fixed unit for the measurement type")
    label: Optional[str] = Field(default=None, description="Free text, used by notes")
    points: List[Point] = Field(..., description="Ordered document-space points")
    page_number: int = Field(..., ge=1, alias="pageNumber", description="1-based page index")
    scale: float = Field(..., gt=0, description="Pixels per foot frozen at capture time")

    class Config:
        populate_by_name = True
        use_enum_values = True

    @model_validator(mode="after")
    def check_shape(self) -> "MeasurementDraft":
        """Enforce point counts, units, and derived values."""
        from services.geometry import measurement_value

        check_point_count(self.type, len(self.points))

        expected_unit = unit_for(self.type)
        if self.unit != expected_unit:
            raise ValueError(f"{self.type} measurements use unit {expected_unit}, got {self.unit}")

        expected = measurement_value(self.type, self.points, self.scale)
        if not math.isclose(self.value, expected, rel_tol=VALUE_TOLERANCE, abs_tol=VALUE_TOLERANCE):
            raise ValueError(
                f"value {self.value} does not match {expected} computed from points and scale"
            )
        return self

    def to_firestore_dict(self) -> Dict[str, Any]:
        """Convert to Firestore-compatible dict with camelCase keys."""
        data = self.model_dump(by_alias=True, exclude_none=True)
        data["points"] = [{"x": p.x, "y": p.y} for p in self.points]
        return data


class Measurement(MeasurementDraft):
    """A saved measurement as stored in /blueprintMeasurements/{id}."""

    id: str = Field(..., description="Document ID")
    project_id: Optional[str] = Field(default=None, alias="projectId")
    plan_file_id: Optional[str] = Field(default=None, alias="planFileId")
    linked_line_item_id: Optional[str] = Field(
        default=None,
        alias="takeoffItemId",
        description="Takeoff item this measurement justifies"
    )
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    @classmethod
    def from_firestore(cls, doc_id: str, data: Dict[str, Any]) -> "Measurement":
        """Build a Measurement from a Firestore document."""
        return cls.model_validate({**data, "id": doc_id})

    @property
    def is_linked(self) -> bool:
        return self.linked_line_item_id is not None
