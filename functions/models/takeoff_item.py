"""Takeoff (cost line) item models for Takeoff.

Line items live in /projects/{projectId}/takeoffItems/{id}. An item created
from a measurement carries the measurement ID as its reverse reference.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime

from pydantic import BaseModel, Field, field_validator


TAKEOFF_CATEGORIES: List[str] = [
    "Demo",
    "Framing - Lumber",
    "Framing - Hardware",
    "Sheathing",
    "Roofing",
    "Siding",
    "Windows",
    "Doors - Interior",
    "Doors - Exterior",
    "Insulation",
    "Drywall",
    "Trim - Baseboard",
    "Trim - Casing",
    "Trim - Crown",
    "Flooring",
    "Paint",
    "Electrical",
    "Plumbing",
    "HVAC",
    "Hardware",
    "Fasteners",
    "Misc",
]


class TakeoffItemRequest(BaseModel):
    """Request to create a takeoff item from a measurement."""

    category: str = Field(..., description="One of TAKEOFF_CATEGORIES")
    description: str = Field(..., min_length=1, description="Line item description")
    quantity: float = Field(..., ge=0, description="Quantity taken from the measurement")
    unit: str = Field(..., description="Unit of the quantity")
    draft: bool = Field(default=True, description="Provisional until promoted to final")

    @field_validator("category")
    @classmethod
    def check_category(cls, v: str) -> str:
        if v not in TAKEOFF_CATEGORIES:
            raise ValueError(f"Unknown takeoff category: {v}")
        return v


class TakeoffItem(BaseModel):
    """A persisted takeoff line item."""

    id: str = Field(..., description="Document ID")
    project_id: Optional[str] = Field(default=None, alias="projectId")
    plan_file_id: Optional[str] = Field(default=None, alias="planFileId")
    measurement_id: Optional[str] = Field(
        default=None,
        alias="measurementId",
        description="Measurement this item was created from"
    )
    category: str = Field(default="Misc")
    description: str = Field(default="")
    quantity: float = Field(default=0.0)
    unit: str = Field(default="EA")
    draft: bool = Field(default=True)
    unit_cost: Optional[float] = Field(default=None, alias="unitCost")
    waste_percent: Optional[float] = Field(default=None, alias="wastePercent")
    notes: Optional[str] = Field(default=None)
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    class Config:
        populate_by_name = True

    @classmethod
    def from_firestore(cls, doc_id: str, data: Dict[str, Any]) -> "TakeoffItem":
        return cls.model_validate({**data, "id": doc_id})
