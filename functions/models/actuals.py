"""Actual cost and variance models for Takeoff.

Variance sign convention: positive = over budget.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class VarianceSeverity(str, Enum):
    """Severity bucket for a variance percentage."""

    CRITICAL = "critical"
    WARNING = "warning"
    ON_TARGET = "on_target"
    FAVORABLE = "favorable"


class ActualCost(BaseModel):
    """Estimated vs. actual amount for one cost line."""

    id: str = Field(..., description="Actual cost record ID")
    category: Optional[str] = Field(default=None, description="Trade / takeoff category")
    description: Optional[str] = Field(default=None)
    estimated_amount: Optional[float] = Field(default=None, alias="estimatedAmount")
    actual_amount: Optional[float] = Field(
        default=None,
        alias="actualAmount",
        description="None until a receipt or manual actual is recorded"
    )

    class Config:
        populate_by_name = True

    @property
    def is_completed(self) -> bool:
        return self.actual_amount is not None

    @property
    def variance_amount(self) -> float:
        return (self.actual_amount or 0.0) - (self.estimated_amount or 0.0)


class CategoryBreakdown(BaseModel):
    """Variance rolled up for one category."""

    category: str
    estimated: float = 0.0
    actual: float = 0.0
    variance: float = 0.0
    variance_percent: float = Field(default=0.0, alias="variancePercent")
    severity: VarianceSeverity = VarianceSeverity.ON_TARGET
    item_count: int = Field(default=0, alias="itemCount")
    item_ids: List[str] = Field(default_factory=list, alias="itemIds")

    class Config:
        populate_by_name = True
        use_enum_values = True


class VarianceSummary(BaseModel):
    """Project-level variance totals over completed items."""

    estimated: float = 0.0
    actual: float = 0.0
    variance: float = 0.0
    variance_percent: float = Field(default=0.0, alias="variancePercent")
    severity: VarianceSeverity = VarianceSeverity.ON_TARGET
    over_budget_count: int = Field(default=0, alias="overBudgetCount")
    under_budget_count: int = Field(default=0, alias="underBudgetCount")
    on_target_count: int = Field(default=0, alias="onTargetCount")
    completed_count: int = Field(default=0, alias="completedCount")
    pending_count: int = Field(default=0, alias="pendingCount")

    class Config:
        populate_by_name = True
        use_enum_values = True
