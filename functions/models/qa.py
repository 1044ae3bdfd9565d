"""QA check models for Takeoff."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class QAIssueType(str, Enum):
    """Kinds of QA findings on a project's takeoff."""

    MISSING_COST = "missing_cost"
    UNLINKED_QTY = "unlinked_qty"
    OVERRIDE = "override"
    WASTE_OUTLIER = "waste_outlier"
    UNRESOLVED_RFI = "unresolved_rfi"


class QASeverity(str, Enum):
    RED = "red"
    ORANGE = "orange"
    YELLOW = "yellow"


class QAIssue(BaseModel):
    """One QA finding."""

    id: str
    type: QAIssueType
    severity: QASeverity
    title: str
    description: str
    item_id: Optional[str] = Field(default=None, alias="itemId")

    class Config:
        populate_by_name = True
        use_enum_values = True


class RFI(BaseModel):
    """Request for information raised against a project."""

    id: str
    question: str = ""
    status: str = "open"


class QAReport(BaseModel):
    """Scored QA findings for a project."""

    score: int = Field(..., ge=0, le=100)
    issues: List[QAIssue] = Field(default_factory=list)
    red_count: int = Field(default=0, alias="redCount")
    orange_count: int = Field(default=0, alias="orangeCount")
    yellow_count: int = Field(default=0, alias="yellowCount")

    class Config:
        populate_by_name = True
