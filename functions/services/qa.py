"""QA checks over a project's takeoff.

Findings are scored 100 - 10 per red - 5 per orange - 2 per yellow, floored
at zero. Draft takeoff items are not checked.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Tuple

import structlog

from models.measurement import Measurement
from models.qa import QAIssue, QAIssueType, QAReport, QASeverity, RFI
from models.takeoff_item import TakeoffItem

logger = structlog.get_logger(__name__)

# Expected waste % band by category (inclusive)
WASTE_BANDS: Dict[str, Tuple[float, float]] = {
    "Drywall": (8, 15),
    "Framing": (5, 12),
    "Decking": (5, 10),
    "Tile": (10, 20),
    "Flooring": (8, 15),
    "Roofing": (5, 15),
    "Insulation": (5, 12),
}

OVERRIDE_THRESHOLD_PCT = 5.0
MANUAL_OK_TAG = "[manual ok]"
OVERRIDE_TAG = "[override:"

SEVERITY_PENALTY = {
    QASeverity.RED: 10,
    QASeverity.ORANGE: 5,
    QASeverity.YELLOW: 2,
}


def _has_tag(item: TakeoffItem, tag: str) -> bool:
    return tag in (item.notes or "")


def check_item(item: TakeoffItem, linked: List[Measurement]) -> List[QAIssue]:
    """QA findings for one takeoff item given its linked measurements."""
    issues = []

    if not item.unit_cost:
        issues.append(QAIssue(
            id=f"missing-cost-{item.id}",
            type=QAIssueType.MISSING_COST,
            severity=QASeverity.RED,
            title="Missing Unit Cost",
            description=item.description,
            item_id=item.id,
        ))

    if item.quantity > 0 and not linked and not _has_tag(item, MANUAL_OK_TAG):
        issues.append(QAIssue(
            id=f"unlinked-{item.id}",
            type=QAIssueType.UNLINKED_QTY,
            severity=QASeverity.ORANGE,
            title="Unlinked Quantity",
            description=f"{item.description} ({item.quantity:g} {item.unit})",
            item_id=item.id,
        ))

    if linked:
        linked_sum = sum(m.value or 0.0 for m in linked)
        diff = abs(item.quantity - linked_sum)
        percent_diff = (diff / linked_sum * 100.0) if linked_sum > 0 else 0.0
        if percent_diff > OVERRIDE_THRESHOLD_PCT and not _has_tag(item, OVERRIDE_TAG):
            issues.append(QAIssue(
                id=f"override-{item.id}",
                type=QAIssueType.OVERRIDE,
                severity=QASeverity.ORANGE,
                title="Quantity Override",
                description=(
                    f"{item.description}: {item.quantity:g} vs linked {linked_sum:.1f} "
                    f"({percent_diff:.0f}% diff)"
                ),
                item_id=item.id,
            ))

    band = WASTE_BANDS.get(item.category)
    if band and item.waste_percent is not None:
        low, high = band
        if item.waste_percent < low or item.waste_percent > high:
            issues.append(QAIssue(
                id=f"waste-{item.id}",
                type=QAIssueType.WASTE_OUTLIER,
                severity=QASeverity.YELLOW,
                title="Waste % Outside Range",
                description=(
                    f"{item.description}: {item.waste_percent:g}% "
                    f"(expected {low:g}-{high:g}%)"
                ),
                item_id=item.id,
            ))

    return issues


def qa_score(issues: Iterable[QAIssue]) -> int:
    score = 100
    for issue in issues:
        score -= SEVERITY_PENALTY[QASeverity(issue.severity)]
    return max(0, score)


def build_qa_report(
    items: Iterable[TakeoffItem],
    measurements: Iterable[Measurement],
    open_rfis: Iterable[RFI] = ()
) -> QAReport:
    """Run every QA check for a project and score the result."""
    by_item: Dict[str, List[Measurement]] = defaultdict(list)
    for m in measurements:
        if m.linked_line_item_id:
            by_item[m.linked_line_item_id].append(m)

    issues: List[QAIssue] = []
    for item in items:
        if item.draft:
            continue
        issues.extend(check_item(item, by_item.get(item.id, [])))

    for rfi in open_rfis:
        issues.append(QAIssue(
            id=f"rfi-{rfi.id}",
            type=QAIssueType.UNRESOLVED_RFI,
            severity=QASeverity.RED,
            title="Unresolved RFI",
            description=rfi.question,
        ))

    counts = defaultdict(int)
    for issue in issues:
        counts[QASeverity(issue.severity)] += 1

    report = QAReport(
        score=qa_score(issues),
        issues=issues,
        red_count=counts[QASeverity.RED],
        orange_count=counts[QASeverity.ORANGE],
        yellow_count=counts[QASeverity.YELLOW],
    )
    logger.info(
        "qa_report_built",
        score=report.score,
        red=report.red_count,
        orange=report.orange_count,
        yellow=report.yellow_count,
    )
    return report
