"""Estimate vs. actual variance aggregation.

variance % = (actual - estimated) / estimated * 100; positive = over budget.
"""

from collections import OrderedDict
from typing import Iterable, List, Optional

from config.settings import settings
from models.actuals import ActualCost, CategoryBreakdown, VarianceSeverity, VarianceSummary

# Band used for over/under/on-target counts
ON_TARGET_BAND_PCT = 5.0
UNCATEGORIZED = "Other"


def variance_percent(estimated: Optional[float], actual: Optional[float]) -> Optional[float]:
    """Percent variance, or None when there is no estimate to compare against."""
    if not estimated:
        return None
    return ((actual or 0.0) - estimated) / estimated * 100.0


def classify_variance(percent: Optional[float]) -> VarianceSeverity:
    """Bucket a variance percentage using the configured thresholds."""
    if percent is None:
        return VarianceSeverity.ON_TARGET
    if percent > settings.variance_critical_pct:
        return VarianceSeverity.CRITICAL
    if percent > settings.variance_warning_pct:
        return VarianceSeverity.WARNING
    if percent < settings.variance_favorable_pct:
        return VarianceSeverity.FAVORABLE
    return VarianceSeverity.ON_TARGET


def summarize_actuals(actuals: Iterable[ActualCost]) -> VarianceSummary:
    """Project totals over items that have an actual amount recorded."""
    actuals = list(actuals)
    completed = [a for a in actuals if a.is_completed]

    estimated = sum(a.estimated_amount or 0.0 for a in completed)
    actual = sum(a.actual_amount or 0.0 for a in completed)
    variance = sum(a.variance_amount for a in completed)
    percent = (variance / estimated * 100.0) if estimated > 0 else 0.0

    over = under = on_target = 0
    for a in completed:
        pct = variance_percent(a.estimated_amount, a.actual_amount) or 0.0
        if pct > ON_TARGET_BAND_PCT:
            over += 1
        elif pct < -ON_TARGET_BAND_PCT:
            under += 1
        else:
            on_target += 1

    return VarianceSummary(
        estimated=estimated,
        actual=actual,
        variance=variance,
        variance_percent=percent,
        severity=classify_variance(percent),
        over_budget_count=over,
        under_budget_count=under,
        on_target_count=on_target,
        completed_count=len(completed),
        pending_count=len(actuals) - len(completed),
    )


def category_breakdown(actuals: Iterable[ActualCost]) -> List[CategoryBreakdown]:
    """Per-category variance, largest absolute variance first."""
    grouped: "OrderedDict[str, CategoryBreakdown]" = OrderedDict()

    for a in actuals:
        if not a.is_completed:
            continue
        cat = a.category or UNCATEGORIZED
        row = grouped.setdefault(cat, CategoryBreakdown(category=cat))
        row.estimated += a.estimated_amount or 0.0
        row.actual += a.actual_amount or 0.0
        row.variance += a.variance_amount
        row.item_count += 1
        row.item_ids.append(a.id)

    for row in grouped.values():
        row.variance_percent = (row.variance / row.estimated * 100.0) if row.estimated > 0 else 0.0
        row.severity = classify_variance(row.variance_percent)

    return sorted(grouped.values(), key=lambda r: abs(r.variance), reverse=True)
