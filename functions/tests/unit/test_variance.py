"""Unit tests for variance aggregation."""

import pytest

from models.actuals import ActualCost, VarianceSeverity
from services.variance import (
    category_breakdown,
    classify_variance,
    summarize_actuals,
    variance_percent,
)


def _actual(id, category, estimated, actual):
    return ActualCost(id=id, category=category, estimated_amount=estimated, actual_amount=actual)


class TestVariancePercent:

    def test_over_budget_positive(self):
        assert variance_percent(1000, 1100) == pytest.approx(10.0)

    def test_under_budget_negative(self):
        assert variance_percent(1000, 900) == pytest.approx(-10.0)

    @pytest.mark.parametrize("estimated", [None, 0])
    def test_no_estimate(self, estimated):
        assert variance_percent(estimated, 500) is None


class TestClassifyVariance:

    @pytest.mark.parametrize("percent,expected", [
        (15.0, VarianceSeverity.CRITICAL),
        (10.0, VarianceSeverity.WARNING),
        (7.5, VarianceSeverity.WARNING),
        (5.0, VarianceSeverity.ON_TARGET),
        (0.0, VarianceSeverity.ON_TARGET),
        (-5.0, VarianceSeverity.ON_TARGET),
        (-8.0, VarianceSeverity.FAVORABLE),
        (None, VarianceSeverity.ON_TARGET),
    ])
    def test_thresholds(self, percent, expected):
        assert classify_variance(percent) == expected


class TestSummary:

    def test_counts_and_totals(self):
        actuals = [
            _actual("a1", "Drywall", 1000, 1200),   # +20%
            _actual("a2", "Framing - Lumber", 2000, 1800),  # -10%
            _actual("a3", "Paint", 500, 510),       # +2%
            _actual("a4", "Flooring", 800, None),   # pending
        ]

        summary = summarize_actuals(actuals)

        assert summary.estimated == 3500
        assert summary.actual == 3510
        assert summary.variance == pytest.approx(10)
        assert summary.over_budget_count == 1
        assert summary.under_budget_count == 1
        assert summary.on_target_count == 1
        assert summary.completed_count == 3
        assert summary.pending_count == 1
        assert summary.severity == VarianceSeverity.ON_TARGET.value

    def test_empty(self):
        summary = summarize_actuals([])
        assert summary.variance_percent == 0.0
        assert summary.completed_count == 0


class TestBreakdown:

    def test_grouped_and_sorted_by_absolute_variance(self):
        actuals = [
            _actual("a1", "Paint", 500, 550),
            _actual("a2", "Drywall", 1000, 700),
            _actual("a3", "Paint", 500, 500),
            _actual("a4", None, 100, 300),
        ]

        rows = category_breakdown(actuals)

        assert [r.category for r in rows] == ["Drywall", "Other", "Paint"]
        paint = rows[2]
        assert paint.item_count == 2
        assert paint.item_ids == ["a1", "a3"]
        assert paint.variance_percent == pytest.approx(5.0)
        assert rows[0].severity == VarianceSeverity.FAVORABLE.value
        assert rows[1].severity == VarianceSeverity.CRITICAL.value

    def test_pending_items_excluded(self):
        rows = category_breakdown([_actual("a1", "Paint", 500, None)])
        assert rows == []
