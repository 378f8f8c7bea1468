"""
Unit tests for budget evaluation and period spend.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from guzzoline.core.budget import (
    BudgetConfig,
    WarningType,
    evaluate_budget,
    spend_by_period,
)
from guzzoline.core.errors import InvalidInput

NOW = datetime(2026, 10, 18, 15, 0, tzinfo=timezone.utc)


class TestBudgetConfig:
    """Test budget configuration validation."""

    def test_defaults_are_unbounded(self):
        """Verify no limits are set by default."""
        config = BudgetConfig()
        assert config.limit_for("daily") is None
        assert config.warning_threshold_percent == 80

    def test_non_positive_limit_rejected(self):
        """Verify limits must be positive."""
        with pytest.raises(InvalidInput, match="daily budget limit must be > 0"):
            BudgetConfig(daily_limit=0)

    def test_threshold_range(self):
        """Verify the warning threshold is a percentage."""
        with pytest.raises(InvalidInput):
            BudgetConfig(warning_threshold_percent=0)
        with pytest.raises(InvalidInput):
            BudgetConfig(warning_threshold_percent=150)


class TestEvaluateBudget:
    """Test budget status and warnings."""

    def test_within_budget(self):
        """Verify no warnings under the threshold."""
        status = evaluate_budget(BudgetConfig(daily_limit=10000), {"daily": 5000})
        daily = status.for_period("daily")
        assert daily.percent_used == Decimal("50.0")
        assert daily.remaining == 5000
        assert status.warnings == ()

    def test_approaching_limit(self):
        """Verify a warning once spend crosses the threshold."""
        status = evaluate_budget(BudgetConfig(weekly_limit=10000), {"weekly": 8000})
        assert len(status.warnings) == 1
        warning = status.warnings[0]
        assert warning.type == WarningType.APPROACHING_LIMIT
        assert warning.period == "weekly"
        assert warning.threshold_percent == 80

    def test_exceeded_limit(self):
        """Verify exceeding takes precedence over approaching."""
        status = evaluate_budget(BudgetConfig(monthly_limit=10000), {"monthly": 12000})
        monthly = status.for_period("monthly")
        assert monthly.remaining == 0
        assert monthly.percent_used == Decimal("120.0")
        assert [w.type for w in status.warnings] == [WarningType.EXCEEDED_LIMIT]

    def test_unbounded_period(self):
        """Verify periods without a limit report zero percent."""
        status = evaluate_budget(BudgetConfig(), {"daily": 999999})
        daily = status.for_period("daily")
        assert daily.limit is None
        assert daily.percent_used == Decimal("0")
        assert status.warnings == ()

    def test_negative_spend_rejected(self):
        """Verify negative spend is a contract violation."""
        with pytest.raises(InvalidInput):
            evaluate_budget(BudgetConfig(), {"daily": -1})

    def test_to_dict(self):
        """Verify budget status flattens to plain data."""
        data = evaluate_budget(BudgetConfig(daily_limit=100), {"daily": 100}).to_dict()
        assert data["warnings"][0]["type"] == "exceeded_limit"
        assert data["periods"][0]["percent_used"] == 100.0


class TestSpendByPeriod:
    """Test bucketing of record costs into periods."""

    def test_period_sums(self):
        """Verify records land in every period they fall into."""
        records = [
            # Today: 1M input = 300 cents
            {"timestamp": "2026-10-18T09:00:00Z", "input": 1_000_000},
            # Three days ago, same month: 1M output = 1500 cents
            {"timestamp": "2026-10-15T09:00:00Z", "output": 1_000_000},
            # Last month: outside every period
            {"timestamp": "2026-09-20T09:00:00Z", "input": 1_000_000},
        ]
        spend = spend_by_period(records, now=NOW)
        assert spend.daily == 300
        assert spend.weekly == 1800
        assert spend.monthly == 1800
        assert spend.failures == ()

    def test_future_records_ignored(self):
        """Verify records after the reference time are not counted."""
        spend = spend_by_period([{"timestamp": "2026-10-19T09:00:00Z", "input": 1_000_000}], now=NOW)
        assert spend.as_mapping() == {"daily": 0, "weekly": 0, "monthly": 0}

    def test_missing_timestamp_is_a_failure(self):
        """Verify records without timestamps are reported and skipped."""
        spend = spend_by_period(
            [{"id": "u1", "input": 1_000_000}, {"timestamp": "2026-10-18T01:00:00Z", "input": 1_000_000}],
            now=NOW,
        )
        assert spend.daily == 300
        assert len(spend.failures) == 1
        assert spend.failures[0].record_id == "u1"

    def test_naive_reference_time(self):
        """Verify a naive reference time is treated as UTC."""
        spend = spend_by_period(
            [{"timestamp": "2026-10-18T09:00:00Z", "input": 1_000_000}],
            now=datetime(2026, 10, 18, 15, 0),
        )
        assert spend.daily == 300
