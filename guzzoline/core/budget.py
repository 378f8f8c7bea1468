"""
Budget tracking against daily, weekly and monthly spend limits.

Budget checks only report; nothing here blocks work.

Warning order per period:
1. Exceeded - spend reached the limit
2. Approaching - spend reached the warning threshold percent of the limit
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .aggregation import UsageRecord
from .errors import GuzzolineError, InvalidInput, RecordFailure
from .pricing import PRICING_TABLE, PricingTable, calculate_cost
from .timestamps import as_utc, utc_now

logger = logging.getLogger(__name__)

PERIODS = ("daily", "weekly", "monthly")


class WarningType(Enum):
    """Kinds of budget warnings."""
    APPROACHING_LIMIT = "approaching_limit"
    EXCEEDED_LIMIT = "exceeded_limit"


@dataclass(frozen=True)
class BudgetConfig:
    """Spend limits in cents. A missing limit means the period is unbounded."""
    daily_limit: Optional[int] = None
    weekly_limit: Optional[int] = None
    monthly_limit: Optional[int] = None
    warning_threshold_percent: int = 80

    def __post_init__(self):
        """Validate limits are positive and the threshold is a percentage."""
        for period in PERIODS:
            limit = self.limit_for(period)
            if limit is not None and limit <= 0:
                raise InvalidInput(f"{period} budget limit must be > 0")
        if not 0 < self.warning_threshold_percent <= 100:
            raise InvalidInput("warning_threshold_percent must be between 1 and 100")

    def limit_for(self, period: str) -> Optional[int]:
        return getattr(self, f"{period}_limit")


@dataclass(frozen=True)
class BudgetWarning:
    """A budget warning for one period."""
    type: WarningType
    period: str
    threshold_percent: int
    current_spent: int
    limit: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "period": self.period,
            "threshold_percent": self.threshold_percent,
            "current_spent": self.current_spent,
            "limit": self.limit,
        }


@dataclass(frozen=True)
class PeriodBudget:
    """Spend against the limit of a single period."""
    period: str
    spent: int
    limit: Optional[int]
    remaining: Optional[int]
    percent_used: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "spent": self.spent,
            "limit": self.limit,
            "remaining": self.remaining,
            "percent_used": float(self.percent_used),
        }


@dataclass(frozen=True)
class BudgetStatus:
    """Budget state across all periods plus any warnings raised."""
    periods: Tuple[PeriodBudget, ...]
    warnings: Tuple[BudgetWarning, ...]

    def for_period(self, period: str) -> PeriodBudget:
        for entry in self.periods:
            if entry.period == period:
                return entry
        raise KeyError(period)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "periods": [entry.to_dict() for entry in self.periods],
            "warnings": [warning.to_dict() for warning in self.warnings],
        }


@dataclass(frozen=True)
class PeriodSpend:
    """Cost in cents spent today, in the last 7 days and this month."""
    daily: int
    weekly: int
    monthly: int
    failures: Tuple[RecordFailure, ...] = ()

    def as_mapping(self) -> Dict[str, int]:
        return {"daily": self.daily, "weekly": self.weekly, "monthly": self.monthly}


def evaluate_budget(config: BudgetConfig, spent: Mapping[str, int]) -> BudgetStatus:
    """Compare spend per period against the configured limits.

    Args:
        config: Budget limits and warning threshold
        spent: Cents spent keyed by period ("daily", "weekly", "monthly");
            absent periods count as zero spend

    Returns:
        BudgetStatus with one entry per period and the warnings raised

    Raises:
        InvalidInput: If a spend value is negative
    """
    periods = []
    warnings: List[BudgetWarning] = []

    for period in PERIODS:
        amount = spent.get(period, 0)
        if amount < 0:
            raise InvalidInput(f"{period} spend cannot be negative: {amount}")
        limit = config.limit_for(period)

        if limit is None:
            periods.append(PeriodBudget(period, amount, None, None, Decimal("0")))
            continue

        percent = (Decimal(amount) * 100 / Decimal(limit)).quantize(
            Decimal("0.1"), rounding=ROUND_HALF_UP
        )
        periods.append(PeriodBudget(period, amount, limit, max(limit - amount, 0), percent))

        if amount >= limit:
            warning_type = WarningType.EXCEEDED_LIMIT
        elif percent >= config.warning_threshold_percent:
            warning_type = WarningType.APPROACHING_LIMIT
        else:
            continue
        warnings.append(BudgetWarning(
            type=warning_type,
            period=period,
            threshold_percent=config.warning_threshold_percent,
            current_spent=amount,
            limit=limit,
        ))

    return BudgetStatus(periods=tuple(periods), warnings=tuple(warnings))


def spend_by_period(
    records: Iterable[Union[UsageRecord, Mapping[str, Any]]],
    now: Optional[datetime] = None,
    table: PricingTable = PRICING_TABLE,
) -> PeriodSpend:
    """Sum record costs into today / last 7 days / this calendar month.

    Periods are evaluated in UTC. Records without a timestamp, or that
    fail to parse, are reported in ``failures`` and left out of every sum.
    """
    now = as_utc(now or utc_now())
    week_start = now - timedelta(days=7)
    daily = weekly = monthly = 0
    failures = []

    for index, raw in enumerate(records):
        try:
            record = raw if isinstance(raw, UsageRecord) else UsageRecord.from_dict(raw)
            if record.timestamp is None:
                raise InvalidInput("Usage record has no timestamp")
            cost = calculate_cost(record.tokens, table.get_pricing(record.model)).total_cost
        except GuzzolineError as e:
            record_id = raw.record_id if isinstance(raw, UsageRecord) else None
            if isinstance(raw, Mapping) and raw.get("id") is not None:
                record_id = str(raw["id"])
            logger.warning("Skipping usage record %s (%s): %s", index, record_id, e)
            failures.append(RecordFailure.from_exception(index, record_id, e))
            continue

        ts = as_utc(record.timestamp)
        if ts > now:
            continue
        if ts.date() == now.date():
            daily += cost
        if ts > week_start:
            weekly += cost
        if (ts.year, ts.month) == (now.year, now.month):
            monthly += cost

    return PeriodSpend(daily=daily, weekly=weekly, monthly=monthly, failures=tuple(failures))
