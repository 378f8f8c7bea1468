"""
Cost aggregation across calls, workers, rigs and convoys.

Folds token counts and cost breakdowns into roll-ups. Every fold is
field-wise addition with the all-zero record as identity, so the order
records arrive in never changes a total.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .errors import GuzzolineError, InvalidInput, RecordFailure
from .pricing import (
    PRICING_TABLE,
    CostBreakdown,
    ModelPricing,
    PricingTable,
    calculate_cost,
)
from .timestamps import parse_timestamp
from .token_counter import TokenCounts

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_RATIO = Decimal("0.25")


def sum_token_counts(counts: Iterable[TokenCounts]) -> TokenCounts:
    """Field-wise sum of token counts; an empty input yields all zeros."""
    input_tokens = output_tokens = cache_read = cache_write = 0
    for count in counts:
        input_tokens += count.input
        output_tokens += count.output
        cache_read += count.cache_read
        cache_write += count.cache_write
    return TokenCounts(
        input=input_tokens,
        output=output_tokens,
        cache_read=cache_read,
        cache_write=cache_write,
    )


def sum_cost_breakdowns(costs: Iterable[CostBreakdown]) -> CostBreakdown:
    """Field-wise sum of cost breakdowns; an empty input yields all zeros.

    Components are already whole cents, so no rounding happens here and
    the summed total equals the sum of the individual totals.
    """
    input_cost = output_cost = cache_read_cost = cache_write_cost = 0
    for cost in costs:
        input_cost += cost.input_cost
        output_cost += cost.output_cost
        cache_read_cost += cost.cache_read_cost
        cache_write_cost += cost.cache_write_cost
    return CostBreakdown(
        input_cost=input_cost,
        output_cost=output_cost,
        cache_read_cost=cache_read_cost,
        cache_write_cost=cache_write_cost,
    )


def cost_per_token(breakdown: CostBreakdown, tokens: TokenCounts) -> Decimal:
    """Cents per token, or 0 when no tokens were used."""
    if tokens.total == 0:
        return Decimal("0")
    return Decimal(breakdown.total_cost) / Decimal(tokens.total)


def estimate_cost(
    projected_tokens: Union[TokenCounts, int],
    pricing: Optional[ModelPricing] = None,
    output_ratio: Decimal = DEFAULT_OUTPUT_RATIO,
) -> CostBreakdown:
    """Estimate the cost of future usage with the regular calculator.

    Args:
        projected_tokens: Projected counts, or a total token count that is
            split into output (``output_ratio`` of it) and input
        pricing: Model pricing, defaults to the default rate card
        output_ratio: Share of output tokens when given a bare total

    Raises:
        InvalidInput: If the projection is negative or the ratio is out of [0, 1]
    """
    if isinstance(projected_tokens, TokenCounts):
        return calculate_cost(projected_tokens, pricing)

    if isinstance(projected_tokens, bool) or not isinstance(projected_tokens, int):
        raise InvalidInput(f"Projected tokens must be an integer, got {projected_tokens!r}")
    if projected_tokens < 0:
        raise InvalidInput(f"Projected tokens cannot be negative: {projected_tokens}")
    ratio = Decimal(str(output_ratio))
    if ratio < 0 or ratio > 1:
        raise InvalidInput(f"output_ratio must be between 0 and 1, got {output_ratio}")

    output_tokens = int((Decimal(projected_tokens) * ratio).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    tokens = TokenCounts(input=projected_tokens - output_tokens, output=output_tokens)
    return calculate_cost(tokens, pricing)


@dataclass(frozen=True)
class UsageRecord:
    """One token-usage observation as delivered by the collector."""
    tokens: TokenCounts
    model: Optional[str] = None
    rig: Optional[str] = None
    worker: Optional[str] = None
    convoy_id: Optional[str] = None
    bead_id: Optional[str] = None
    session_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    record_id: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "UsageRecord":
        """Parse a raw collector record.

        Token classes may sit under ``tokens`` or at the top level.

        Raises:
            InvalidInput: If the record is malformed
        """
        if not isinstance(raw, Mapping):
            raise InvalidInput(f"Usage record must be a mapping, got {type(raw).__name__}")

        token_data = raw.get("tokens", raw)
        timestamp = raw.get("timestamp")
        return cls(
            tokens=TokenCounts.from_mapping(token_data),
            model=_optional_str(raw.get("model")),
            rig=_optional_str(raw.get("rig")),
            worker=_optional_str(raw.get("worker") or raw.get("actor")),
            convoy_id=_optional_str(raw.get("convoy_id") or raw.get("convoy")),
            bead_id=_optional_str(raw.get("bead_id")),
            session_id=_optional_str(raw.get("session_id")),
            timestamp=parse_timestamp(timestamp) if timestamp is not None else None,
            record_id=_optional_str(raw.get("id")),
        )


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _worker_key(record: UsageRecord) -> Optional[str]:
    if record.worker is None:
        return None
    return f"{record.rig}/{record.worker}" if record.rig else record.worker


ROLLUP_KEYS: Dict[str, Callable[[UsageRecord], Optional[str]]] = {
    "worker": _worker_key,
    "rig": lambda record: record.rig,
    "convoy": lambda record: record.convoy_id,
    "bead": lambda record: record.bead_id,
    "model": lambda record: record.model,
}


@dataclass(frozen=True)
class CostRollup:
    """Summed usage and cost for one worker, rig, convoy, bead or model."""
    key: Optional[str]
    tokens: TokenCounts
    cost: CostBreakdown
    record_count: int
    session_count: int
    bead_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "tokens": self.tokens.to_dict(),
            "cost": self.cost.to_dict(),
            "record_count": self.record_count,
            "session_count": self.session_count,
            "bead_count": self.bead_count,
        }


@dataclass(frozen=True)
class UsageReport:
    """Result of a batch roll-up, including records that were skipped."""
    by: str
    rollups: Tuple[CostRollup, ...]
    total_tokens: TokenCounts
    total_cost: CostBreakdown
    failures: Tuple[RecordFailure, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "by": self.by,
            "rollups": [rollup.to_dict() for rollup in self.rollups],
            "total_tokens": self.total_tokens.to_dict(),
            "total_cost": self.total_cost.to_dict(),
            "failures": [failure.to_dict() for failure in self.failures],
        }


@dataclass
class _Bucket:
    tokens: List[TokenCounts] = field(default_factory=list)
    costs: List[CostBreakdown] = field(default_factory=list)
    sessions: set = field(default_factory=set)
    beads: set = field(default_factory=set)


def rollup_usage(
    records: Iterable[Union[UsageRecord, Mapping[str, Any]]],
    by: str = "worker",
    table: PricingTable = PRICING_TABLE,
) -> UsageReport:
    """Cost every record and fold the results by ``by``.

    Records that fail to parse or cost are skipped and reported in
    ``failures``; the rest of the batch is still aggregated. Roll-ups keep
    the first-seen order of their keys, with records lacking the key
    collected in a trailing ``None`` roll-up.

    Args:
        records: UsageRecord objects or raw collector mappings
        by: One of ROLLUP_KEYS ("worker", "rig", "convoy", "bead", "model")
        table: Pricing table used to resolve each record's model

    Raises:
        InvalidInput: If ``by`` is not a known dimension
    """
    if by not in ROLLUP_KEYS:
        raise InvalidInput(f"Unknown roll-up dimension {by!r}, expected one of {sorted(ROLLUP_KEYS)}")
    key_fn = ROLLUP_KEYS[by]

    buckets: Dict[Optional[str], _Bucket] = {}
    failures: List[RecordFailure] = []

    for index, raw in enumerate(records):
        record_id = None
        try:
            record = raw if isinstance(raw, UsageRecord) else UsageRecord.from_dict(raw)
            record_id = record.record_id
            cost = calculate_cost(record.tokens, table.get_pricing(record.model))
        except GuzzolineError as e:
            if isinstance(raw, Mapping):
                record_id = _optional_str(raw.get("id"))
            logger.warning("Skipping usage record %s (%s): %s", index, record_id, e)
            failures.append(RecordFailure.from_exception(index, record_id, e))
            continue

        bucket = buckets.setdefault(key_fn(record), _Bucket())
        bucket.tokens.append(record.tokens)
        bucket.costs.append(cost)
        if record.session_id:
            bucket.sessions.add(record.session_id)
        if record.bead_id:
            bucket.beads.add(record.bead_id)

    ordered_keys = [key for key in buckets if key is not None]
    if None in buckets:
        ordered_keys.append(None)

    rollups = tuple(
        CostRollup(
            key=key,
            tokens=sum_token_counts(buckets[key].tokens),
            cost=sum_cost_breakdowns(buckets[key].costs),
            record_count=len(buckets[key].costs),
            session_count=len(buckets[key].sessions),
            bead_count=len(buckets[key].beads),
        )
        for key in ordered_keys
    )

    return UsageReport(
        by=by,
        rollups=rollups,
        total_tokens=sum_token_counts(r.tokens for r in rollups),
        total_cost=sum_cost_breakdowns(r.cost for r in rollups),
        failures=tuple(failures),
    )


def rollup_by_worker(records, table: PricingTable = PRICING_TABLE) -> UsageReport:
    return rollup_usage(records, by="worker", table=table)


def rollup_by_rig(records, table: PricingTable = PRICING_TABLE) -> UsageReport:
    return rollup_usage(records, by="rig", table=table)


def rollup_by_convoy(records, table: PricingTable = PRICING_TABLE) -> UsageReport:
    return rollup_usage(records, by="convoy", table=table)


@dataclass(frozen=True)
class EfficiencyMetrics:
    """Efficiency figures for cost analysis. Ratios are 0 on empty input."""
    tokens_per_issue: Decimal
    cost_per_issue: Decimal  # cents
    cache_hit_ratio: Decimal
    output_input_ratio: Decimal

    def to_dict(self) -> Dict[str, float]:
        return {
            "tokens_per_issue": float(self.tokens_per_issue),
            "cost_per_issue": float(self.cost_per_issue),
            "cache_hit_ratio": float(self.cache_hit_ratio),
            "output_input_ratio": float(self.output_input_ratio),
        }


def _ratio(numerator: int, denominator: int) -> Decimal:
    if denominator == 0:
        return Decimal("0")
    return Decimal(numerator) / Decimal(denominator)


def compute_efficiency(
    tokens: TokenCounts,
    cost: CostBreakdown,
    completed_issues: int,
) -> EfficiencyMetrics:
    """Compute efficiency metrics for a usage total.

    Args:
        tokens: Aggregated token counts
        cost: Aggregated cost breakdown
        completed_issues: Number of closed beads the usage produced

    Raises:
        InvalidInput: If completed_issues is negative
    """
    if completed_issues < 0:
        raise InvalidInput(f"completed_issues cannot be negative: {completed_issues}")

    return EfficiencyMetrics(
        tokens_per_issue=_ratio(tokens.total, completed_issues),
        cost_per_issue=_ratio(cost.total_cost, completed_issues),
        cache_hit_ratio=_ratio(tokens.cache_read, tokens.input + tokens.cache_read),
        output_input_ratio=_ratio(tokens.output, tokens.input),
    )
