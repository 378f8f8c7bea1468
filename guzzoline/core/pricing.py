"""
Pricing calculations and rate management.

Handles the per-model rate card and converts token counts into
cost breakdowns in integer cents.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Mapping, Optional, Union

from .errors import InvalidInput
from .token_counter import TokenCounts

logger = logging.getLogger(__name__)

ONE_MILLION = Decimal("1000000")
CENTS_PER_DOLLAR = Decimal("100")


@dataclass(frozen=True)
class ModelPricing:
    """Per-million-token pricing (USD) for a specific model."""
    model_id: str
    input_rate_per_million: Decimal
    output_rate_per_million: Decimal
    cache_read_rate_per_million: Decimal
    cache_write_rate_per_million: Decimal = Decimal("0")

    def __post_init__(self):
        """Validate rates are non-negative decimals."""
        if not self.model_id:
            raise InvalidInput("model_id is required")
        for name in (
            "input_rate_per_million",
            "output_rate_per_million",
            "cache_read_rate_per_million",
            "cache_write_rate_per_million",
        ):
            rate = getattr(self, name)
            if not isinstance(rate, Decimal):
                raise InvalidInput(f"{name} must be a Decimal, got {type(rate).__name__}")
            if not rate.is_finite():
                raise InvalidInput(f"{name} must be finite for {self.model_id}")
            if rate < 0:
                raise InvalidInput(f"{name} cannot be negative for {self.model_id}")


@dataclass(frozen=True)
class CostBreakdown:
    """Cost of a token observation, per token class, in integer cents.

    ``total_cost`` is always the sum of the already-rounded components so
    a displayed breakdown and its total never disagree.
    """
    input_cost: int = 0
    output_cost: int = 0
    cache_read_cost: int = 0
    cache_write_cost: int = 0
    total_cost: int = field(init=False)

    def __post_init__(self):
        for name in ("input_cost", "output_cost", "cache_read_cost", "cache_write_cost"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidInput(f"{name} must be integer cents, got {value!r}")
            if value < 0:
                raise InvalidInput(f"{name} cannot be negative: {value}")
        object.__setattr__(
            self,
            "total_cost",
            self.input_cost + self.output_cost + self.cache_read_cost + self.cache_write_cost,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input_cost": self.input_cost,
            "output_cost": self.output_cost,
            "cache_read_cost": self.cache_read_cost,
            "cache_write_cost": self.cache_write_cost,
            "total_cost": self.total_cost,
            "currency": "USD",
        }


ZERO_COST = CostBreakdown()

# Model families matched by substring when a model id is not in the table
_FAMILY_FALLBACKS = (
    ("opus", "claude-opus-4-20250514"),
    ("haiku", "claude-3-5-haiku-20241022"),
    ("sonnet", "claude-sonnet-4-20250514"),
)


@dataclass(frozen=True)
class PricingTable:
    """Pricing table for supported models with a designated default model."""
    prices: Dict[str, ModelPricing]
    default_model: str

    def __post_init__(self):
        if self.default_model not in self.prices:
            raise InvalidInput(f"Default model {self.default_model!r} has no pricing")

    def get_pricing(self, model: Optional[str] = None, strict: bool = False) -> ModelPricing:
        """Get pricing for a specific model.

        Unknown models resolve by family name (opus, haiku, sonnet) and then
        to the default model.

        Args:
            model: Model identifier, None for the default model
            strict: Raise instead of falling back for unknown models

        Returns:
            ModelPricing for the model

        Raises:
            InvalidInput: If strict and the model is not in the table
        """
        if model and model in self.prices:
            return self.prices[model]
        if strict:
            raise InvalidInput(f"Unsupported model: {model}")

        if model:
            lowered = model.lower()
            for family, model_id in _FAMILY_FALLBACKS:
                if family in lowered and model_id in self.prices:
                    logger.debug("Pricing %s as %s", model, model_id)
                    return self.prices[model_id]
            logger.debug("Unknown model %s, using default %s", model, self.default_model)

        return self.prices[self.default_model]

    def with_overrides(
        self,
        prices: Mapping[str, ModelPricing],
        default_model: Optional[str] = None,
    ) -> "PricingTable":
        """Return a new table with ``prices`` merged over this one."""
        merged = dict(self.prices)
        merged.update(prices)
        return PricingTable(prices=merged, default_model=default_model or self.default_model)


def _pricing(model_id: str, input_rate: str, output_rate: str,
             cache_read_rate: str, cache_write_rate: str) -> ModelPricing:
    return ModelPricing(
        model_id=model_id,
        input_rate_per_million=Decimal(input_rate),
        output_rate_per_million=Decimal(output_rate),
        cache_read_rate_per_million=Decimal(cache_read_rate),
        cache_write_rate_per_million=Decimal(cache_write_rate),
    )


DEFAULT_MODEL = "claude-sonnet-4-20250514"

# Fixed rate card, USD per million tokens
PRICING_TABLE = PricingTable(
    prices={
        p.model_id: p
        for p in (
            _pricing("claude-opus-4-5-20251101", "15.00", "75.00", "1.50", "18.75"),
            _pricing("claude-opus-4-20250514", "15.00", "75.00", "1.50", "18.75"),
            _pricing("claude-sonnet-4-20250514", "3.00", "15.00", "0.30", "3.75"),
            _pricing("claude-3-5-sonnet-20241022", "3.00", "15.00", "0.30", "3.75"),
            _pricing("claude-3-5-haiku-20241022", "0.80", "4.00", "0.08", "1.00"),
            _pricing("claude-3-haiku-20240307", "0.25", "1.25", "0.025", "0.3125"),
        )
    },
    default_model=DEFAULT_MODEL,
)

# Rate card used when no pricing is supplied: $3 / $15 / $0.30 per million
DEFAULT_PRICING = PRICING_TABLE.get_pricing(DEFAULT_MODEL)


def _component_cents(token_count: int, rate_per_million: Decimal) -> int:
    """Cost of one token class in cents, rounded half up to a whole cent."""
    dollars = Decimal(token_count) / ONE_MILLION * rate_per_million
    return int((dollars * CENTS_PER_DOLLAR).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_cost(
    tokens: Union[TokenCounts, Mapping[str, Any], None],
    pricing: Optional[ModelPricing] = None,
) -> CostBreakdown:
    """Calculate the cost breakdown for a token observation.

    Each component is rounded to the nearest cent on its own and the total
    is the sum of the rounded components. Changing this to round once on
    the aggregate is a breaking change: breakdowns would stop adding up.

    Args:
        tokens: Token counts, or a raw mapping with optional token classes
        pricing: Model pricing, defaults to DEFAULT_PRICING

    Returns:
        CostBreakdown in integer cents

    Raises:
        InvalidInput: If any token count is negative or not an integer
    """
    if not isinstance(tokens, TokenCounts):
        tokens = TokenCounts.from_mapping(tokens)
    if pricing is None:
        pricing = DEFAULT_PRICING

    return CostBreakdown(
        input_cost=_component_cents(tokens.input, pricing.input_rate_per_million),
        output_cost=_component_cents(tokens.output, pricing.output_rate_per_million),
        cache_read_cost=_component_cents(tokens.cache_read, pricing.cache_read_rate_per_million),
        cache_write_cost=_component_cents(tokens.cache_write, pricing.cache_write_rate_per_million),
    )


def calculate_model_cost(
    tokens: Union[TokenCounts, Mapping[str, Any], None],
    model: Optional[str] = None,
    table: PricingTable = PRICING_TABLE,
) -> CostBreakdown:
    """Calculate cost for a model id, resolving its pricing from ``table``."""
    return calculate_cost(tokens, table.get_pricing(model))
