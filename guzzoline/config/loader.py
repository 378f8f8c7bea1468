"""
Configuration management and loading.

Handles pricing overrides, budget limits and staleness settings.
"""

import math
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from guzzoline.core.budget import BudgetConfig
from guzzoline.core.errors import InvalidInput
from guzzoline.core.pricing import PRICING_TABLE, ModelPricing, PricingTable
from guzzoline.beads.classifier import STALE_COMMUNICATION_THRESHOLD


@dataclass(frozen=True)
class GuzzolineConfig:
    """Complete runtime configuration."""
    pricing: PricingTable = PRICING_TABLE
    budget: BudgetConfig = field(default_factory=BudgetConfig)
    stale_threshold: timedelta = STALE_COMMUNICATION_THRESHOLD


def load_config(path: Optional[str] = None) -> GuzzolineConfig:
    """Load and validate configuration from a YAML file.

    Strict validation ensures no silent misconfigurations that would
    skew cost figures on the dashboard.

    Args:
        path: Path to YAML configuration file, None for built-in defaults

    Returns:
        Validated GuzzolineConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        InvalidInput: If configuration is invalid
    """
    if path is None:
        return GuzzolineConfig()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")
        except UnicodeDecodeError as e:
            raise InvalidInput(f"Config file {path} is not valid UTF-8: {e}")

    if not raw_config:
        raise InvalidInput("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise InvalidInput("Configuration must be a mapping")

    allowed_top_keys = {'pricing', 'budget', 'staleness'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise InvalidInput(f"Unknown configuration keys: {unknown_keys}")

    return GuzzolineConfig(
        pricing=_parse_pricing(raw_config.get('pricing') or {}),
        budget=_parse_budget(raw_config.get('budget') or {}),
        stale_threshold=_parse_staleness(raw_config.get('staleness') or {}),
    )


def _require_mapping(data: Any, path: str) -> Dict:
    if not isinstance(data, dict):
        raise InvalidInput(f"'{path}' must be a dictionary")
    return data


def _check_keys(data: Dict, allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise InvalidInput(f"Unknown keys in {path}: {unknown_keys}")


def _decimal(value: Any, path: str) -> Decimal:
    """Read a non-negative number as a Decimal without float noise."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInput(f"'{path}' must be a number")
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidInput(f"'{path}' must be finite")
    if value < 0:
        raise InvalidInput(f"'{path}' cannot be negative")
    return Decimal(str(value))


def _parse_pricing(data: Any) -> PricingTable:
    """Merge configured model rates over the built-in rate card."""
    data = _require_mapping(data, 'pricing')
    _check_keys(data, {'default_model', 'models'}, 'pricing')

    models_data = _require_mapping(data.get('models') or {}, 'pricing.models')
    overrides = {}
    for model_id, rates in models_data.items():
        path = f"pricing.models.{model_id}"
        rates = _require_mapping(rates, path)
        _check_keys(rates, {'input', 'output', 'cache_read', 'cache_write'}, path)
        for required in ('input', 'output', 'cache_read'):
            if required not in rates:
                raise InvalidInput(f"Missing required '{required}' rate in {path}")

        overrides[str(model_id)] = ModelPricing(
            model_id=str(model_id),
            input_rate_per_million=_decimal(rates['input'], f"{path}.input"),
            output_rate_per_million=_decimal(rates['output'], f"{path}.output"),
            cache_read_rate_per_million=_decimal(rates['cache_read'], f"{path}.cache_read"),
            cache_write_rate_per_million=_decimal(rates.get('cache_write', 0), f"{path}.cache_write"),
        )

    default_model = data.get('default_model')
    if default_model is not None and not isinstance(default_model, str):
        raise InvalidInput("'pricing.default_model' must be a string")

    return PRICING_TABLE.with_overrides(overrides, default_model)


def _usd_to_cents(value: Any, path: str) -> int:
    dollars = _decimal(value, path)
    if dollars <= 0:
        raise InvalidInput(f"'{path}' must be > 0")
    return int((dollars * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _parse_budget(data: Any) -> BudgetConfig:
    """Parse budget limits given in USD into a BudgetConfig in cents."""
    data = _require_mapping(data, 'budget')
    _check_keys(data, {'daily', 'weekly', 'monthly', 'warning_threshold_percent'}, 'budget')

    limits = {
        f"{period}_limit": _usd_to_cents(data[period], f"budget.{period}")
        for period in ('daily', 'weekly', 'monthly')
        if data.get(period) is not None
    }

    threshold = data.get('warning_threshold_percent', 80)
    if isinstance(threshold, bool) or not isinstance(threshold, int):
        raise InvalidInput("'budget.warning_threshold_percent' must be an integer")

    return BudgetConfig(warning_threshold_percent=threshold, **limits)


def _parse_staleness(data: Any) -> timedelta:
    data = _require_mapping(data, 'staleness')
    _check_keys(data, {'communication_days'}, 'staleness')

    days = data.get('communication_days', 7)
    if isinstance(days, bool) or not isinstance(days, (int, float)) or days <= 0:
        raise InvalidInput("'staleness.communication_days' must be > 0")
    if isinstance(days, float) and not math.isfinite(days):
        raise InvalidInput("'staleness.communication_days' must be finite")
    try:
        return timedelta(days=days)
    except OverflowError:
        raise InvalidInput(f"'staleness.communication_days' is too large: {days}")
