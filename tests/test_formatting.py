"""
Unit tests for cost and token display formatting.
"""

from decimal import Decimal

import pytest

from guzzoline.core.errors import InvalidInput
from guzzoline.core.formatting import format_cost, format_tokens


class TestFormatCost:
    """Test tiered cost display."""

    def test_below_one_cent(self):
        """Verify sub-cent costs show a less-than marker, not $0.00."""
        assert format_cost(0) == "<$0.01"
        assert format_cost(Decimal("0.4")) == "<$0.01"
        assert format_cost(0, compact=False) == "<$0.01"

    def test_under_one_dollar_two_decimals(self):
        """Verify costs under $1 keep cent precision."""
        assert format_cost(1) == "$0.01"
        assert format_cost(50) == "$0.50"
        assert format_cost(99) == "$0.99"

    def test_under_one_hundred_one_decimal(self):
        """Verify costs under $100 show one decimal."""
        assert format_cost(1350) == "$13.5"
        assert format_cost(1234) == "$12.3"
        assert format_cost(1235) == "$12.4"

    def test_large_costs_whole_dollars(self):
        """Verify costs from $100 round to whole dollars."""
        assert format_cost(12345) == "$123"
        assert format_cost(12350) == "$124"
        assert format_cost(123456789) == "$1,234,568"

    def test_tier_chosen_before_rounding(self):
        """Verify values just under a tier keep the lower tier's precision."""
        # $0.995 is under $1, so two decimals: rounds to $1.00
        assert format_cost(Decimal("99.5")) == "$1.00"
        # $99.95 is under $100, so one decimal: rounds to $100.0
        assert format_cost(9995) == "$100.0"

    def test_precise_format(self):
        """Verify the non-compact format always shows cents."""
        assert format_cost(1350, compact=False) == "$13.50"
        assert format_cost(123456, compact=False) == "$1,234.56"

    def test_invalid_costs(self):
        """Verify negative and non-finite costs are rejected."""
        with pytest.raises(InvalidInput):
            format_cost(-1)
        with pytest.raises(InvalidInput):
            format_cost(float("nan"))
        with pytest.raises(InvalidInput):
            format_cost(True)


class TestFormatTokens:
    """Test token count display."""

    def test_small_counts(self):
        """Verify counts under a thousand are shown as is."""
        assert format_tokens(0) == "0"
        assert format_tokens(999) == "999"

    def test_thousands(self):
        """Verify thousands use a K suffix."""
        assert format_tokens(1_000) == "1.0K"
        assert format_tokens(45_300) == "45.3K"

    def test_millions(self):
        """Verify millions use an M suffix, rounding half up."""
        assert format_tokens(2_000_000) == "2.0M"
        assert format_tokens(1_250_000) == "1.3M"

    def test_negative_tokens(self):
        """Verify negative counts are rejected."""
        with pytest.raises(InvalidInput):
            format_tokens(-5)
