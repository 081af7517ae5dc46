"""
Test reward split arithmetic and token unit conversion.
"""

from decimal import Decimal

import pytest

from recircle_rewards.core.exceptions import InvalidAmountError
from recircle_rewards.services.split_calculator import (
    SplitRatio,
    calculate_split,
    from_minor_units,
    to_minor_units,
)


@pytest.mark.parametrize("total", [1, 2, 3, 7, 10, 99, 101, 12345, 10 ** 18, 10 ** 30 + 7])
def test_split_sums_to_total_and_floors_recipient(total):
    """Recipient share is floor(total * 0.7) and nothing is lost."""
    split = calculate_split(total)

    assert split.recipient_amount + split.fund_amount == total
    assert split.recipient_amount == total * 7 // 10
    assert split.fund_amount >= 0


def test_ten_splits_seven_three():
    split = calculate_split(10)
    assert (split.recipient_amount, split.fund_amount) == (7, 3)


def test_custom_ratio():
    """Configured ratios apply the same floor rule."""
    split = calculate_split(100, SplitRatio(2, 3))
    assert (split.recipient_amount, split.fund_amount) == (66, 34)


@pytest.mark.parametrize("total", [0, -5, 1.5, "10", True, None])
def test_invalid_totals_rejected(total):
    with pytest.raises(InvalidAmountError):
        calculate_split(total)


def test_invalid_ratio_rejected():
    with pytest.raises(ValueError):
        SplitRatio(101, 100)
    with pytest.raises(ValueError):
        SplitRatio(1, 0)


def test_to_minor_units_is_exact():
    """Human amounts convert without float drift, even at full precision."""
    assert to_minor_units("10") == 10 * 10 ** 18
    assert to_minor_units(Decimal("0.1")) == 10 ** 17
    assert to_minor_units("123456789012.000000000000000001") == 123456789012 * 10 ** 18 + 1
    assert to_minor_units("2.5", decimals=6) == 2_500_000


@pytest.mark.parametrize("amount", ["0", "-1", "abc", "1e-19", 0.1, "NaN"])
def test_to_minor_units_rejects_bad_amounts(amount):
    with pytest.raises(InvalidAmountError):
        to_minor_units(amount)


def test_from_minor_units():
    assert from_minor_units(7 * 10 ** 18) == Decimal(7)
    assert from_minor_units(15, decimals=1) == Decimal("1.5")


if __name__ == "__main__":
    pytest.main([__file__])
