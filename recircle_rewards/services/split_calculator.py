"""
Reward split between the recipient and the operating (app) fund.

All arithmetic is on integer minor units so the two legs always add up to the
total exactly; any rounding remainder lands on the fund leg.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from recircle_rewards.core.exceptions import InvalidAmountError
from recircle_rewards.models.distribution import SplitResult


@dataclass(frozen=True)
class SplitRatio:
    """Recipient share as numerator/denominator; the fund receives the rest."""
    numerator: int = 70
    denominator: int = 100

    def __post_init__(self):
        if self.denominator <= 0:
            raise ValueError("Split denominator must be positive")
        if not 0 <= self.numerator <= self.denominator:
            raise ValueError("Split numerator must be within [0, denominator]")


DEFAULT_SPLIT_RATIO = SplitRatio()


def calculate_split(total: int, ratio: SplitRatio = DEFAULT_SPLIT_RATIO) -> SplitResult:
    """
    Split a total reward into recipient and fund amounts.

    Args:
        total: Total reward in token minor units
        ratio: Recipient share

    Returns:
        SplitResult with recipient = floor(total * num / den), fund = total - recipient

    Raises:
        InvalidAmountError: If total is not a positive integer
    """
    if isinstance(total, bool) or not isinstance(total, int):
        raise InvalidAmountError(total, "amount must be an integer number of minor units")
    if total <= 0:
        raise InvalidAmountError(total, "amount must be greater than zero")

    recipient_amount = total * ratio.numerator // ratio.denominator
    return SplitResult(recipient_amount=recipient_amount, fund_amount=total - recipient_amount)


def to_minor_units(amount: Union[Decimal, str, int], decimals: int = 18) -> int:
    """
    Convert a human token amount (e.g. "10.5" B3TR) to minor units.

    Raises:
        InvalidAmountError: If the amount is malformed, non-positive or has
            more precision than the token supports
    """
    if isinstance(amount, (bool, float)):
        raise InvalidAmountError(amount, "use Decimal or str to avoid floating-point drift")
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(amount, "not a number")

    if not value.is_finite():
        raise InvalidAmountError(amount, "not a finite number")

    with localcontext() as ctx:
        ctx.prec = 80
        scaled = value.scaleb(decimals)
        fractional = scaled != scaled.to_integral_value()
    if fractional:
        raise InvalidAmountError(amount, f"more than {decimals} decimal places")
    minor = int(scaled)
    if minor <= 0:
        raise InvalidAmountError(amount, "amount must be greater than zero")
    return minor


def from_minor_units(amount: int, decimals: int = 18) -> Decimal:
    """Convert minor units back to a human token amount."""
    with localcontext() as ctx:
        ctx.prec = 80
        return Decimal(amount).scaleb(-decimals)
