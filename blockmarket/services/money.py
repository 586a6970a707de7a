"""Conversions between decimal currency amounts and integer minor units.

Rounding follows "half up toward positive infinity" (``floor(x + 0.5)``),
evaluated on the exact decimal value. Downstream reconciliation compares
these integers against gateway transfers, so the policy must not drift.
"""

from decimal import Decimal, InvalidOperation, ROUND_FLOOR
from typing import Union

from blockmarket.errors import InvalidAmount

Amount = Union[Decimal, int, float, str]

_HALF = Decimal("0.5")
_CENT = Decimal("0.01")


def _to_decimal(amount: Amount) -> Decimal:
    if isinstance(amount, bool):
        raise InvalidAmount(f"Invalid amount: {amount!r}")
    if isinstance(amount, Decimal):
        value = amount
    elif isinstance(amount, (int, str)):
        try:
            value = Decimal(amount.strip() if isinstance(amount, str) else amount)
        except InvalidOperation:
            raise InvalidAmount(f"Invalid amount: {amount!r}") from None
    elif isinstance(amount, float):
        # repr() gives the shortest string that round-trips the float
        value = Decimal(repr(amount))
    else:
        raise InvalidAmount(f"Invalid amount: {amount!r}")

    if not value.is_finite():
        raise InvalidAmount(f"Invalid amount: {amount!r}")
    return value


def to_minor_units(amount: Amount) -> int:
    """Convert a currency amount to integer cents."""
    # Sub-cent inputs differ from a binary-float round(float(x) * 100):
    # "1.005" and 1.005 give 101 here, 100 there. Two-place amounts agree.
    value = _to_decimal(amount)
    return int((value * 100 + _HALF).to_integral_value(rounding=ROUND_FLOOR))


def from_minor_units(cents: int) -> Decimal:
    """Convert integer cents back to a two-place decimal amount."""
    if isinstance(cents, bool) or not isinstance(cents, int):
        raise InvalidAmount("cents must be integer")
    return (Decimal(cents) / 100).quantize(_CENT)


def calc_fee_minor_units(price_minor: int, fee_bps: int) -> int:
    """Platform fee in cents for a price in cents and a fee in basis points."""
    if isinstance(price_minor, bool) or not isinstance(price_minor, int):
        raise InvalidAmount("price_minor must be integer")
    if isinstance(fee_bps, bool) or not isinstance(fee_bps, int):
        raise InvalidAmount("fee_bps must be integer")
    # floor(p * b / 10000 + 1/2) in exact integer arithmetic
    return (2 * price_minor * fee_bps + 10_000) // 20_000
