"""Checkout pricing.

Checkout charges a flat platform fee on the cart subtotal. The per-block
``platform_fee_bps`` is only consulted later, at payout time.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, Sequence

from blockmarket.errors import CurrencyMismatch, EmptyCart
from blockmarket.services.money import (
    calc_fee_minor_units,
    from_minor_units,
    to_minor_units,
)

DEFAULT_PLATFORM_FEE_BPS = 1500


class PricedBlock(Protocol):
    price: Decimal
    currency: str


@dataclass(frozen=True)
class FeePolicy:
    """Flat platform fee applied to the checkout subtotal."""

    rate_bps: int = DEFAULT_PLATFORM_FEE_BPS

    def __post_init__(self) -> None:
        if self.rate_bps < 0:
            raise ValueError("rate_bps must be non-negative")


@dataclass(frozen=True)
class CheckoutPricing:
    """Amounts charged to the buyer for one checkout."""

    subtotal: Decimal
    platform_fee: Decimal
    total: Decimal
    currency: str


def price_checkout(
    blocks: Sequence[PricedBlock],
    fee_policy: FeePolicy = FeePolicy(),
) -> CheckoutPricing:
    """
    Compute subtotal, platform fee and total for a cart.

    Args:
        blocks: Price snapshots, all in one currency
        fee_policy: Flat fee applied to the subtotal

    Returns:
        CheckoutPricing with total == subtotal + platform_fee

    Raises:
        EmptyCart: No blocks supplied
        CurrencyMismatch: Blocks priced in more than one currency
    """
    if not blocks:
        raise EmptyCart()

    currencies = {block.currency.upper() for block in blocks}
    if len(currencies) != 1:
        raise CurrencyMismatch(currencies)

    subtotal_minor = sum(to_minor_units(block.price) for block in blocks)
    fee_minor = calc_fee_minor_units(subtotal_minor, fee_policy.rate_bps)

    return CheckoutPricing(
        subtotal=from_minor_units(subtotal_minor),
        platform_fee=from_minor_units(fee_minor),
        total=from_minor_units(subtotal_minor + fee_minor),
        currency=currencies.pop(),
    )
