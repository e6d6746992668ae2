"""
Fee calculation for image sales.

Amounts are integers in the currency's smallest unit. Both fees are rounded
half-up; the rounding residue of the combined fee lands on the platform fee,
so ``processing_fee + platform_fee + net_to_seller == price`` always holds.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, Tuple

DEFAULT_PROCESSING_FEE_RATE = Decimal("0.04")
DEFAULT_PLATFORM_FEE_RATE = Decimal("0.01")


@dataclass(frozen=True)
class FeeBreakdown:
    price: int
    processing_fee: int
    platform_fee: int
    net_to_seller: int


@dataclass
class SellerPayout:
    """Aggregated fees and net payout owed to one seller in a checkout."""

    seller_id: str
    gross_amount: int = 0
    processing_fee: int = 0
    platform_fee: int = 0
    net_amount: int = 0
    item_count: int = 0


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_fees(
    price: int,
    processing_rate: Decimal = DEFAULT_PROCESSING_FEE_RATE,
    platform_rate: Decimal = DEFAULT_PLATFORM_FEE_RATE,
) -> FeeBreakdown:
    """
    Split an item price into processing fee, platform fee and seller net.

    >>> calculate_fees(1000)
    FeeBreakdown(price=1000, processing_fee=40, platform_fee=10, net_to_seller=950)
    """
    if isinstance(price, bool) or not isinstance(price, int):
        raise TypeError("price must be an integer amount in the smallest currency unit")
    if price < 0:
        raise ValueError("price must be non-negative")

    processing_fee = _round_half_up(Decimal(price) * processing_rate)
    total_fee = _round_half_up(Decimal(price) * (processing_rate + platform_rate))
    platform_fee = total_fee - processing_fee

    return FeeBreakdown(
        price=price,
        processing_fee=processing_fee,
        platform_fee=platform_fee,
        net_to_seller=price - total_fee,
    )


def aggregate_payouts(lines: Iterable[Tuple[str, FeeBreakdown]]) -> Dict[str, SellerPayout]:
    """
    Fold per-item fee breakdowns into one payout per seller.

    Args:
        lines: (seller_id, FeeBreakdown) pairs in checkout order

    Returns:
        Payouts keyed by seller id, in first-seen order
    """
    payouts: Dict[str, SellerPayout] = {}
    for seller_id, fees in lines:
        payout = payouts.setdefault(seller_id, SellerPayout(seller_id=seller_id))
        payout.gross_amount += fees.price
        payout.processing_fee += fees.processing_fee
        payout.platform_fee += fees.platform_fee
        payout.net_amount += fees.net_to_seller
        payout.item_count += 1
    return payouts
