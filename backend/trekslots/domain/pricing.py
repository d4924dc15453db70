from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

GST_PERCENT = 5


@dataclass(frozen=True)
class PriceBreakdown:
    base_amount: int
    gst_amount: int
    discount_amount: int
    final_amount: int


def round_currency(value: Decimal) -> int:
    """Round half-up to a whole currency unit."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_of(amount: int, percent: int) -> int:
    return round_currency(Decimal(amount) * Decimal(percent) / Decimal(100))


def voucher_discount(amount: int, *, discount_percent: int, maximum_discount: Optional[int]) -> int:
    """
    Discount granted by a percentage voucher on a pre-tax ``amount``.
    A falsy ``maximum_discount`` means the discount is uncapped.
    """
    discount = percent_of(amount, discount_percent)
    if maximum_discount and discount > maximum_discount:
        discount = maximum_discount
    return discount


def compute(
    base_price: int,
    participants: int,
    discount_amount: int = 0,
    *,
    gst_percent: int = GST_PERCENT,
) -> PriceBreakdown:
    """
    Price a booking. The discount comes off the pre-tax amount and GST is
    charged on what remains.
    """
    if base_price < 0:
        raise ValueError("base_price must not be negative")
    if participants < 1:
        raise ValueError("participants must be positive")
    if discount_amount < 0:
        raise ValueError("discount_amount must not be negative")

    base_amount = base_price * participants
    discount = min(discount_amount, base_amount)
    discounted = base_amount - discount
    gst_amount = percent_of(discounted, gst_percent)
    return PriceBreakdown(
        base_amount=base_amount,
        gst_amount=gst_amount,
        discount_amount=discount,
        final_amount=discounted + gst_amount,
    )
