"""
Quote monetary calculator.

Single source of the subtotal / discount / total formula. Used by quote
creation, full item replacement and discount-only updates alike, so the three
paths can never diverge. Plain floats, no rounding.
"""
from typing import Iterable, NamedTuple, Optional, Union, Mapping, Any

from opsconsole.models.quote import DiscountType


class QuoteTotals(NamedTuple):
    subtotal: float
    discount_amount: float
    total: float


def _line_values(item: Union[Mapping[str, Any], Any]):
    if isinstance(item, Mapping):
        return item['quantity'], item['unit_price']
    return item.quantity, item.unit_price


def calculate_subtotal(items: Iterable) -> float:
    """Sum of quantity * unit_price over mappings or objects carrying those fields."""
    subtotal = 0.0
    for item in items:
        quantity, unit_price = _line_values(item)
        subtotal += quantity * unit_price
    return subtotal


def calculate_discount(subtotal: float, discount_type: Optional[str], discount_value: Optional[float]) -> float:
    """
    Discount for a subtotal.

    Zero without a type or with a non-positive value. Fixed discounts are not
    clamped to the subtotal, so the total may go negative.
    """
    if not discount_type or discount_value is None or discount_value <= 0:
        return 0.0
    if discount_type == DiscountType.PERCENTAGE.value:
        return subtotal * (discount_value / 100)
    return float(discount_value)


def calculate_quote_totals(items: Iterable, discount_type: Optional[str] = None,
                           discount_value: Optional[float] = None) -> QuoteTotals:
    """Compute subtotal, discount amount and total for a set of quote items."""
    subtotal = calculate_subtotal(items)
    discount_amount = calculate_discount(subtotal, discount_type, discount_value)
    return QuoteTotals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        total=subtotal - discount_amount,
    )
