"""Money arithmetic for orders.

All amounts are ``Decimal`` quantised to cents (ROUND_HALF_UP). Order-level tax
and discount are spread over the items in proportion to each item's subtotal;
each item first gets its share rounded down to the cent, then the leftover
cents go one at a time to the items with the largest remainders (earlier items
first on a tie). Item amounts always add up to the order amount exactly and are
never negative.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Any, List, Optional, Sequence

from orders_service.domain.models import Order, OrderItem

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

SHIPPING_RATES = {
    "standard": Decimal("5.99"),
    "express": Decimal("12.99"),
    "free": ZERO,
}


def money(value: Any) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def shipping_cost(method: Optional[str]) -> Decimal:
    return SHIPPING_RATES.get((method or "").lower(), ZERO)


def apportion(amount: Decimal, weights: Sequence[Decimal]) -> List[Decimal]:
    if not weights:
        return []
    amount = money(amount)
    total_weight = sum(weights, ZERO)
    if total_weight == 0:
        return [ZERO] * (len(weights) - 1) + [amount]
    exact = [amount * weight / total_weight for weight in weights]
    shares = [value.quantize(CENT, rounding=ROUND_DOWN) for value in exact]
    leftover = int((amount - sum(shares, ZERO)) / CENT)
    # sorted() is stable, so ties keep item order
    by_remainder = sorted(range(len(shares)), key=lambda i: exact[i] - shares[i], reverse=True)
    for index in by_remainder[:leftover]:
        shares[index] += CENT
    return shares


@dataclass
class OrderTotals:
    subtotal: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal


def price_items(
    items: Sequence[OrderItem],
    tax_rate: Any,
    shipping_amount: Decimal = ZERO,
    discount_amount: Decimal = ZERO,
) -> OrderTotals:
    """Recompute every item's amounts in place and return the order totals."""
    for item in items:
        item.subtotal = money(Decimal(item.unit_price) * item.quantity)

    subtotal = sum((item.subtotal for item in items), ZERO)
    tax = money(subtotal * Decimal(str(tax_rate)))
    shipping = money(shipping_amount)
    # Discounts apply to goods only
    discount = min(max(money(discount_amount), ZERO), subtotal)

    weights = [item.subtotal for item in items]
    for item, item_tax, item_discount in zip(items, apportion(tax, weights), apportion(discount, weights)):
        item.tax_amount = item_tax
        item.discount_amount = item_discount
        item.total = item.subtotal + item_tax - item_discount

    return OrderTotals(
        subtotal=subtotal,
        tax_amount=tax,
        shipping_amount=shipping,
        discount_amount=discount,
        total_amount=subtotal + tax + shipping - discount,
    )


def apply_totals(order: Order, totals: OrderTotals) -> None:
    order.subtotal = totals.subtotal
    order.tax_amount = totals.tax_amount
    order.shipping_amount = totals.shipping_amount
    order.discount_amount = totals.discount_amount
    order.total_amount = totals.total_amount
