"""Order and payment status values and the order status transition table."""

from enum import Enum
from typing import Dict, FrozenSet


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    ON_HOLD = "on_hold"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    RETURNED = "returned"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"


class PaymentRecordStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


# Single authoritative table. cancelled -> processing is the administrative
# reactivation path and re-reserves stock.
TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.ON_HOLD, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.ON_HOLD, OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.ON_HOLD: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.RETURNED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.RETURNED, OrderStatus.COMPLETED}),
    OrderStatus.RETURNED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset({OrderStatus.REFUNDED, OrderStatus.PROCESSING}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
    OrderStatus.PARTIALLY_REFUNDED: frozenset(),
}

# Entering these statuses puts the order's stock back on the shelf
RELEASING_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.RETURNED})

# Shipping consumed the reservation; stock returned from these goes straight to available
FULFILLED_STATUSES = frozenset({OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.COMPLETED})

REFUNDABLE_STATUSES = frozenset({
    OrderStatus.COMPLETED,
    OrderStatus.DELIVERED,
    OrderStatus.SHIPPED,
    OrderStatus.RETURNED,
})

MODIFIABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.ON_HOLD})

PAYABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.ON_HOLD})

# Statuses a customer may cancel their own order from
CUSTOMER_CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})


def allowed_transitions(current: OrderStatus) -> FrozenSet[OrderStatus]:
    return TRANSITIONS.get(OrderStatus(current), frozenset())


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return OrderStatus(target) in allowed_transitions(current)
