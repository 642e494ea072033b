from enum import Enum
from typing import Dict, FrozenSet

class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

# Forward path only. Every non-terminal state may also be cancelled.
TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# Customers may only withdraw an order the vendor has not accepted yet.
CUSTOMER_CANCELLABLE = frozenset({OrderStatus.PENDING})

def allowed_next(current: OrderStatus) -> FrozenSet[OrderStatus]:
    return TRANSITIONS[current]

def can_transition(current: OrderStatus, requested: OrderStatus) -> bool:
    return requested in TRANSITIONS[current]

def is_terminal(status: OrderStatus) -> bool:
    return not TRANSITIONS[status]

def forward_step(current: OrderStatus) -> OrderStatus | None:
    """The single non-cancelling next status, used for the vendor's primary action."""
    for status in TRANSITIONS[current]:
        if status is not OrderStatus.CANCELLED:
            return status
    return None
