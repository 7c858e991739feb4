"""Order status enum and state machine transition rules.

The order lifecycle is strictly forward:

- IN_PROGRESS -> CONFIRMED, CANCELLED
- CONFIRMED -> AMOUNT_PAID, CANCELLED
- AMOUNT_PAID -> DELIVERED
- DELIVERED -> (terminal state)
- CANCELLED -> (terminal state)
"""

from enum import Enum
from typing import Dict, Set


class OrderStatus(str, Enum):
    """Order lifecycle status.

    Values match the labels shown to staff and stored in the database.
    """

    IN_PROGRESS = "In Progress"
    CONFIRMED = "Confirmed"
    AMOUNT_PAID = "Amount Paid"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert a label or member name to OrderStatus.

        Accepts both ``"Amount Paid"`` and ``"amount_paid"``.

        Raises:
            ValueError: If value is not a valid status
        """
        normalized = value.strip().replace("_", " ").lower()
        for status in cls:
            if status.value.lower() == normalized:
                return status
        valid_values = ", ".join(s.value for s in cls)
        raise ValueError(
            f"Invalid order status: {value}. Valid values are: {valid_values}"
        )

    def is_terminal(self) -> bool:
        """Check if status is a terminal state."""
        return self in {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

    def pricing_editable(self) -> bool:
        """Check if pricing snapshots may still be edited."""
        return self == OrderStatus.IN_PROGRESS


ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.IN_PROGRESS: {
        OrderStatus.CONFIRMED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.CONFIRMED: {
        OrderStatus.AMOUNT_PAID,
        OrderStatus.CANCELLED,
    },
    OrderStatus.AMOUNT_PAID: {
        OrderStatus.DELIVERED,
    },
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}


def validate_order_status_transition(current: OrderStatus, new: OrderStatus) -> bool:
    """Validate if order status transition is allowed.

    Args:
        current: Current order status
        new: Desired new status

    Returns:
        True if transition is valid
    """
    return new in ORDER_STATUS_TRANSITIONS.get(current, set())


def get_allowed_order_transitions(current: OrderStatus) -> Set[OrderStatus]:
    """Get all allowed transitions from current order status."""
    return ORDER_STATUS_TRANSITIONS.get(current, set()).copy()
