"""Order state machine with transition validation, guards and side effects.

Transitions are validated against ``ORDER_STATUS_TRANSITIONS``, then
checked by optional guards, then applied with a compare-and-set update so
a caller racing on a stale read loses with ``InvalidTransitionError``.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from telecore.core.exceptions import InvalidTransitionError
from telecore.core.logging import get_logger
from telecore.database.models.order import Order
from telecore.services.orders.enums import (
    OrderStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)
from telecore.services.orders.repository import OrderRepository

logger = get_logger(__name__)

Guard = Callable[[Order, Dict[str, Any]], Optional[str]]


class OrderStateMachine:
    """State machine for order lifecycle transitions.

    Guards receive the order and a context dict supplied by the caller and
    return a failure reason, or None when the transition may proceed.
    Side effects return extra column values written with the status.
    """

    def __init__(self, repository: OrderRepository):
        self.repository = repository
        self._transition_guards: Dict[tuple[OrderStatus, OrderStatus], Guard] = {
            (OrderStatus.AMOUNT_PAID, OrderStatus.DELIVERED): self._guard_numbers_allocated,
        }
        self._side_effects: Dict[OrderStatus, Callable[[], Dict[str, Any]]] = {
            OrderStatus.CONFIRMED: lambda: {"confirmed_at": _now()},
            OrderStatus.AMOUNT_PAID: lambda: {"paid_at": _now()},
            OrderStatus.DELIVERED: lambda: {"delivered_at": _now()},
            OrderStatus.CANCELLED: lambda: {"cancelled_at": _now()},
        }

    def validate_transition(
        self,
        order: Order,
        target_status: OrderStatus,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Validate that ``order`` may move to ``target_status``.

        Raises:
            InvalidTransitionError: If the transition is not allowed or a
                guard rejects it
        """
        current_status = order.status

        if not validate_order_status_transition(current_status, target_status):
            allowed = get_allowed_order_transitions(current_status)
            logger.warning(
                "Rejected order transition",
                order_id=str(order.id),
                transition=f"{current_status.value}->{target_status.value}",
            )
            raise InvalidTransitionError(
                f"Invalid transition from {current_status.value} to "
                f"{target_status.value}",
                order_id=order.id,
                current_status=current_status.value,
                target_status=target_status.value,
                allowed_transitions=sorted(s.value for s in allowed),
            )

        guard = self._transition_guards.get((current_status, target_status))
        if guard is not None:
            failure = guard(order, context or {})
            if failure is not None:
                logger.warning(
                    "Order transition guard failed",
                    order_id=str(order.id),
                    transition=f"{current_status.value}->{target_status.value}",
                    reason=failure,
                )
                raise InvalidTransitionError(
                    failure,
                    order_id=order.id,
                    current_status=current_status.value,
                    target_status=target_status.value,
                )

    async def apply_transition(
        self,
        order: Order,
        target_status: OrderStatus,
        changed_by: Optional[UUID] = None,
        reason: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        values: Optional[Dict[str, Any]] = None,
    ) -> Order:
        """Apply a transition without committing.

        Args:
            order: Order freshly read inside the caller's lock
            target_status: Status to move to
            changed_by: Actor recorded in history
            reason: Reason recorded in history
            context: Data consulted by guards
            values: Extra columns written in the same update

        Returns:
            The refreshed order

        Raises:
            InvalidTransitionError: If validation fails or another writer
                advanced the order first
        """
        self.validate_transition(order, target_status, context)

        old_status = order.status
        columns = dict(values or {})
        side_effect = self._side_effects.get(target_status)
        if side_effect is not None:
            columns.update(side_effect())

        applied = await self.repository.compare_and_set_status(
            order, old_status, target_status, **columns
        )
        if not applied:
            current = await self.repository.require_order(order.id, for_update=True)
            raise InvalidTransitionError(
                f"Order moved to {current.status.value} concurrently",
                order_id=order.id,
                current_status=current.status.value,
                target_status=target_status.value,
            )

        await self.repository.add_history(
            order.id, old_status, target_status, changed_by=changed_by, reason=reason
        )

        logger.info(
            "Order transition applied",
            order_id=str(order.id),
            transition=f"{old_status.value}->{target_status.value}",
            changed_by=str(changed_by) if changed_by else None,
        )
        return order

    # Transition Guards

    def _guard_numbers_allocated(
        self, order: Order, context: Dict[str, Any]
    ) -> Optional[str]:
        if context.get("override"):
            return None
        allocated = context.get("allocated_count", 0)
        if allocated < order.quantity:
            return (
                f"Only {allocated} of {order.quantity} numbers allocated; "
                "delivery requires a staff override"
            )
        return None


def _now() -> datetime:
    return datetime.now(timezone.utc)
