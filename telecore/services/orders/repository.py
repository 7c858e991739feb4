"""
Order data access repository.

Reads orders (optionally locking the row), applies compare-and-set status
updates and records status history. The repository never commits; the
calling service owns the unit of work.
"""

import uuid
from typing import Any, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from telecore.core.exceptions import NotFoundError
from telecore.core.logging import get_logger
from telecore.database.models.number import PhoneNumber
from telecore.database.models.order import Order, OrderStatusHistory
from telecore.services.orders.enums import OrderStatus

logger = get_logger(__name__)


class OrderRepository:
    """
    Repository for order data access operations.

    Attributes:
        session: Async database session shared with the calling service
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_order_by_id(
        self, order_id: uuid.UUID, for_update: bool = False
    ) -> Optional[Order]:
        """
        Get order by ID.

        Args:
            order_id: Order identifier
            for_update: Lock the row and overwrite any stale in-session copy

        Returns:
            Order if found, None otherwise
        """
        stmt = select(Order).where(Order.id == order_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def require_order(
        self, order_id: uuid.UUID, for_update: bool = False
    ) -> Order:
        """
        Get order by ID or raise.

        Raises:
            NotFoundError: If the order does not exist
        """
        order = await self.get_order_by_id(order_id, for_update=for_update)
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    async def list_orders(
        self,
        customer_id: Optional[uuid.UUID] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[Order]:
        """List orders newest first with optional filters."""
        stmt = select(Order)
        if customer_id is not None:
            stmt = stmt.where(Order.customer_id == customer_id)
        if status is not None:
            stmt = stmt.where(Order.status == status)
        stmt = stmt.order_by(Order.created_at.desc(), Order.order_number.desc())
        stmt = stmt.limit(limit).offset(offset)

        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def compare_and_set_status(
        self,
        order: Order,
        expected: OrderStatus,
        new_status: OrderStatus,
        **values: Any,
    ) -> bool:
        """
        Move an order from ``expected`` to ``new_status`` in one statement.

        The update only matches while the stored status still equals
        ``expected``. On success the in-session order is refreshed.

        Args:
            order: Order being transitioned
            expected: Status the caller validated against
            new_status: Target status
            **values: Extra columns to write with the status

        Returns:
            True if this call applied the transition
        """
        stmt = (
            update(Order)
            .where(Order.id == order.id, Order.status == expected)
            .values(status=new_status, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            logger.warning(
                "Order status changed concurrently",
                order_id=str(order.id),
                expected_status=expected.value,
                target_status=new_status.value,
            )
            return False

        await self.session.refresh(order)
        return True

    async def add_history(
        self,
        order_id: uuid.UUID,
        from_status: Optional[OrderStatus],
        to_status: OrderStatus,
        changed_by: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
    ) -> OrderStatusHistory:
        """Append a status history row for an order."""
        count_stmt = select(func.count(OrderStatusHistory.id)).where(
            OrderStatusHistory.order_id == order_id
        )
        sequence = (await self.session.execute(count_stmt)).scalar_one() + 1

        entry = OrderStatusHistory(
            order_id=order_id,
            from_status=from_status,
            to_status=to_status,
            changed_by=changed_by,
            reason=reason,
            sequence=sequence,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def get_history(self, order_id: uuid.UUID) -> Sequence[OrderStatusHistory]:
        """Get status history oldest first."""
        stmt = (
            select(OrderStatusHistory)
            .where(OrderStatusHistory.order_id == order_id)
            .order_by(OrderStatusHistory.sequence)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count_numbers(self, order_id: uuid.UUID) -> int:
        """Count numbers allocated against an order."""
        stmt = select(func.count(PhoneNumber.id)).where(PhoneNumber.order_id == order_id)
        return (await self.session.execute(stmt)).scalar_one()

    async def assign_numbers_to_customer(
        self, order_id: uuid.UUID, customer_id: uuid.UUID
    ) -> int:
        """Set the owner of every number allocated against an order."""
        stmt = (
            update(PhoneNumber)
            .where(PhoneNumber.order_id == order_id)
            .values(customer_id=customer_id)
        )
        result = await self.session.execute(stmt)
        return result.rowcount
