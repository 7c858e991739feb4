"""
Number allocation against paid orders.

Staff allocate concrete numbers while an order is ``Amount Paid``. The
numbers stay unowned until the order is delivered; after delivery they
can only leave service through the disconnection workflow.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from telecore.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    TelecoreError,
    ValidationError,
)
from telecore.core.locks import KeyLockManager, get_lock_manager, order_key
from telecore.core.logging import get_logger
from telecore.database.models.number import NumberStatus, PhoneNumber
from telecore.database.models.order import Order
from telecore.services.orders.enums import OrderStatus
from telecore.services.orders.repository import OrderRepository

logger = get_logger(__name__)


class NumberAllocationService:
    """Allocate, release and list phone numbers."""

    def __init__(self, session: AsyncSession, locks: Optional[KeyLockManager] = None):
        self.session = session
        self.locks = locks or get_lock_manager()
        self.repository = OrderRepository(session)

    def _require_paid(self, order: Order, operation: str) -> None:
        if order.status != OrderStatus.AMOUNT_PAID:
            logger.warning(
                "Rejected number operation",
                operation=operation,
                order_id=str(order.id),
                status=order.status.value,
            )
            raise InvalidTransitionError(
                f"Numbers can only be {operation} while the order is "
                f"{OrderStatus.AMOUNT_PAID.value}",
                order_id=order.id,
                current_status=order.status.value,
            )

    async def allocate(self, order_id: uuid.UUID, number: str) -> PhoneNumber:
        """
        Allocate a number to a paid order.

        Args:
            order_id: Order in ``Amount Paid``
            number: Phone number string

        Returns:
            The new ``Active`` number without an owner

        Raises:
            ValidationError: If the number is empty or the order already
                has ``quantity`` numbers
            ConflictError: If the number is already allocated
            InvalidTransitionError: If the order is not Amount Paid
        """
        value = (number or "").strip()
        if not value:
            raise ValidationError("Number must not be empty", order_id=order_id)

        async with self.locks.hold(order_key(order_id)):
            try:
                order = await self.repository.require_order(order_id, for_update=True)
                self._require_paid(order, "allocated")

                allocated = await self.repository.count_numbers(order_id)
                if allocated >= order.quantity:
                    raise ValidationError(
                        f"Order already has {allocated} of {order.quantity} numbers",
                        order_id=order_id,
                        quantity=order.quantity,
                    )

                existing = await self.session.execute(
                    select(PhoneNumber.id).where(PhoneNumber.number == value)
                )
                if existing.scalar_one_or_none() is not None:
                    raise ConflictError(
                        f"Number {value} is already allocated", number=value
                    )

                phone_number = PhoneNumber(
                    order_id=order.id,
                    country_id=order.country_id,
                    product_id=order.product_id,
                    area_code=order.area_code,
                    number=value,
                    status=NumberStatus.ACTIVE,
                )
                self.session.add(phone_number)
                await self.session.flush()
                await self.session.commit()
            except TelecoreError:
                await self.session.rollback()
                raise
            except IntegrityError as e:
                await self.session.rollback()
                raise ConflictError(
                    f"Number {value} is already allocated", number=value
                ) from e
            except SQLAlchemyError as e:
                await self.session.rollback()
                logger.error("Number allocation failed", order_id=str(order_id), error=str(e))
                raise

        logger.info(
            "Number allocated",
            order_id=str(order_id),
            number_id=str(phone_number.id),
            number=value,
        )
        return phone_number

    async def release(self, number_id: uuid.UUID) -> None:
        """
        Remove an allocated number before delivery.

        Raises:
            NotFoundError: If the number does not exist
            InvalidTransitionError: If the owning order is not Amount Paid
        """
        phone_number = await self.session.get(PhoneNumber, number_id)
        if phone_number is None:
            raise NotFoundError("PhoneNumber", number_id)
        order_id = phone_number.order_id

        async with self.locks.hold(order_key(order_id)):
            try:
                order = await self.repository.require_order(order_id, for_update=True)
                self._require_paid(order, "released")
                result = await self.session.execute(
                    delete(PhoneNumber)
                    .where(PhoneNumber.id == number_id)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise NotFoundError("PhoneNumber", number_id)
                await self.session.commit()
            except TelecoreError:
                await self.session.rollback()
                raise
            except SQLAlchemyError as e:
                await self.session.rollback()
                logger.error("Number release failed", number_id=str(number_id), error=str(e))
                raise

        self.session.expunge(phone_number)
        logger.info("Number released", order_id=str(order_id), number_id=str(number_id))

    async def get(self, number_id: uuid.UUID) -> PhoneNumber:
        phone_number = await self.session.get(PhoneNumber, number_id)
        if phone_number is None:
            raise NotFoundError("PhoneNumber", number_id)
        return phone_number

    async def list_for_order(self, order_id: uuid.UUID) -> Sequence[PhoneNumber]:
        """Numbers allocated against an order."""
        await self.repository.require_order(order_id)
        result = await self.session.execute(
            select(PhoneNumber)
            .where(PhoneNumber.order_id == order_id)
            .order_by(PhoneNumber.number)
        )
        return result.scalars().all()

    async def list_for_customer(
        self, customer_id: uuid.UUID, status: Optional[NumberStatus] = None
    ) -> Sequence[PhoneNumber]:
        """Numbers owned by a customer (delivered orders only)."""
        stmt = select(PhoneNumber).where(PhoneNumber.customer_id == customer_id)
        if status is not None:
            stmt = stmt.where(PhoneNumber.status == status)
        result = await self.session.execute(stmt.order_by(PhoneNumber.number))
        return result.scalars().all()
