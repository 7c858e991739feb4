"""
Order lifecycle service.

Creates orders, locks in pricing at confirm and drives the order through
``In Progress -> Confirmed -> Amount Paid -> Delivered`` (or
``Cancelled``). Every mutating operation holds the ``order:<id>`` lock,
re-reads the order inside it, applies a compare-and-set transition and
commits exactly once.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from telecore.core.exceptions import (
    ConflictError,
    PricingPlanNotFoundError,
    PricingUnavailableError,
    TelecoreError,
    ValidationError,
)
from telecore.core.locks import KeyLockManager, get_lock_manager, order_key, wallet_key
from telecore.core.logging import get_logger, log_performance
from telecore.database.models.order import Order, OrderStatusHistory, PricingType
from telecore.database.models.wallet import TransactionType
from telecore.services.orders.enums import OrderStatus
from telecore.services.orders.repository import OrderRepository
from telecore.services.orders.state_machine import OrderStateMachine
from telecore.services.pricing.catalog import PricingCatalog
from telecore.services.pricing.fields import (
    extract_rates,
    extract_terms,
    relevant_fields,
    sum_rates,
)
from telecore.services.pricing.snapshot import OrderPricingService, Snapshot
from telecore.services.wallet.ledger import WalletLedger

logger = get_logger(__name__)

TOTAL_QUANTUM = Decimal("0.0001")


class PricingState(str, Enum):
    """
    Outcome of the optional desired-pricing write after order creation.

    Attributes:
        RECORDED: Desired pricing was stored
        ABSENT: No desired pricing was supplied
        FAILED: Desired pricing was supplied but could not be stored; the
            order exists without it
    """

    RECORDED = "recorded"
    ABSENT = "absent"
    FAILED = "failed"


@dataclass(frozen=True)
class OrderCreation:
    """Result of ``OrderLifecycleService.create``."""

    order: Order
    pricing_state: PricingState
    desired_pricing: Optional[Snapshot] = None
    pricing_error: Optional[str] = None


class OrderLifecycleService:
    """
    Order lifecycle orchestration.

    Attributes:
        repository: Order data access
        state_machine: Transition validation and application
        catalog: Base pricing plan lookups
        pricing: Order pricing snapshots
        wallet: Wallet ledger used by ``pay_from_wallet``
    """

    def __init__(
        self,
        session: AsyncSession,
        locks: Optional[KeyLockManager] = None,
        catalog: Optional[PricingCatalog] = None,
        wallet: Optional[WalletLedger] = None,
    ):
        self.session = session
        self.locks = locks or get_lock_manager()
        self.repository = OrderRepository(session)
        self.state_machine = OrderStateMachine(self.repository)
        self.catalog = catalog or PricingCatalog(session)
        self.pricing = OrderPricingService(session, locks=self.locks)
        self.wallet = wallet or WalletLedger(session, locks=self.locks)

    @staticmethod
    def _generate_order_number() -> str:
        """
        Generate unique human-readable order number.

        Returns:
            Order number like ``ORD-20240115-A1B2C3``
        """
        date_part = datetime.now(timezone.utc).strftime("%Y%m%d")
        random_part = uuid.uuid4().hex[:6].upper()
        return f"ORD-{date_part}-{random_part}"

    async def _rollback_and_raise(self, error: Exception, order_id: Any, operation: str) -> None:
        await self.session.rollback()
        if isinstance(error, TelecoreError):
            raise error
        if isinstance(error, IntegrityError):
            raise ConflictError(
                f"Concurrent update while trying to {operation}",
                order_id=order_id,
            ) from error
        logger.error(
            "Order operation failed",
            operation=operation,
            order_id=str(order_id) if order_id else None,
            error=str(error),
            error_type=type(error).__name__,
        )
        raise error

    async def create(
        self,
        customer_id: uuid.UUID,
        product_id: uuid.UUID,
        country_id: uuid.UUID,
        area_code: Optional[str] = None,
        quantity: int = 1,
        vendor_id: Optional[uuid.UUID] = None,
        documents: Sequence[Mapping[str, Any]] = (),
        notes: Optional[str] = None,
        desired_pricing: Optional[Mapping[str, Any]] = None,
        changed_by: Optional[uuid.UUID] = None,
    ) -> OrderCreation:
        """
        Create an order from a cart item.

        Phase 1 commits the order in ``In Progress`` with a zero total.
        Phase 2, run only when ``desired_pricing`` is given, stores the
        customer quote in its own commit. A phase 2 failure is logged and
        reported through ``pricing_state``; it never removes the order.

        Args:
            customer_id: Ordering customer
            product_id: Product being ordered
            country_id: Country of the numbers
            area_code: Optional area code
            quantity: Number count, at least 1
            vendor_id: Optional vendor
            documents: Attachment metadata
            notes: Free text notes
            desired_pricing: Optional raw desired pricing field map
            changed_by: Actor recorded in history

        Returns:
            OrderCreation with the committed order and the pricing outcome

        Raises:
            ValidationError: If quantity is below 1
            NotFoundError: If the product or country does not exist
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("Quantity must be at least 1", quantity=quantity)

        try:
            await self.catalog.get_product(product_id)
            await self.catalog.get_country(country_id)

            order = Order(
                order_number=self._generate_order_number(),
                customer_id=customer_id,
                vendor_id=vendor_id,
                product_id=product_id,
                country_id=country_id,
                area_code=(area_code or "").strip() or None,
                quantity=quantity,
                status=OrderStatus.IN_PROGRESS,
                total_amount=Decimal("0"),
                documents=[dict(document) for document in documents],
                notes=notes,
            )
            self.session.add(order)
            await self.session.flush()
            await self.repository.add_history(
                order.id, None, OrderStatus.IN_PROGRESS, changed_by=changed_by
            )
            await self.session.commit()
        except (TelecoreError, SQLAlchemyError) as e:
            await self._rollback_and_raise(e, None, "create order")

        logger.info(
            "Order created",
            order_id=str(order.id),
            order_number=order.order_number,
            customer_id=str(customer_id),
            quantity=quantity,
        )

        if not desired_pricing:
            return OrderCreation(order=order, pricing_state=PricingState.ABSENT)

        try:
            snapshot = await self.pricing.upsert(
                order.id, PricingType.DESIRED, desired_pricing, changed_by=changed_by
            )
        except (TelecoreError, SQLAlchemyError) as e:
            logger.warning(
                "Desired pricing not saved; order kept without it",
                order_id=str(order.id),
                error=str(e),
                error_type=type(e).__name__,
            )
            return OrderCreation(
                order=order,
                pricing_state=PricingState.FAILED,
                pricing_error=str(e),
            )

        return OrderCreation(
            order=order,
            pricing_state=PricingState.RECORDED,
            desired_pricing=snapshot,
        )

    async def confirm(
        self,
        order_id: uuid.UUID,
        current_override: Optional[Mapping[str, Any]] = None,
        changed_by: Optional[uuid.UUID] = None,
    ) -> Order:
        """
        Confirm an order, locking in current pricing and the total.

        Current pricing merges, later sources winning per field: catalog
        plan rates, desired pricing, the staged ``current`` snapshot, then
        ``current_override``. Only fields relevant to the product are kept.
        ``total_amount`` is the sum of the merged rates times quantity.

        Raises:
            NotFoundError: If the order does not exist
            InvalidTransitionError: If the order is not In Progress
            PricingUnavailableError: If there is neither a catalog plan nor
                a current override
        """
        async with self.locks.hold(order_key(order_id)):
            try:
                with log_performance(logger, "order_confirm", order_id=str(order_id)):
                    order = await self.repository.require_order(order_id, for_update=True)
                    self.state_machine.validate_transition(order, OrderStatus.CONFIRMED)

                    product_code = await self.pricing.product_code(order)
                    fields = relevant_fields(product_code)
                    rows = await self.pricing.get(order_id)

                    rates: dict[str, Decimal] = {}
                    terms: dict[str, str] = {}
                    has_override = False

                    try:
                        plan = await self.catalog.resolve(
                            order.product_id, order.country_id, order.area_code
                        )
                        rates.update(
                            {k: v for k, v in plan.rates.items() if k in fields}
                        )
                        terms.update(plan.terms)
                    except PricingPlanNotFoundError:
                        plan = None

                    if rows.desired is not None:
                        rates.update(rows.desired.rates)
                        terms.update(rows.desired.terms)
                    if rows.current is not None:
                        has_override = True
                        rates.update(rows.current.rates)
                        terms.update(rows.current.terms)
                    if current_override:
                        has_override = True
                        rates.update(extract_rates(product_code, current_override))
                        terms.update(extract_terms(current_override))

                    if plan is None and not has_override:
                        logger.warning(
                            "Confirm rejected, no pricing available",
                            order_id=str(order_id),
                        )
                        raise PricingUnavailableError(
                            "No catalog plan or current pricing override for order",
                            order_id=order_id,
                            product_id=order.product_id,
                            country_id=order.country_id,
                            area_code=order.area_code,
                        )

                    total = (sum_rates(rates) * order.quantity).quantize(TOTAL_QUANTUM)

                    await self.pricing.write_snapshot(
                        order, PricingType.CURRENT, rates, terms, changed_by=changed_by
                    )
                    await self.state_machine.apply_transition(
                        order,
                        OrderStatus.CONFIRMED,
                        changed_by=changed_by,
                        values={"total_amount": total},
                    )
                    await self.session.commit()
            except (TelecoreError, SQLAlchemyError) as e:
                await self._rollback_and_raise(e, order_id, "confirm order")

        logger.info(
            "Order confirmed",
            order_id=str(order_id),
            total_amount=str(order.total_amount),
            rate_fields=sorted(rates),
            catalog_plan_id=str(plan.plan_id) if plan else None,
        )
        return order

    async def _transition(
        self,
        order_id: uuid.UUID,
        target: OrderStatus,
        changed_by: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
    ) -> Order:
        async with self.locks.hold(order_key(order_id)):
            try:
                order = await self.repository.require_order(order_id, for_update=True)
                await self.state_machine.apply_transition(
                    order, target, changed_by=changed_by, reason=reason
                )
                await self.session.commit()
            except (TelecoreError, SQLAlchemyError) as e:
                await self._rollback_and_raise(e, order_id, f"move order to {target.value}")
        return order

    async def mark_paid(
        self, order_id: uuid.UUID, changed_by: Optional[uuid.UUID] = None
    ) -> Order:
        """
        Record an out-of-band payment: ``Confirmed -> Amount Paid``.

        Raises:
            InvalidTransitionError: If the order is not Confirmed
        """
        return await self._transition(
            order_id, OrderStatus.AMOUNT_PAID, changed_by=changed_by, reason="Payment received"
        )

    async def pay_from_wallet(
        self, order_id: uuid.UUID, changed_by: Optional[uuid.UUID] = None
    ) -> Order:
        """
        Pay a confirmed order from the customer's wallet.

        The debit and the status change are committed together. Locks are
        taken order first, then wallet.

        Raises:
            InvalidTransitionError: If the order is not Confirmed
            InsufficientBalanceError: If the wallet cannot cover the total
        """
        async with self.locks.hold(order_key(order_id)):
            try:
                order = await self.repository.require_order(order_id, for_update=True)
                self.state_machine.validate_transition(order, OrderStatus.AMOUNT_PAID)

                async with self.locks.hold(wallet_key(order.customer_id)):
                    total = Decimal(order.total_amount)
                    if total > 0:
                        await self.wallet.append(
                            order.customer_id,
                            TransactionType.DEBIT,
                            total,
                            description=f"Payment for order {order.order_number}",
                        )
                    await self.state_machine.apply_transition(
                        order,
                        OrderStatus.AMOUNT_PAID,
                        changed_by=changed_by,
                        reason="Paid from wallet",
                    )
                    await self.session.commit()
            except (TelecoreError, SQLAlchemyError) as e:
                await self._rollback_and_raise(e, order_id, "pay order from wallet")

        logger.info(
            "Order paid from wallet",
            order_id=str(order_id),
            customer_id=str(order.customer_id),
            amount=str(order.total_amount),
        )
        return order

    async def mark_delivered(
        self,
        order_id: uuid.UUID,
        override: bool = False,
        changed_by: Optional[uuid.UUID] = None,
    ) -> Order:
        """
        Deliver an order and hand its numbers to the customer.

        Args:
            order_id: Order identifier
            override: Deliver even with fewer numbers than ``quantity``
            changed_by: Actor recorded in history

        Raises:
            InvalidTransitionError: If the order is not Amount Paid or too
                few numbers are allocated without override
        """
        async with self.locks.hold(order_key(order_id)):
            try:
                order = await self.repository.require_order(order_id, for_update=True)
                allocated = await self.repository.count_numbers(order_id)
                await self.state_machine.apply_transition(
                    order,
                    OrderStatus.DELIVERED,
                    changed_by=changed_by,
                    reason="Delivered with staff override" if override else None,
                    context={"allocated_count": allocated, "override": override},
                )
                await self.repository.assign_numbers_to_customer(order_id, order.customer_id)
                await self.session.commit()
            except (TelecoreError, SQLAlchemyError) as e:
                await self._rollback_and_raise(e, order_id, "deliver order")

        logger.info(
            "Order delivered",
            order_id=str(order_id),
            numbers_assigned=allocated,
            override=override,
        )
        return order

    async def cancel(
        self,
        order_id: uuid.UUID,
        reason: Optional[str] = None,
        changed_by: Optional[uuid.UUID] = None,
    ) -> Order:
        """
        Cancel an order from ``In Progress`` or ``Confirmed``.

        Raises:
            InvalidTransitionError: If the order is past Confirmed
        """
        return await self._transition(
            order_id, OrderStatus.CANCELLED, changed_by=changed_by, reason=reason
        )

    async def get(self, order_id: uuid.UUID) -> Order:
        """
        Raises:
            NotFoundError: If the order does not exist
        """
        return await self.repository.require_order(order_id)

    async def list(
        self,
        customer_id: Optional[uuid.UUID] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[Order]:
        return await self.repository.list_orders(
            customer_id=customer_id, status=status, limit=limit, offset=offset
        )

    async def history(self, order_id: uuid.UUID) -> Sequence[OrderStatusHistory]:
        """Status history of an order, oldest first."""
        await self.repository.require_order(order_id)
        return await self.repository.get_history(order_id)
