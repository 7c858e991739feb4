"""
Order pricing snapshots.

Each order has up to two pricing rows: ``desired`` (the customer quote)
and ``current`` (vendor-facing pricing, staged by staff and locked in by
confirm). Rows only ever hold fields relevant to the order's product.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from telecore.core.exceptions import ConflictError, InvalidTransitionError, TelecoreError
from telecore.core.locks import KeyLockManager, get_lock_manager, order_key
from telecore.core.logging import get_logger
from telecore.database.models.catalog import Product
from telecore.database.models.order import Order, OrderPricing, PricingType
from telecore.services.orders.repository import OrderRepository
from telecore.services.pricing.fields import extract_rates, extract_terms

logger = get_logger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """Stored pricing for one order and pricing type."""

    order_id: uuid.UUID
    pricing_type: PricingType
    rates: dict[str, Decimal] = field(default_factory=dict)
    terms: dict[str, str] = field(default_factory=dict)
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, row: OrderPricing) -> "Snapshot":
        return cls(
            order_id=row.order_id,
            pricing_type=row.pricing_type,
            rates=row.populated_rates(),
            terms=row.populated_terms(),
            updated_at=row.updated_at,
        )


@dataclass(frozen=True)
class PricingView:
    """
    Both snapshots of an order. ``None`` means pricing is absent, which
    is distinct from a snapshot whose rates are all unset.
    """

    current: Optional[Snapshot] = None
    desired: Optional[Snapshot] = None


class OrderPricingService:
    """
    Upsert and fetch order pricing snapshots.

    Both snapshot types are editable only while the order is
    ``In Progress``; once confirmed, the ``current`` row is frozen.
    """

    def __init__(self, session: AsyncSession, locks: Optional[KeyLockManager] = None):
        self.session = session
        self.locks = locks or get_lock_manager()
        self.repository = OrderRepository(session)

    async def upsert(
        self,
        order_id: uuid.UUID,
        pricing_type: PricingType,
        fields: Mapping[str, Any],
        changed_by: Optional[uuid.UUID] = None,
    ) -> Snapshot:
        """
        Create or replace a pricing snapshot.

        The stored field set becomes exactly the relevant, populated fields
        of ``fields``; anything outside the product's set is dropped.

        Args:
            order_id: Owning order
            pricing_type: ``current`` or ``desired``
            fields: Raw field map, values may be currency strings
            changed_by: Staff member making the edit

        Returns:
            The stored snapshot

        Raises:
            NotFoundError: If the order does not exist
            InvalidTransitionError: If the order is no longer In Progress
            ValidationError: If a rate is negative
        """
        pricing_type = PricingType(pricing_type)

        async with self.locks.hold(order_key(order_id)):
            try:
                order = await self.repository.require_order(order_id, for_update=True)
                if not order.status.pricing_editable():
                    logger.warning(
                        "Rejected pricing edit",
                        order_id=str(order_id),
                        pricing_type=pricing_type.value,
                        status=order.status.value,
                    )
                    raise InvalidTransitionError(
                        f"{pricing_type.value} pricing cannot be edited once the "
                        f"order is {order.status.value}",
                        order_id=order_id,
                        pricing_type=pricing_type.value,
                        current_status=order.status.value,
                    )

                product_code = await self.product_code(order)
                row = await self.write_snapshot(
                    order,
                    pricing_type,
                    extract_rates(product_code, fields),
                    extract_terms(fields),
                    changed_by=changed_by,
                )
                await self.session.commit()

            except TelecoreError:
                await self.session.rollback()
                raise
            except IntegrityError as e:
                await self.session.rollback()
                raise ConflictError(
                    "Pricing snapshot was written concurrently",
                    order_id=order_id,
                    pricing_type=pricing_type.value,
                ) from e
            except SQLAlchemyError as e:
                await self.session.rollback()
                logger.error(
                    "Failed to store pricing snapshot",
                    order_id=str(order_id),
                    error=str(e),
                )
                raise

        logger.info(
            "Pricing snapshot stored",
            order_id=str(order_id),
            pricing_type=pricing_type.value,
            rate_fields=sorted(row.populated_rates()),
        )
        return Snapshot.from_model(row)

    async def get(self, order_id: uuid.UUID) -> PricingView:
        """
        Fetch both snapshots of an order.

        Raises:
            NotFoundError: If the order does not exist
        """
        await self.repository.require_order(order_id)
        rows = await self._load_rows(order_id)
        return PricingView(
            current=Snapshot.from_model(rows[PricingType.CURRENT])
            if PricingType.CURRENT in rows
            else None,
            desired=Snapshot.from_model(rows[PricingType.DESIRED])
            if PricingType.DESIRED in rows
            else None,
        )

    async def product_code(self, order: Order) -> str:
        product = await self.session.get(Product, order.product_id)
        return product.code

    async def write_snapshot(
        self,
        order: Order,
        pricing_type: PricingType,
        rates: dict[str, Decimal],
        terms: dict[str, str],
        changed_by: Optional[uuid.UUID] = None,
    ) -> OrderPricing:
        """
        Write a snapshot row inside the caller's unit of work.

        The caller must hold the order lock and commit.
        """
        rows = await self._load_rows(order.id, for_update=True)
        row = rows.get(pricing_type)
        if row is None:
            row = OrderPricing(order_id=order.id, pricing_type=pricing_type)
            self.session.add(row)
        row.assign_fields(rates, terms)
        row.updated_by = changed_by
        await self.session.flush()
        return row

    async def _load_rows(
        self, order_id: uuid.UUID, for_update: bool = False
    ) -> dict[PricingType, OrderPricing]:
        stmt = select(OrderPricing).where(OrderPricing.order_id == order_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return {row.pricing_type: row for row in result.scalars().all()}
