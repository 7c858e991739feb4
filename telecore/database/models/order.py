"""
Order, order status history and order pricing snapshot models.

An order is one cart line item: a quantity of numbers of one product in
one country. Orders are never deleted; cancellation is a terminal status.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from telecore.database.base import BaseModel, enum_type
from telecore.database.models.catalog import RateColumnsMixin
from telecore.services.orders.enums import OrderStatus


class PricingType(str, Enum):
    """
    Kind of pricing snapshot attached to an order.

    Attributes:
        CURRENT: Vendor-facing pricing, locked in at confirm
        DESIRED: Customer quote, editable while the order is in progress
    """

    CURRENT = "current"
    DESIRED = "desired"


class Order(BaseModel):
    """
    Customer order for a quantity of numbers.

    Attributes:
        order_number: Human-readable order number (ORD-YYYYMMDD-XXXXXX)
        customer_id: Ordering customer
        vendor_id: Optional vendor fulfilling the order
        product_id: Ordered product
        country_id: Country of the numbers
        area_code: Optional area code narrowing the pricing plan
        quantity: Number of phone numbers ordered
        status: Lifecycle status
        total_amount: Zero until confirm, then fixed
        documents: Opaque attachment metadata
        notes: Free text notes
        confirmed_at/paid_at/delivered_at/cancelled_at: Transition timestamps
    """

    __tablename__ = "orders"

    order_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        index=True,
        comment="Human-readable order number",
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
        comment="Customer who placed the order",
    )
    vendor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        comment="Vendor fulfilling the order",
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
    )
    country_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("countries.id", ondelete="RESTRICT"),
        nullable=False,
    )
    area_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    status: Mapped[OrderStatus] = mapped_column(
        enum_type(OrderStatus, "order_status"),
        nullable=False,
        default=OrderStatus.IN_PROGRESS,
        index=True,
        comment="Current order status",
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=4),
        nullable=False,
        default=Decimal("0"),
        comment="Order total, computed once at confirm",
    )

    documents: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="Attachment metadata",
    )
    notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    confirmed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    delivered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_orders_customer_status", "customer_id", "status"),
        CheckConstraint("quantity >= 1", name="ck_orders_quantity_positive"),
        CheckConstraint(
            "total_amount >= 0", name="ck_orders_total_amount_non_negative"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, order_number={self.order_number}, "
            f"status={self.status.value if self.status else None}, "
            f"total_amount={self.total_amount})>"
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal()


class OrderStatusHistory(BaseModel):
    """
    Audit trail row written for every applied order transition.

    ``from_status`` is NULL for the creation row.
    """

    __tablename__ = "order_status_history"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_status: Mapped[Optional[OrderStatus]] = mapped_column(
        enum_type(OrderStatus, "order_status"),
        nullable=True,
        comment="Previous status",
    )
    to_status: Mapped[OrderStatus] = mapped_column(
        enum_type(OrderStatus, "order_status"),
        nullable=False,
        comment="New status",
    )
    changed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), nullable=True, comment="Staff member or system actor"
    )
    reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    sequence: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Order-local ordering"
    )


class OrderPricing(RateColumnsMixin, BaseModel):
    """
    Pricing snapshot attached to an order.

    At most one row per ``(order_id, pricing_type)``. Rate columns outside
    the product's relevant field set are always NULL.
    """

    __tablename__ = "order_pricing"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    pricing_type: Mapped[PricingType] = mapped_column(
        enum_type(PricingType, "pricing_type"),
        nullable=False,
    )
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint(
            "order_id", "pricing_type", name="uq_order_pricing_order_type"
        ),
    )
