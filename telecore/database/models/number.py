"""
Phone number and disconnection request models.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from telecore.database.base import BaseModel, enum_type


class NumberStatus(str, Enum):
    """Service status of an allocated number."""

    ACTIVE = "Active"
    INACTIVE = "Inactive"
    DISCONNECTED = "Disconnected"


class DisconnectionStatus(str, Enum):
    """
    Disconnection progress recorded on the number itself.

    ``COMPLETED`` is set together with the number becoming
    ``Disconnected`` when a request is approved.
    """

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    COMPLETED = "Completed"


class RequestStatus(str, Enum):
    """Status of a disconnection request."""

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class PhoneNumber(BaseModel):
    """
    Concrete phone number allocated against an order.

    ``customer_id`` stays NULL until the owning order is delivered.
    """

    __tablename__ = "phone_numbers"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        index=True,
        comment="Owner, set when the order is delivered",
    )
    country_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("countries.id", ondelete="RESTRICT"),
        nullable=False,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
    )
    area_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    number: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        unique=True,
        comment="Phone number in the provider's format",
    )
    status: Mapped[NumberStatus] = mapped_column(
        enum_type(NumberStatus, "number_status"),
        nullable=False,
        default=NumberStatus.ACTIVE,
        index=True,
    )
    disconnection_status: Mapped[Optional[DisconnectionStatus]] = mapped_column(
        enum_type(DisconnectionStatus, "disconnection_status"),
        nullable=True,
    )


class DisconnectionRequest(BaseModel):
    """
    Customer request to disconnect one of their numbers.

    The partial unique index allows at most one pending request per number.
    """

    __tablename__ = "disconnection_requests"

    number_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("phone_numbers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False, index=True
    )
    status: Mapped[RequestStatus] = mapped_column(
        enum_type(RequestStatus, "disconnection_request_status"),
        nullable=False,
        default=RequestStatus.PENDING,
        index=True,
    )
    notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(
        String(500), nullable=True
    )
    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    decided_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    decided_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), nullable=True
    )

    __table_args__ = (
        Index(
            "uq_disconnection_requests_pending_number",
            "number_id",
            unique=True,
            postgresql_where=text("status = 'Pending'"),
            sqlite_where=text("status = 'Pending'"),
        ),
    )
