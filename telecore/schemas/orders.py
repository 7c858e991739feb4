"""
Order Pydantic schemas for API request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from telecore.services.orders.enums import OrderStatus
from telecore.services.orders.service import PricingState
from telecore.schemas.pricing import SnapshotResponse


class OrderCreateRequest(BaseModel):
    """Cart line item submitted as an order."""

    model_config = ConfigDict(str_strip_whitespace=True)

    customer_id: UUID = Field(..., description="Ordering customer")
    product_id: UUID = Field(..., description="Product being ordered")
    country_id: UUID = Field(..., description="Country of the numbers")
    area_code: Optional[str] = Field(None, max_length=20)
    quantity: int = Field(1, ge=1, le=10000, description="Number of phone numbers")
    vendor_id: Optional[UUID] = None
    documents: list[dict[str, Any]] = Field(
        default_factory=list, description="Attachment metadata"
    )
    notes: Optional[str] = Field(None, max_length=1000)
    desired_pricing: Optional[dict[str, Any]] = Field(
        None,
        description="Customer quote; values may be currency strings like '$5.00'",
    )


class ConfirmRequest(BaseModel):
    current_override: Optional[dict[str, Any]] = Field(
        None, description="Staff override merged over catalog and desired pricing"
    )
    changed_by: Optional[UUID] = None


class StatusChangeRequest(BaseModel):
    changed_by: Optional[UUID] = None


class DeliverRequest(BaseModel):
    override: bool = Field(
        False, description="Deliver with fewer numbers than the ordered quantity"
    )
    changed_by: Optional[UUID] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)
    changed_by: Optional[UUID] = None


class OrderResponse(BaseModel):
    """Order details."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_number: str
    customer_id: UUID
    vendor_id: Optional[UUID]
    product_id: UUID
    country_id: UUID
    area_code: Optional[str]
    quantity: int
    status: OrderStatus
    total_amount: Decimal
    documents: list[dict[str, Any]]
    notes: Optional[str]
    confirmed_at: Optional[datetime]
    paid_at: Optional[datetime]
    delivered_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class OrderCreateResponse(BaseModel):
    """Created order plus the outcome of the desired pricing write."""

    order: OrderResponse
    pricing_state: PricingState
    desired_pricing: Optional[SnapshotResponse] = None
    pricing_error: Optional[str] = None


class OrderStatusHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    from_status: Optional[OrderStatus]
    to_status: OrderStatus
    changed_by: Optional[UUID]
    reason: Optional[str]
    created_at: datetime
