"""
Pricing Pydantic schemas: catalog plans and order pricing snapshots.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from telecore.database.models.order import PricingType


class CatalogPlanResponse(BaseModel):
    """Resolved catalog plan; only populated rate fields are listed."""

    model_config = ConfigDict(from_attributes=True)

    plan_id: UUID
    product_id: UUID
    country_id: UUID
    area_code: Optional[str]
    effective_from: date
    rates: dict[str, Decimal]
    terms: dict[str, str]


class SnapshotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_id: UUID
    pricing_type: PricingType
    rates: dict[str, Decimal]
    terms: dict[str, str]
    updated_at: Optional[datetime]


class PricingViewResponse(BaseModel):
    """Both snapshots of an order; ``null`` means pricing is absent."""

    model_config = ConfigDict(from_attributes=True)

    current: Optional[SnapshotResponse] = None
    desired: Optional[SnapshotResponse] = None


class SnapshotUpsertRequest(BaseModel):
    fields: dict[str, Any] = Field(
        ..., description="Raw rate and term fields; irrelevant fields are dropped"
    )
    changed_by: Optional[UUID] = None
