"""
Phone number and disconnection Pydantic schemas.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from telecore.database.models.number import (
    DisconnectionStatus,
    NumberStatus,
    RequestStatus,
)


class AllocateNumberRequest(BaseModel):
    number: str = Field(..., min_length=1, max_length=32)


class PhoneNumberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_id: UUID
    customer_id: Optional[UUID]
    country_id: UUID
    product_id: UUID
    area_code: Optional[str]
    number: str
    status: NumberStatus
    disconnection_status: Optional[DisconnectionStatus]
    created_at: datetime


class DisconnectionCreateRequest(BaseModel):
    number_id: UUID
    customer_id: UUID
    notes: Optional[str] = Field(None, max_length=1000)


class ApproveRequest(BaseModel):
    decided_by: Optional[UUID] = None
    notes: Optional[str] = Field(None, max_length=1000)


class RejectRequest(BaseModel):
    decided_by: Optional[UUID] = None
    reason: Optional[str] = Field(None, max_length=500)


class DisconnectionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    number_id: UUID
    customer_id: UUID
    status: RequestStatus
    notes: Optional[str]
    rejection_reason: Optional[str]
    requested_at: datetime
    decided_at: Optional[datetime]
    decided_by: Optional[UUID]
