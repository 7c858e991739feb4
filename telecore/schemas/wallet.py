"""
Wallet Pydantic schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from telecore.database.models.wallet import TransactionType


class CreditRequest(BaseModel):
    amount: Union[Decimal, str] = Field(..., description="Positive top-up amount")
    description: str = Field("Top-up", max_length=500)


class ThresholdRequest(BaseModel):
    threshold: Union[Decimal, str] = Field(..., description="Low-balance threshold")


class WalletTransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    sequence: int
    transaction_type: TransactionType
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    description: str
    created_at: datetime


class WalletEntryResponse(BaseModel):
    transaction: WalletTransactionResponse
    new_balance: Decimal


class BalanceResponse(BaseModel):
    user_id: UUID
    balance: Decimal
    threshold: Decimal
    is_low: bool

