"""
Wallet ledger models.

Transactions are append-only. A user's balance is the ``balance_after``
of their highest-sequence transaction.
"""

import uuid
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from telecore.database.base import Base, BaseModel, TimestampMixin, enum_type


class TransactionType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class WalletTransaction(BaseModel):
    """
    One balance-affecting ledger entry.

    ``sequence`` is per user and strictly increasing; the unique
    constraint turns a lost append race into an integrity error.
    """

    __tablename__ = "wallet_transactions"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False, index=True
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(
        enum_type(TransactionType, "wallet_transaction_type"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=4), nullable=False
    )
    balance_before: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=4), nullable=False
    )
    balance_after: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=4), nullable=False
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    __table_args__ = (
        UniqueConstraint("user_id", "sequence", name="uq_wallet_transactions_user_seq"),
        CheckConstraint("amount > 0", name="ck_wallet_transactions_amount_positive"),
    )


class WalletSettings(Base, TimestampMixin):
    """Per-user wallet preferences."""

    __tablename__ = "wallet_settings"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True)
    low_balance_threshold: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=4), nullable=False
    )
