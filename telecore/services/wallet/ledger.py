"""
Prepaid wallet ledger.

The ledger is append-only. Every credit or debit appends one
``WalletTransaction`` whose ``balance_before`` equals the previous
transaction's ``balance_after``; appends for one user are serialized by
the ``wallet:<user_id>`` lock and the unique ``(user_id, sequence)``
constraint.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from telecore.core.config import get_settings
from telecore.core.exceptions import (
    ConflictError,
    InsufficientBalanceError,
    TelecoreError,
    ValidationError,
)
from telecore.core.locks import KeyLockManager, get_lock_manager, wallet_key
from telecore.core.logging import get_logger
from telecore.database.models.wallet import (
    TransactionType,
    WalletSettings,
    WalletTransaction,
)
from telecore.services.pricing.fields import parse_amount

logger = get_logger(__name__)


@dataclass(frozen=True)
class WalletEntry:
    """Result of a ledger append."""

    transaction: WalletTransaction
    new_balance: Decimal


class WalletLedger:
    """
    Credit, debit and balance queries for user wallets.

    Attributes:
        starting_balance: Balance of a user with no transactions
        default_threshold: Low-balance threshold when none is configured
    """

    def __init__(
        self,
        session: AsyncSession,
        locks: Optional[KeyLockManager] = None,
        starting_balance: Optional[Decimal] = None,
        default_threshold: Optional[Decimal] = None,
    ):
        settings = get_settings()
        self.session = session
        self.locks = locks or get_lock_manager()
        self.starting_balance = (
            settings.wallet_starting_balance if starting_balance is None else starting_balance
        )
        self.default_threshold = (
            settings.wallet_default_threshold
            if default_threshold is None
            else default_threshold
        )

    async def _latest(self, user_id: uuid.UUID) -> Optional[WalletTransaction]:
        stmt = (
            select(WalletTransaction)
            .where(WalletTransaction.user_id == user_id)
            .order_by(WalletTransaction.sequence.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_balance(self, user_id: uuid.UUID) -> Decimal:
        """
        Current balance: the latest ``balance_after``, or the starting
        balance when the user has no transactions.
        """
        latest = await self._latest(user_id)
        if latest is None:
            return Decimal(self.starting_balance)
        return Decimal(latest.balance_after)

    def _validate_amount(self, amount: Any) -> Decimal:
        value = parse_amount(amount)
        if value <= 0:
            raise ValidationError(
                "Amount must be greater than zero", amount=amount
            )
        return value

    async def append(
        self,
        user_id: uuid.UUID,
        transaction_type: TransactionType,
        amount: Any,
        description: str = "",
    ) -> WalletEntry:
        """
        Append a transaction inside the caller's unit of work.

        The caller must hold ``wallet_key(user_id)`` and commit.

        Raises:
            ValidationError: If amount is not positive
            InsufficientBalanceError: If a debit exceeds the balance
        """
        value = self._validate_amount(amount)
        latest = await self._latest(user_id)
        if latest is None:
            balance_before = Decimal(self.starting_balance)
            sequence = 1
        else:
            balance_before = Decimal(latest.balance_after)
            sequence = latest.sequence + 1

        if transaction_type == TransactionType.DEBIT:
            if value > balance_before:
                logger.warning(
                    "Rejected wallet debit",
                    user_id=str(user_id),
                    amount=str(value),
                    balance=str(balance_before),
                )
                raise InsufficientBalanceError(
                    "Insufficient wallet balance",
                    user_id=user_id,
                    balance=balance_before,
                    amount=value,
                )
            balance_after = balance_before - value
        else:
            balance_after = balance_before + value

        transaction = WalletTransaction(
            user_id=user_id,
            sequence=sequence,
            transaction_type=transaction_type,
            amount=value,
            balance_before=balance_before,
            balance_after=balance_after,
            description=description or "",
        )
        self.session.add(transaction)
        await self.session.flush()
        return WalletEntry(transaction=transaction, new_balance=balance_after)

    async def _append_committed(
        self,
        user_id: uuid.UUID,
        transaction_type: TransactionType,
        amount: Any,
        description: str,
    ) -> WalletEntry:
        async with self.locks.hold(wallet_key(user_id)):
            try:
                entry = await self.append(user_id, transaction_type, amount, description)
                await self.session.commit()
            except TelecoreError:
                await self.session.rollback()
                raise
            except IntegrityError as e:
                await self.session.rollback()
                raise ConflictError(
                    "Concurrent wallet update, retry the operation",
                    user_id=user_id,
                ) from e
            except SQLAlchemyError as e:
                await self.session.rollback()
                logger.error(
                    "Wallet append failed",
                    user_id=str(user_id),
                    error=str(e),
                )
                raise

        logger.info(
            "Wallet transaction recorded",
            user_id=str(user_id),
            transaction_type=transaction_type.value,
            amount=str(entry.transaction.amount),
            new_balance=str(entry.new_balance),
        )
        return entry

    async def credit(
        self, user_id: uuid.UUID, amount: Any, description: str = ""
    ) -> WalletEntry:
        """
        Credit a wallet (top-up recorded immediately).

        Args:
            user_id: Wallet owner
            amount: Positive amount
            description: Ledger description

        Returns:
            Appended transaction and new balance

        Raises:
            ValidationError: If amount is not positive
        """
        return await self._append_committed(
            user_id, TransactionType.CREDIT, amount, description
        )

    async def debit(
        self, user_id: uuid.UUID, amount: Any, description: str = ""
    ) -> WalletEntry:
        """
        Debit a wallet.

        Raises:
            ValidationError: If amount is not positive
            InsufficientBalanceError: If amount exceeds the balance
        """
        return await self._append_committed(
            user_id, TransactionType.DEBIT, amount, description
        )

    async def get_threshold(self, user_id: uuid.UUID) -> Decimal:
        stored = await self.session.get(WalletSettings, user_id)
        if stored is None:
            return Decimal(self.default_threshold)
        return Decimal(stored.low_balance_threshold)

    async def set_threshold(self, user_id: uuid.UUID, threshold: Any) -> Decimal:
        """
        Store a user's low-balance threshold.

        Raises:
            ValidationError: If threshold is negative
        """
        value = parse_amount(threshold, field="threshold")
        if value < 0:
            raise ValidationError("Threshold must not be negative", threshold=threshold)

        async with self.locks.hold(wallet_key(user_id)):
            try:
                stored = await self.session.get(WalletSettings, user_id)
                if stored is None:
                    stored = WalletSettings(user_id=user_id, low_balance_threshold=value)
                    self.session.add(stored)
                else:
                    stored.low_balance_threshold = value
                await self.session.commit()
            except SQLAlchemyError:
                await self.session.rollback()
                raise

        logger.info("Wallet threshold updated", user_id=str(user_id), threshold=str(value))
        return value

    async def evaluate_threshold(
        self, user_id: uuid.UUID, threshold: Any = None
    ) -> bool:
        """
        Check whether the balance is below the low-balance threshold.

        Args:
            user_id: Wallet owner
            threshold: Explicit threshold, defaults to the stored setting

        Returns:
            True when ``balance < threshold``
        """
        if threshold is None:
            limit = await self.get_threshold(user_id)
        else:
            limit = parse_amount(threshold, field="threshold")
        balance = await self.get_balance(user_id)
        return balance < limit

    async def list_transactions(
        self, user_id: uuid.UUID, limit: int = 100, offset: int = 0
    ) -> Sequence[WalletTransaction]:
        """List a user's transactions newest first."""
        stmt = (
            select(WalletTransaction)
            .where(WalletTransaction.user_id == user_id)
            .order_by(WalletTransaction.sequence.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
