"""
Tests for the prepaid wallet ledger.
"""

import asyncio
import uuid
from decimal import Decimal

import pytest

from telecore.core.exceptions import InsufficientBalanceError, ValidationError
from telecore.database.models import TransactionType
from telecore.services.wallet.ledger import WalletLedger


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def ledger(session, locks) -> WalletLedger:
    return WalletLedger(session, locks=locks)


# ============================================================================
# Credits and Debits
# ============================================================================


class TestAppend:
    async def test_credit_on_starting_balance(self, session, locks, user_id) -> None:
        ledger = WalletLedger(session, locks=locks, starting_balance=Decimal("50"))

        entry = await ledger.credit(user_id, Decimal("25"), "Top-up")

        assert entry.transaction.transaction_type == TransactionType.CREDIT
        assert entry.transaction.balance_before == Decimal("50")
        assert entry.transaction.balance_after == Decimal("75")
        assert entry.transaction.description == "Top-up"
        assert entry.new_balance == Decimal("75")
        assert await ledger.get_balance(user_id) == Decimal("75")

    async def test_balance_without_transactions(self, ledger, user_id) -> None:
        assert await ledger.get_balance(user_id) == Decimal("0")

    async def test_transactions_chain_balances(self, ledger, user_id) -> None:
        await ledger.credit(user_id, "10")
        await ledger.credit(user_id, "5.50")
        await ledger.debit(user_id, "3")

        transactions = list(reversed(await ledger.list_transactions(user_id)))

        assert [t.sequence for t in transactions] == [1, 2, 3]
        for previous, current in zip(transactions, transactions[1:]):
            assert current.balance_before == previous.balance_after
        assert await ledger.get_balance(user_id) == Decimal("12.50")

    async def test_concurrent_credits_serialize(self, session_factory, locks, user_id) -> None:
        async def credit(amount: str) -> None:
            async with session_factory() as own_session:
                await WalletLedger(own_session, locks=locks).credit(user_id, amount)

        await asyncio.gather(*(credit(str(n)) for n in range(1, 6)))

        async with session_factory() as check_session:
            ledger = WalletLedger(check_session, locks=locks)
            transactions = list(reversed(await ledger.list_transactions(user_id)))
            balance = await ledger.get_balance(user_id)

        assert len(transactions) == 5
        assert transactions[0].balance_before == Decimal("0")
        for previous, current in zip(transactions, transactions[1:]):
            assert current.balance_before == previous.balance_after
        assert balance == Decimal("15")

    async def test_overdraft_rejected(self, ledger, user_id) -> None:
        await ledger.credit(user_id, "5")

        with pytest.raises(InsufficientBalanceError):
            await ledger.debit(user_id, "5.01")

        assert await ledger.get_balance(user_id) == Decimal("5")
        assert len(await ledger.list_transactions(user_id)) == 1

    async def test_debit_of_whole_balance(self, ledger, user_id) -> None:
        await ledger.credit(user_id, "5")

        entry = await ledger.debit(user_id, "5")

        assert entry.new_balance == Decimal("0")

    @pytest.mark.parametrize("amount", ["0", "-3", "abc"])
    async def test_non_positive_amount_rejected(self, ledger, user_id, amount: str) -> None:
        with pytest.raises(ValidationError):
            await ledger.credit(user_id, amount)

    async def test_amount_below_stored_scale_rejected(self, ledger, user_id) -> None:
        with pytest.raises(ValidationError):
            await ledger.credit(user_id, "0.00001")

        assert list(await ledger.list_transactions(user_id)) == []
        assert await ledger.get_balance(user_id) == Decimal("0")

    async def test_amount_rounded_to_stored_scale(self, ledger, user_id) -> None:
        entry = await ledger.credit(user_id, "1.23456")

        assert entry.transaction.amount == Decimal("1.2346")
        assert entry.new_balance == Decimal("1.2346")

    async def test_list_transactions_paginates(self, ledger, user_id) -> None:
        for amount in ("1", "2", "3"):
            await ledger.credit(user_id, amount)

        page = await ledger.list_transactions(user_id, limit=2, offset=1)

        assert [t.amount for t in page] == [Decimal("2"), Decimal("1")]


# ============================================================================
# Low-Balance Threshold
# ============================================================================


class TestThreshold:
    async def test_default_threshold(self, ledger, user_id) -> None:
        assert await ledger.get_threshold(user_id) == Decimal("10.00")

    async def test_set_threshold(self, ledger, user_id) -> None:
        await ledger.set_threshold(user_id, "20")
        await ledger.set_threshold(user_id, "25")

        assert await ledger.get_threshold(user_id) == Decimal("25")

    async def test_negative_threshold_rejected(self, ledger, user_id) -> None:
        with pytest.raises(ValidationError):
            await ledger.set_threshold(user_id, "-1")

    async def test_evaluate_threshold(self, ledger, user_id) -> None:
        await ledger.credit(user_id, "15")

        assert await ledger.evaluate_threshold(user_id) is False
        assert await ledger.evaluate_threshold(user_id, threshold="20") is True
        assert await ledger.evaluate_threshold(user_id, threshold="15") is False
