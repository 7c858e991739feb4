"""
Tests for the order lifecycle service.

Covers two-phase creation, pricing lock-in at confirm, payment, delivery,
cancellation and racing transitions on the same order.
"""

import asyncio
import uuid
from decimal import Decimal

import pytest

from telecore.core.exceptions import (
    InsufficientBalanceError,
    InvalidTransitionError,
    NotFoundError,
    PricingUnavailableError,
    ValidationError,
)
from telecore.database.models import PricingType, TransactionType
from telecore.services.orders.enums import OrderStatus
from telecore.services.orders.service import OrderLifecycleService, PricingState
from telecore.services.pricing.snapshot import OrderPricingService
from telecore.services.wallet.ledger import WalletLedger


# ============================================================================
# Creation Tests
# ============================================================================


class TestCreate:
    """Test order creation and the best-effort desired pricing write."""

    async def test_creates_in_progress_with_zero_total(
        self, session, locks, products, country, customer_id
    ) -> None:
        service = OrderLifecycleService(session, locks=locks)

        creation = await service.create(
            customer_id=customer_id,
            product_id=products["did"].id,
            country_id=country.id,
            quantity=3,
            documents=[{"name": "loa.pdf"}],
        )

        order = creation.order
        assert order.status == OrderStatus.IN_PROGRESS
        assert order.total_amount == Decimal("0")
        assert order.order_number.startswith("ORD-")
        assert order.documents == [{"name": "loa.pdf"}]
        assert creation.pricing_state == PricingState.ABSENT

        history = await service.history(order.id)
        assert [(h.from_status, h.to_status) for h in history] == [
            (None, OrderStatus.IN_PROGRESS)
        ]

    async def test_desired_pricing_recorded(self, driver) -> None:
        creation = await driver.orders.create(
            customer_id=driver.customer_id,
            product_id=driver.products["did"].id,
            country_id=driver.country.id,
            desired_pricing={"nrc": "$5.00", "mrc": "$2.50"},
        )

        assert creation.pricing_state == PricingState.RECORDED
        assert creation.desired_pricing.rates == {
            "nrc": Decimal("5.00"),
            "mrc": Decimal("2.50"),
        }

    async def test_failed_desired_pricing_keeps_order(self, driver, session, locks) -> None:
        creation = await driver.orders.create(
            customer_id=driver.customer_id,
            product_id=driver.products["did"].id,
            country_id=driver.country.id,
            desired_pricing={"mrc": "-1.00"},
        )

        assert creation.pricing_state == PricingState.FAILED
        assert creation.pricing_error
        stored = await driver.orders.get(creation.order.id)
        assert stored.status == OrderStatus.IN_PROGRESS
        view = await OrderPricingService(session, locks=locks).get(stored.id)
        assert view.desired is None

    @pytest.mark.parametrize("quantity", [0, -1, True])
    async def test_quantity_must_be_positive(self, driver, quantity) -> None:
        with pytest.raises(ValidationError):
            await driver.create(quantity=quantity)

    async def test_unknown_product(self, driver) -> None:
        with pytest.raises(NotFoundError):
            await driver.orders.create(
                customer_id=driver.customer_id,
                product_id=uuid.uuid4(),
                country_id=driver.country.id,
            )


# ============================================================================
# Confirm Tests
# ============================================================================


class TestConfirm:
    """Test pricing lock-in and total computation."""

    async def test_total_from_catalog_and_desired_pricing(
        self, driver, did_plan, session, locks
    ) -> None:
        order = await driver.create(
            quantity=3, desired_pricing={"nrc": "$5.00", "mrc": "$2.50"}
        )

        confirmed = await driver.orders.confirm(order.id)

        assert confirmed.status == OrderStatus.CONFIRMED
        assert confirmed.total_amount == Decimal("22.50")
        assert confirmed.confirmed_at is not None
        view = await OrderPricingService(session, locks=locks).get(order.id)
        assert view.current.rates == {"nrc": Decimal("5.00"), "mrc": Decimal("2.50")}
        assert view.current.terms == {"contract_term": "12 months"}

    async def test_override_wins_over_catalog(self, driver, did_plan) -> None:
        order = await driver.create(quantity=2)

        confirmed = await driver.orders.confirm(
            order.id, current_override={"mrc": "4.00", "ppm": "0.01"}
        )

        assert confirmed.total_amount == Decimal("8.02")

    async def test_staged_current_pricing_counts_as_override(
        self, driver, session, locks
    ) -> None:
        order = await driver.create(quantity=1)
        await OrderPricingService(session, locks=locks).upsert(
            order.id, PricingType.CURRENT, {"nrc": "10", "mrc": "3"}
        )

        confirmed = await driver.orders.confirm(order.id)

        assert confirmed.total_amount == Decimal("13")

    async def test_no_plan_and_no_override_is_unavailable(self, driver) -> None:
        order = await driver.create(quantity=1, desired_pricing={"mrc": "2"})

        with pytest.raises(PricingUnavailableError):
            await driver.orders.confirm(order.id)

        stored = await driver.orders.get(order.id)
        assert stored.status == OrderStatus.IN_PROGRESS
        assert stored.total_amount == Decimal("0")

    async def test_irrelevant_catalog_fields_not_summed(
        self, driver, session, did_plan
    ) -> None:
        did_plan.mo = Decimal("100")
        await session.commit()
        order = await driver.create(quantity=1)

        confirmed = await driver.orders.confirm(order.id)

        assert confirmed.total_amount == Decimal("2.50")

    async def test_total_matches_stored_rates(
        self, driver, session_factory, locks
    ) -> None:
        order = await driver.create(quantity=3)

        confirmed = await driver.orders.confirm(
            order.id, current_override={"mrc": "3", "ppm": "0.00875"}
        )

        async with session_factory() as fresh:
            view = await OrderPricingService(fresh, locks=locks).get(order.id)
        assert view.current.rates == {"mrc": Decimal("3"), "ppm": Decimal("0.0088")}
        assert confirmed.total_amount == Decimal("9.0264")
        assert confirmed.total_amount == sum(view.current.rates.values()) * 3

    async def test_sub_scale_desired_rate_not_stored(
        self, driver, session_factory, locks
    ) -> None:
        order = await driver.create(desired_pricing={"nrc": "$1.00", "ppm": "0.00001"})

        async with session_factory() as fresh:
            view = await OrderPricingService(fresh, locks=locks).get(order.id)
        assert view.desired.rates == {"nrc": Decimal("1.00")}

    async def test_confirm_twice_rejected(self, driver, did_plan) -> None:
        order = await driver.confirmed()

        with pytest.raises(InvalidTransitionError):
            await driver.orders.confirm(order.id)

    async def test_racing_confirms_one_wins(
        self, driver, did_plan, session_factory, locks
    ) -> None:
        order = await driver.create(quantity=2)

        async def confirm_in_own_session():
            async with session_factory() as other:
                service = OrderLifecycleService(other, locks=locks)
                return await service.confirm(order.id)

        results = await asyncio.gather(
            confirm_in_own_session(), confirm_in_own_session(), return_exceptions=True
        )

        succeeded = [r for r in results if not isinstance(r, Exception)]
        failed = [r for r in results if isinstance(r, Exception)]
        assert len(succeeded) == 1
        assert len(failed) == 1
        assert isinstance(failed[0], InvalidTransitionError)

        history = await driver.orders.history(order.id)
        assert [h.to_status for h in history].count(OrderStatus.CONFIRMED) == 1


# ============================================================================
# Payment, Delivery and Cancellation Tests
# ============================================================================


class TestLaterTransitions:
    async def test_mark_paid_keeps_total(self, driver, did_plan) -> None:
        order = await driver.confirmed(quantity=2)

        paid = await driver.orders.mark_paid(order.id)

        assert paid.status == OrderStatus.AMOUNT_PAID
        assert paid.total_amount == Decimal("5.00")
        assert paid.paid_at is not None

    async def test_mark_paid_requires_confirmed(self, driver) -> None:
        order = await driver.create()

        with pytest.raises(InvalidTransitionError):
            await driver.orders.mark_paid(order.id)

    async def test_pay_from_wallet_debits_total(
        self, driver, did_plan, session, locks
    ) -> None:
        ledger = WalletLedger(session, locks=locks)
        await ledger.credit(driver.customer_id, "10.00", "Top-up")
        order = await driver.confirmed(quantity=2)

        paid = await driver.orders.pay_from_wallet(order.id)

        assert paid.status == OrderStatus.AMOUNT_PAID
        assert await ledger.get_balance(driver.customer_id) == Decimal("5.00")
        latest = (await ledger.list_transactions(driver.customer_id))[0]
        assert latest.transaction_type == TransactionType.DEBIT
        assert latest.amount == Decimal("5.00")

    async def test_pay_from_wallet_insufficient_balance(self, driver, did_plan, session, locks) -> None:
        order = await driver.confirmed(quantity=2)

        with pytest.raises(InsufficientBalanceError):
            await driver.orders.pay_from_wallet(order.id)

        stored = await driver.orders.get(order.id)
        assert stored.status == OrderStatus.CONFIRMED
        ledger = WalletLedger(session, locks=locks)
        assert await ledger.list_transactions(driver.customer_id) == []

    async def test_delivery_requires_allocated_numbers(self, driver, did_plan) -> None:
        order = await driver.paid(quantity=2)

        with pytest.raises(InvalidTransitionError):
            await driver.orders.mark_delivered(order.id)

    async def test_delivery_override(self, driver, did_plan) -> None:
        order = await driver.paid(quantity=2)

        delivered = await driver.orders.mark_delivered(order.id, override=True)

        assert delivered.status == OrderStatus.DELIVERED
        history = await driver.orders.history(order.id)
        assert history[-1].reason == "Delivered with staff override"

    async def test_delivery_assigns_numbers_to_customer(self, driver, did_plan) -> None:
        order = await driver.paid(quantity=2)
        numbers = await driver.allocate_all(order)

        delivered = await driver.orders.mark_delivered(order.id)

        assert delivered.delivered_at is not None
        owned = await driver.numbers.list_for_customer(driver.customer_id)
        assert {n.id for n in owned} == {n.id for n in numbers}

    async def test_cancel_from_confirmed(self, driver, did_plan) -> None:
        order = await driver.confirmed()

        cancelled = await driver.orders.cancel(order.id, reason="customer request")

        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cancelled_at is not None

    async def test_cancel_after_payment_rejected(self, driver, did_plan) -> None:
        order = await driver.paid()

        with pytest.raises(InvalidTransitionError):
            await driver.orders.cancel(order.id)

    async def test_full_history_in_order(self, driver, did_plan) -> None:
        order = await driver.delivered(quantity=1)

        history = await driver.orders.history(order.id)

        assert [h.to_status for h in history] == [
            OrderStatus.IN_PROGRESS,
            OrderStatus.CONFIRMED,
            OrderStatus.AMOUNT_PAID,
            OrderStatus.DELIVERED,
        ]
        assert [h.sequence for h in history] == [1, 2, 3, 4]

    async def test_list_filters_by_status(self, driver, did_plan) -> None:
        await driver.create()
        confirmed = await driver.confirmed()

        orders = await driver.orders.list(
            customer_id=driver.customer_id, status=OrderStatus.CONFIRMED
        )

        assert [o.id for o in orders] == [confirmed.id]
