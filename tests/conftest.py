"""
Pytest configuration and shared test fixtures.

Tests run against a throwaway SQLite database per test (aiosqlite), with a
fresh in-process lock manager. Seed fixtures create the catalog rows most
tests need, and ``LifecycleDriver`` walks orders through their states.
"""

import os

os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_LOCK_BACKEND", "local")
os.environ.setdefault("APP_PRICING_CACHE_ENABLED", "false")

import uuid
from datetime import date
from decimal import Decimal
from typing import Any, AsyncGenerator, Mapping, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from telecore.core.config import get_settings
from telecore.core.locks import KeyLockManager
from telecore.database.connection import build_session_factory, create_all, create_engine
from telecore.database.models import Country, Order, PhoneNumber, PricingPlan, Product
from telecore.services.numbers.allocation import NumberAllocationService
from telecore.services.orders.service import OrderLifecycleService
from telecore.services.wallet.ledger import WalletLedger

get_settings.cache_clear()


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a file-backed SQLite engine with all tables."""
    test_engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'telecore.db'}")
    await create_all(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as db_session:
        yield db_session


@pytest.fixture
def locks() -> KeyLockManager:
    return KeyLockManager(backend="local", timeout_seconds=5.0)


# ============================================================================
# Catalog Seed Fixtures
# ============================================================================


@pytest.fixture
async def products(session: AsyncSession) -> dict[str, Product]:
    """One product per supported product code."""
    rows = {
        code: Product(code=code, name=code.replace("_", " ").title())
        for code in (
            "did",
            "freephone",
            "univ_freephone",
            "two_way_voice",
            "two_way_sms",
            "mobile",
        )
    }
    session.add_all(rows.values())
    await session.commit()
    return rows


@pytest.fixture
async def country(session: AsyncSession) -> Country:
    row = Country(name="United Kingdom", iso_code="GB", phone_code="44")
    session.add(row)
    await session.commit()
    return row


@pytest.fixture
async def did_plan(
    session: AsyncSession, products: dict[str, Product], country: Country
) -> PricingPlan:
    """Country-wide DID plan with ``mrc=2.50``."""
    plan = PricingPlan(
        product_id=products["did"].id,
        country_id=country.id,
        area_code=None,
        mrc=Decimal("2.50"),
        contract_term="12 months",
        effective_from=date(2024, 1, 1),
    )
    session.add(plan)
    await session.commit()
    return plan


@pytest.fixture
def customer_id() -> uuid.UUID:
    return uuid.uuid4()


# ============================================================================
# Lifecycle Helpers
# ============================================================================


class LifecycleDriver:
    """Creates orders and drives them to a target status."""

    def __init__(
        self,
        session: AsyncSession,
        locks: KeyLockManager,
        products: dict[str, Product],
        country: Country,
        customer_id: uuid.UUID,
    ):
        self.session = session
        self.locks = locks
        self.products = products
        self.country = country
        self.customer_id = customer_id
        self.orders = OrderLifecycleService(session, locks=locks)
        self.numbers = NumberAllocationService(session, locks=locks)
        self.wallet = WalletLedger(session, locks=locks)

    async def create(
        self,
        product_code: str = "did",
        quantity: int = 1,
        desired_pricing: Optional[Mapping[str, Any]] = None,
        area_code: Optional[str] = None,
    ) -> Order:
        creation = await self.orders.create(
            customer_id=self.customer_id,
            product_id=self.products[product_code].id,
            country_id=self.country.id,
            area_code=area_code,
            quantity=quantity,
            desired_pricing=desired_pricing,
        )
        return creation.order

    async def confirmed(
        self, quantity: int = 1, current_override: Optional[Mapping[str, Any]] = None, **kwargs
    ) -> Order:
        order = await self.create(quantity=quantity, **kwargs)
        return await self.orders.confirm(order.id, current_override=current_override)

    async def paid(self, quantity: int = 1, **kwargs) -> Order:
        order = await self.confirmed(quantity=quantity, **kwargs)
        return await self.orders.mark_paid(order.id)

    async def allocate_all(self, order: Order) -> list[PhoneNumber]:
        allocated = []
        for _ in range(order.quantity):
            number = f"+44{uuid.uuid4().int % 10**10:010d}"
            allocated.append(await self.numbers.allocate(order.id, number))
        return allocated

    async def delivered(self, quantity: int = 1, **kwargs) -> Order:
        order = await self.paid(quantity=quantity, **kwargs)
        await self.allocate_all(order)
        return await self.orders.mark_delivered(order.id)


@pytest.fixture
def driver(
    session: AsyncSession,
    locks: KeyLockManager,
    products: dict[str, Product],
    country: Country,
    customer_id: uuid.UUID,
) -> LifecycleDriver:
    return LifecycleDriver(session, locks, products, country, customer_id)
