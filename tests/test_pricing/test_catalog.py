"""
Tests for pricing plan resolution and plan caching.
"""

import uuid
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from telecore.core.exceptions import NotFoundError, PricingPlanNotFoundError
from telecore.database.models import Country, PlanStatus, PricingPlan, Product
from telecore.services.pricing.catalog import CatalogPlan, PricingCatalog


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def mock_redis_client() -> AsyncMock:
    client = AsyncMock()
    client.get_json = AsyncMock(return_value=None)
    client.set_json = AsyncMock(return_value=True)
    return client


async def add_plan(session: AsyncSession, product: Product, country: Country, **values) -> PricingPlan:
    values.setdefault("effective_from", date(2024, 1, 1))
    plan = PricingPlan(product_id=product.id, country_id=country.id, **values)
    session.add(plan)
    await session.commit()
    return plan


# ============================================================================
# Resolution Tests
# ============================================================================


class TestResolve:
    """Test plan lookup rules."""

    async def test_resolves_country_wide_plan(self, session, did_plan, products, country) -> None:
        plan = await PricingCatalog(session).resolve(products["did"].id, country.id)

        assert plan.plan_id == did_plan.id
        assert plan.rates == {"mrc": Decimal("2.50")}
        assert plan.terms == {"contract_term": "12 months"}

    async def test_exact_area_code_wins(self, session, did_plan, products, country) -> None:
        area_plan = await add_plan(
            session, products["did"], country, area_code="20", mrc=Decimal("4.00")
        )

        plan = await PricingCatalog(session).resolve(products["did"].id, country.id, "20")

        assert plan.plan_id == area_plan.id
        assert plan.rates["mrc"] == Decimal("4.00")

    async def test_unknown_area_falls_back_to_country_plan(
        self, session, did_plan, products, country
    ) -> None:
        await add_plan(session, products["did"], country, area_code="20", mrc=Decimal("4.00"))

        plan = await PricingCatalog(session).resolve(products["did"].id, country.id, "161")

        assert plan.plan_id == did_plan.id

    async def test_most_recent_effective_plan_wins(
        self, session, did_plan, products, country
    ) -> None:
        newer = await add_plan(
            session,
            products["did"],
            country,
            mrc=Decimal("3.00"),
            effective_from=date(2024, 6, 1),
        )

        plan = await PricingCatalog(session).resolve(
            products["did"].id, country.id, on=date(2024, 7, 1)
        )

        assert plan.plan_id == newer.id

    async def test_expired_and_inactive_plans_are_ignored(
        self, session, products, country
    ) -> None:
        yesterday = date.today() - timedelta(days=1)
        await add_plan(
            session,
            products["mobile"],
            country,
            mrc=Decimal("1.00"),
            effective_to=yesterday,
        )
        await add_plan(
            session,
            products["mobile"],
            country,
            mrc=Decimal("1.50"),
            status=PlanStatus.INACTIVE,
        )

        with pytest.raises(PricingPlanNotFoundError):
            await PricingCatalog(session).resolve(products["mobile"].id, country.id)

    async def test_missing_plan_raises_not_found(self, session, products, country) -> None:
        with pytest.raises(PricingPlanNotFoundError) as exc_info:
            await PricingCatalog(session).resolve(products["freephone"].id, country.id, "800")

        assert isinstance(exc_info.value, NotFoundError)
        assert exc_info.value.context["area_code"] == "800"


class TestReferenceLookups:
    async def test_get_product_missing(self, session) -> None:
        with pytest.raises(NotFoundError):
            await PricingCatalog(session).get_product(uuid.uuid4())

    async def test_list_plans_filters_by_product(
        self, session, did_plan, products, country
    ) -> None:
        await add_plan(session, products["mobile"], country, mrc=Decimal("1.00"))

        plans = await PricingCatalog(session).list_plans(product_id=products["did"].id)

        assert [plan.plan_id for plan in plans] == [did_plan.id]


# ============================================================================
# Caching Tests
# ============================================================================


class TestCaching:
    """Test Redis caching of resolved plans."""

    async def test_resolved_plan_is_cached(
        self, session, did_plan, products, country, mock_redis_client
    ) -> None:
        catalog = PricingCatalog(session, redis_client=mock_redis_client, enable_caching=True)

        await catalog.resolve(products["did"].id, country.id)

        mock_redis_client.set_json.assert_awaited_once()
        key, payload = mock_redis_client.set_json.await_args.args
        assert key == (
            f"pricing:plan:{products['did'].id}:{country.id}:*:{date.today().isoformat()}"
        )
        assert Decimal(payload["rates"]["mrc"]) == Decimal("2.50")

    async def test_cache_hit_skips_database(self, session, mock_redis_client) -> None:
        cached = CatalogPlan(
            plan_id=uuid.uuid4(),
            product_id=uuid.uuid4(),
            country_id=uuid.uuid4(),
            area_code=None,
            effective_from=date(2024, 1, 1),
            rates={"mrc": Decimal("9.99")},
        )
        mock_redis_client.get_json = AsyncMock(return_value=cached.to_cache())
        catalog = PricingCatalog(session, redis_client=mock_redis_client, enable_caching=True)

        plan = await catalog.resolve(cached.product_id, cached.country_id)

        assert plan == cached

    async def test_cache_failure_falls_back_to_database(
        self, session, did_plan, products, country, mock_redis_client
    ) -> None:
        mock_redis_client.get_json = AsyncMock(side_effect=ConnectionError("down"))
        mock_redis_client.set_json = AsyncMock(side_effect=ConnectionError("down"))
        catalog = PricingCatalog(session, redis_client=mock_redis_client, enable_caching=True)

        plan = await catalog.resolve(products["did"].id, country.id)

        assert plan.plan_id == did_plan.id

    async def test_historical_lookup_does_not_shadow_today(
        self, session, products, country, mock_redis_client
    ) -> None:
        store: dict = {}

        async def get_json(key):
            return store.get(key)

        async def set_json(key, value, ex=None):
            store[key] = value
            return True

        mock_redis_client.get_json = AsyncMock(side_effect=get_json)
        mock_redis_client.set_json = AsyncMock(side_effect=set_json)
        await add_plan(
            session,
            products["did"],
            country,
            mrc=Decimal("1"),
            effective_from=date(2020, 1, 1),
            effective_to=date(2023, 12, 31),
        )
        await add_plan(session, products["did"], country, mrc=Decimal("9"))
        catalog = PricingCatalog(session, redis_client=mock_redis_client, enable_caching=True)

        historical = await catalog.resolve(products["did"].id, country.id, on=date(2020, 6, 1))
        current = await catalog.resolve(products["did"].id, country.id)

        assert historical.rates["mrc"] == Decimal("1")
        assert current.rates["mrc"] == Decimal("9")
        assert len(store) == 2
