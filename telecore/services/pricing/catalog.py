"""
Pricing catalog lookups.

Resolves the base rate plan for a (product, country[, area code]) tuple.
The catalog is read-only. Resolved plans can be cached in Redis; any
cache failure is logged and the database answer is used instead.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from telecore.cache.redis_client import RedisClient, get_redis_client
from telecore.core.config import get_settings
from telecore.core.exceptions import NotFoundError, PricingPlanNotFoundError
from telecore.core.logging import get_logger
from telecore.database.models.catalog import (
    Country,
    PlanStatus,
    PricingPlan,
    Product,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class CatalogPlan:
    """
    Immutable view of a resolved pricing plan.

    Attributes:
        rates: Only the populated rate fields of the plan
        terms: Only the populated term fields of the plan
    """

    plan_id: uuid.UUID
    product_id: uuid.UUID
    country_id: uuid.UUID
    area_code: Optional[str]
    effective_from: date
    rates: dict[str, Decimal] = field(default_factory=dict)
    terms: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_model(cls, plan: PricingPlan) -> "CatalogPlan":
        return cls(
            plan_id=plan.id,
            product_id=plan.product_id,
            country_id=plan.country_id,
            area_code=plan.area_code,
            effective_from=plan.effective_from,
            rates=plan.populated_rates(),
            terms=plan.populated_terms(),
        )

    def to_cache(self) -> dict[str, Any]:
        return {
            "plan_id": str(self.plan_id),
            "product_id": str(self.product_id),
            "country_id": str(self.country_id),
            "area_code": self.area_code,
            "effective_from": self.effective_from.isoformat(),
            "rates": {name: str(value) for name, value in self.rates.items()},
            "terms": dict(self.terms),
        }

    @classmethod
    def from_cache(cls, data: dict[str, Any]) -> "CatalogPlan":
        return cls(
            plan_id=uuid.UUID(data["plan_id"]),
            product_id=uuid.UUID(data["product_id"]),
            country_id=uuid.UUID(data["country_id"]),
            area_code=data.get("area_code"),
            effective_from=date.fromisoformat(data["effective_from"]),
            rates={name: Decimal(value) for name, value in data["rates"].items()},
            terms=dict(data.get("terms") or {}),
        )


class PricingCatalog:
    """
    Catalog of base pricing plans.

    Lookup rules:
        - only ``Active`` plans whose effective window covers the lookup date
        - an exact area code match beats the country-wide plan
        - among equals, the most recent ``effective_from`` wins
    """

    CACHE_KEY_PREFIX = "pricing"

    def __init__(
        self,
        session: AsyncSession,
        redis_client: Optional[RedisClient] = None,
        enable_caching: Optional[bool] = None,
        cache_ttl_seconds: Optional[int] = None,
    ):
        settings = get_settings()
        self.session = session
        self._redis_client = redis_client
        self._enable_caching = (
            settings.pricing_cache_enabled if enable_caching is None else enable_caching
        )
        self._cache_ttl_seconds = cache_ttl_seconds or settings.pricing_cache_ttl_seconds

    async def _get_redis_client(self) -> Optional[RedisClient]:
        if not self._enable_caching:
            return None

        if self._redis_client is None:
            try:
                self._redis_client = await get_redis_client()
            except Exception as e:
                logger.warning(
                    "Failed to get Redis client, plan caching disabled",
                    error=str(e),
                )
                self._enable_caching = False
                return None

        return self._redis_client

    def _make_cache_key(
        self, product_id: Any, country_id: Any, area_code: Optional[str], on: date
    ) -> str:
        return ":".join(
            [
                self.CACHE_KEY_PREFIX,
                "plan",
                str(product_id),
                str(country_id),
                area_code or "*",
                on.isoformat(),
            ]
        )

    async def _get_cached_plan(self, cache_key: str) -> Optional[CatalogPlan]:
        redis = await self._get_redis_client()
        if redis is None:
            return None

        try:
            cached = await redis.get_json(cache_key)
            if cached:
                logger.debug("Cache hit for pricing plan", cache_key=cache_key)
                return CatalogPlan.from_cache(cached)
        except Exception as e:
            logger.warning(
                "Failed to read cached pricing plan",
                cache_key=cache_key,
                error=str(e),
            )
        return None

    async def _set_cached_plan(self, cache_key: str, plan: CatalogPlan) -> None:
        redis = await self._get_redis_client()
        if redis is None:
            return

        try:
            await redis.set_json(cache_key, plan.to_cache(), ex=self._cache_ttl_seconds)
        except Exception as e:
            logger.warning(
                "Failed to cache pricing plan",
                cache_key=cache_key,
                error=str(e),
            )

    async def get_product(self, product_id: uuid.UUID) -> Product:
        """
        Raises:
            NotFoundError: If the product does not exist
        """
        product = await self.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    async def get_country(self, country_id: uuid.UUID) -> Country:
        """
        Raises:
            NotFoundError: If the country does not exist
        """
        country = await self.session.get(Country, country_id)
        if country is None:
            raise NotFoundError("Country", country_id)
        return country

    async def resolve(
        self,
        product_id: uuid.UUID,
        country_id: uuid.UUID,
        area_code: Optional[str] = None,
        on: Optional[date] = None,
    ) -> CatalogPlan:
        """
        Resolve the base pricing plan for a product in a country.

        Args:
            product_id: Product identifier
            country_id: Country identifier
            area_code: Optional area code narrowing the lookup
            on: Lookup date, defaults to today

        Returns:
            Resolved plan

        Raises:
            PricingPlanNotFoundError: If no eligible plan exists. Callers treat
                this as "quote unavailable", not a fatal error.
        """
        area_code = (area_code or "").strip() or None
        on = on or date.today()

        cache_key = self._make_cache_key(product_id, country_id, area_code, on)
        cached = await self._get_cached_plan(cache_key)
        if cached is not None:
            return cached

        area_filter = PricingPlan.area_code.is_(None)
        if area_code is not None:
            area_filter = or_(PricingPlan.area_code == area_code, area_filter)

        stmt = (
            select(PricingPlan)
            .where(
                PricingPlan.product_id == product_id,
                PricingPlan.country_id == country_id,
                PricingPlan.status == PlanStatus.ACTIVE,
                PricingPlan.effective_from <= on,
                or_(PricingPlan.effective_to.is_(None), PricingPlan.effective_to >= on),
                area_filter,
            )
            .order_by(PricingPlan.effective_from.desc())
        )
        candidates = list((await self.session.execute(stmt)).scalars().all())

        # Exact area code first; sort is stable so recency order is kept.
        candidates.sort(key=lambda plan: plan.area_code is None)
        if not candidates:
            logger.info(
                "No pricing plan found",
                product_id=str(product_id),
                country_id=str(country_id),
                area_code=area_code,
            )
            raise PricingPlanNotFoundError(product_id, country_id, area_code)

        plan = CatalogPlan.from_model(candidates[0])
        logger.debug(
            "Resolved pricing plan",
            plan_id=str(plan.plan_id),
            area_code=plan.area_code,
            rate_fields=sorted(plan.rates),
        )
        await self._set_cached_plan(cache_key, plan)
        return plan

    async def list_plans(
        self,
        product_id: Optional[uuid.UUID] = None,
        country_id: Optional[uuid.UUID] = None,
    ) -> list[CatalogPlan]:
        """List active plans, optionally filtered by product and country."""
        stmt = select(PricingPlan).where(PricingPlan.status == PlanStatus.ACTIVE)
        if product_id is not None:
            stmt = stmt.where(PricingPlan.product_id == product_id)
        if country_id is not None:
            stmt = stmt.where(PricingPlan.country_id == country_id)
        stmt = stmt.order_by(PricingPlan.area_code, PricingPlan.effective_from.desc())

        result = await self.session.execute(stmt)
        return [CatalogPlan.from_model(plan) for plan in result.scalars().all()]
