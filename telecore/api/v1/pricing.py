"""
Pricing catalog API endpoints.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from telecore.api.deps import DatabaseSession
from telecore.schemas.pricing import CatalogPlanResponse
from telecore.services.pricing.catalog import PricingCatalog

router = APIRouter(prefix="/pricing", tags=["pricing"])


@router.get(
    "/plans/resolve",
    response_model=CatalogPlanResponse,
    summary="Resolve the base plan for a product and country",
)
async def resolve_plan(
    db: DatabaseSession,
    product_id: UUID = Query(...),
    country_id: UUID = Query(...),
    area_code: Optional[str] = Query(None, max_length=20),
) -> CatalogPlanResponse:
    """Returns 404 when no plan applies; callers treat that as "quote unavailable"."""
    plan = await PricingCatalog(db).resolve(product_id, country_id, area_code)
    return CatalogPlanResponse.model_validate(plan)


@router.get("/plans", response_model=list[CatalogPlanResponse], summary="List active plans")
async def list_plans(
    db: DatabaseSession,
    product_id: Optional[UUID] = Query(None),
    country_id: Optional[UUID] = Query(None),
) -> list[CatalogPlanResponse]:
    plans = await PricingCatalog(db).list_plans(product_id=product_id, country_id=country_id)
    return [CatalogPlanResponse.model_validate(plan) for plan in plans]
