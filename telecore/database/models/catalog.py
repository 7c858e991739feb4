"""
Catalog reference data: products, countries and pricing plans.

Pricing plans hold the base (vendor) rates for a product in a country,
optionally narrowed to an area code. They are read-only from the point
of view of the order engine.
"""

import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from telecore.database.base import BaseModel, enum_type
from telecore.services.pricing.fields import RATE_FIELDS, TERM_FIELDS

RATE_PRECISION = 14
RATE_SCALE = 4


class PlanStatus(str, Enum):
    """Pricing plan availability."""

    ACTIVE = "Active"
    INACTIVE = "Inactive"


class RateColumnsMixin:
    """
    Nullable rate and term columns shared by catalog plans and order
    pricing snapshots. A NULL column means the field is not priced.
    """

    nrc: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(RATE_PRECISION, RATE_SCALE), nullable=True, comment="One-time setup charge"
    )
    mrc: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(RATE_PRECISION, RATE_SCALE), nullable=True, comment="Monthly recurring charge"
    )
    ppm: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(RATE_PRECISION, RATE_SCALE), nullable=True, comment="Per-minute rate"
    )
    ppm_fix: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(RATE_PRECISION, RATE_SCALE), nullable=True
    )
    ppm_mobile: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(RATE_PRECISION, RATE_SCALE), nullable=True
    )
    ppm_payphone: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(RATE_PRECISION, RATE_SCALE), nullable=True
    )
    arc: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(RATE_PRECISION, RATE_SCALE), nullable=True, comment="Annual recurring charge"
    )
    mo: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(RATE_PRECISION, RATE_SCALE), nullable=True, comment="Mobile-originated SMS"
    )
    mt: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(RATE_PRECISION, RATE_SCALE), nullable=True, comment="Mobile-terminated SMS"
    )
    incoming_ppm: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(RATE_PRECISION, RATE_SCALE), nullable=True
    )
    outgoing_ppm_fix: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(RATE_PRECISION, RATE_SCALE), nullable=True
    )
    outgoing_ppm_mobile: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(RATE_PRECISION, RATE_SCALE), nullable=True
    )
    incoming_sms: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(RATE_PRECISION, RATE_SCALE), nullable=True
    )
    outgoing_sms: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(RATE_PRECISION, RATE_SCALE), nullable=True
    )

    billing_pulse: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    estimated_lead_time: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    contract_term: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    disconnection_notice_term: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )

    def populated_rates(self) -> dict[str, Decimal]:
        """Return rate fields that hold a value."""
        return {
            name: getattr(self, name)
            for name in RATE_FIELDS
            if getattr(self, name) is not None
        }

    def populated_terms(self) -> dict[str, str]:
        """Return term fields that hold a value."""
        return {
            name: getattr(self, name)
            for name in TERM_FIELDS
            if getattr(self, name) is not None
        }

    def assign_fields(self, rates: dict[str, Decimal], terms: dict[str, str]) -> None:
        """
        Replace every rate and term column with the given values.

        Columns missing from ``rates``/``terms`` are cleared.
        """
        for name in RATE_FIELDS:
            setattr(self, name, rates.get(name))
        for name in TERM_FIELDS:
            setattr(self, name, terms.get(name))


class Product(BaseModel):
    """
    Orderable number product.

    Attributes:
        code: Product code selecting the relevant pricing fields
        name: Display name
        category: Optional grouping label
    """

    __tablename__ = "products"

    code: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True, index=True, comment="Product code"
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)


class Country(BaseModel):
    """Country a number can be ordered in."""

    __tablename__ = "countries"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    iso_code: Mapped[str] = mapped_column(
        String(2), nullable=False, unique=True, comment="ISO 3166-1 alpha-2 code"
    )
    phone_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)


class PricingPlan(RateColumnsMixin, BaseModel):
    """
    Base rate plan for a product in a country.

    A plan without ``area_code`` applies country-wide; a plan with one
    applies only to that area and takes precedence over the country-wide
    plan. Only ``Active`` plans whose effective window covers the lookup
    date are eligible.
    """

    __tablename__ = "pricing_plans"

    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    country_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("countries.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    area_code: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True, comment="Area code, NULL for country-wide plans"
    )
    status: Mapped[PlanStatus] = mapped_column(
        enum_type(PlanStatus, "plan_status"),
        nullable=False,
        default=PlanStatus.ACTIVE,
    )
    effective_from: Mapped[date] = mapped_column(
        Date, nullable=False, default=date.today
    )
    effective_to: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    __table_args__ = (
        Index(
            "ix_pricing_plans_lookup",
            "product_id",
            "country_id",
            "area_code",
            "status",
        ),
        CheckConstraint(
            "effective_to IS NULL OR effective_to >= effective_from",
            name="ck_pricing_plans_effective_window",
        ),
    )

