"""
Database models package initialization.

Models are imported here so they are registered with the Base metadata
for ``create_all`` and Alembic autogeneration.
"""

from telecore.database.base import Base, BaseModel, TimestampMixin, UUIDMixin
from telecore.database.models.catalog import Country, PlanStatus, PricingPlan, Product
from telecore.database.models.invoice import Invoice, InvoiceStatus
from telecore.database.models.number import (
    DisconnectionRequest,
    DisconnectionStatus,
    NumberStatus,
    PhoneNumber,
    RequestStatus,
)
from telecore.database.models.order import (
    Order,
    OrderPricing,
    OrderStatusHistory,
    PricingType,
)
from telecore.database.models.wallet import (
    TransactionType,
    WalletSettings,
    WalletTransaction,
)

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "Country",
    "PlanStatus",
    "PricingPlan",
    "Product",
    "Invoice",
    "InvoiceStatus",
    "DisconnectionRequest",
    "DisconnectionStatus",
    "NumberStatus",
    "PhoneNumber",
    "RequestStatus",
    "Order",
    "OrderPricing",
    "OrderStatusHistory",
    "PricingType",
    "TransactionType",
    "WalletSettings",
    "WalletTransaction",
]
