"""
API v1 package initialization.
"""

from telecore.api.v1.disconnections import router as disconnections_router
from telecore.api.v1.invoices import router as invoices_router
from telecore.api.v1.numbers import router as numbers_router
from telecore.api.v1.orders import router as orders_router
from telecore.api.v1.pricing import router as pricing_router
from telecore.api.v1.wallet import router as wallet_router

__all__ = [
    "disconnections_router",
    "invoices_router",
    "numbers_router",
    "orders_router",
    "pricing_router",
    "wallet_router",
]
