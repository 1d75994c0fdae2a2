"""Logistics API package."""

from logistics.api.errors import register_error_handlers
from logistics.api.routes import (
    availability_router,
    fulfillment_router,
    maintenance_router,
    quote_router,
    reservation_router,
    stock_router,
)

__all__ = [
    "availability_router",
    "fulfillment_router",
    "maintenance_router",
    "quote_router",
    "register_error_handlers",
    "reservation_router",
    "stock_router",
]
