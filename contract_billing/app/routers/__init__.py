"""Routers package."""

from .billing_batches import router as billing_batches_router
from .billing_items import router as billing_items_router
from .cases import router as cases_router
from .contract_invoices import router as contract_invoices_router

__all__ = [
    "billing_batches_router",
    "billing_items_router",
    "cases_router",
    "contract_invoices_router",
]
