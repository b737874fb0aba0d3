"""Expose SQLAlchemy models for convenient imports."""

from .customer import BillingFrequency, ContractStatus, Customer
from .price_list import Article, PriceList, PriceListItem
from .case_billing import CaseBillingItem, CaseBillingItemStatus, CaseType
from .contract_billing import (
    BatchStatus,
    BillingItemSource,
    BillingItemStatus,
    BillingItemType,
    ContractBillingBatch,
    ContractBillingItem,
)

__all__ = [
    "Article",
    "BatchStatus",
    "BillingFrequency",
    "BillingItemSource",
    "BillingItemStatus",
    "BillingItemType",
    "CaseBillingItem",
    "CaseBillingItemStatus",
    "CaseType",
    "ContractBillingBatch",
    "ContractBillingItem",
    "ContractStatus",
    "Customer",
    "PriceList",
    "PriceListItem",
]
