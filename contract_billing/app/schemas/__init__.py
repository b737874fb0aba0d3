"""Expose Pydantic schemas for convenient imports."""

from .common import PaginatedResponse
from .billing import (
    BatchCustomerFailure,
    BatchGenerateRequest,
    BatchGenerationResult,
    BatchListResponse,
    BatchRead,
    BatchStatusUpdate,
    BatchWithItems,
    BillingCustomerSummary,
    BillingItemBase,
    BillingItemCreate,
    BillingItemListResponse,
    BillingItemRead,
    BillingItemStatusUpdate,
    BillingStats,
    BillingStatusStat,
    BulkStatusResult,
    BulkStatusUpdate,
    EligibleCustomerRead,
)
from .case_billing import (
    CaseBillingLines,
    CaseBillingSummary,
    CaseImportRequest,
    CaseImportResult,
    CaseLineCreate,
    CaseLineRead,
)
from .invoice import (
    BillingPeriodSummary,
    ContractInvoice,
    GroupLinesRequest,
    InvoiceStatus,
    InvoiceStatusUpdate,
    MonthlyCustomerEntry,
    MonthlyCustomerStatus,
    MonthlyPipelineSummary,
    PipelineCustomer,
)

__all__ = [
    "PaginatedResponse",
    "BatchCustomerFailure",
    "BatchGenerateRequest",
    "BatchGenerationResult",
    "BatchListResponse",
    "BatchRead",
    "BatchStatusUpdate",
    "BatchWithItems",
    "BillingCustomerSummary",
    "BillingItemBase",
    "BillingItemCreate",
    "BillingItemListResponse",
    "BillingItemRead",
    "BillingItemStatusUpdate",
    "BillingStats",
    "BillingStatusStat",
    "BulkStatusResult",
    "BulkStatusUpdate",
    "EligibleCustomerRead",
    "CaseBillingLines",
    "CaseBillingSummary",
    "CaseImportRequest",
    "CaseImportResult",
    "CaseLineCreate",
    "CaseLineRead",
    "BillingPeriodSummary",
    "ContractInvoice",
    "GroupLinesRequest",
    "InvoiceStatus",
    "InvoiceStatusUpdate",
    "MonthlyCustomerEntry",
    "MonthlyCustomerStatus",
    "MonthlyPipelineSummary",
    "PipelineCustomer",
]
