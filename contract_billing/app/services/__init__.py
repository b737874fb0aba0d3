"""Service layer encapsulating business logic for API routers."""

from .billing_errors import (
    ArticleNotFoundError,
    BatchGenerationError,
    BatchNotFoundError,
    BillingLineConflictError,
    BillingLineNotFoundError,
    BillingStoreError,
    BillingTransitionError,
    ContractBillingError,
    CustomerNotFoundError,
)
from .billing_periods import BillingPeriodService
from .price_catalog import PriceCatalogEntry, PriceCatalogService
from .billing_lines import BillingLineService
from .line_generator import generate_billing_lines
from .case_billing import CaseBillingService
from .adhoc_import import import_case_lines
from .billing_batches import BatchRunResult, BatchService, resolve_failure_policy
from .invoices import InvoiceService, derive_status, group_lines_into_invoices
from .pipeline import build_monthly_pipeline, get_monthly_pipeline_data
from .export import export_invoices

__all__ = [
    "ArticleNotFoundError",
    "BatchGenerationError",
    "BatchNotFoundError",
    "BillingLineConflictError",
    "BillingLineNotFoundError",
    "BillingStoreError",
    "BillingTransitionError",
    "ContractBillingError",
    "CustomerNotFoundError",
    "BillingPeriodService",
    "PriceCatalogEntry",
    "PriceCatalogService",
    "BillingLineService",
    "generate_billing_lines",
    "CaseBillingService",
    "import_case_lines",
    "BatchRunResult",
    "BatchService",
    "resolve_failure_policy",
    "InvoiceService",
    "derive_status",
    "group_lines_into_invoices",
    "build_monthly_pipeline",
    "get_monthly_pipeline_data",
    "export_invoices",
]
