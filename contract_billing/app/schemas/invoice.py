"""Schemas for derived invoices and the billing pipeline views."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models.contract_billing import BillingItemStatus
from ..models.customer import BillingFrequency, ContractStatus
from .billing import BillingCustomerSummary, BillingItemRead


class InvoiceStatus(str, Enum):
    """Status of an invoice, derived from its non-cancelled lines."""

    PENDING = "pending"
    APPROVED = "approved"
    INVOICED = "invoiced"
    PAID = "paid"
    MIXED = "mixed"


class MonthlyCustomerStatus(str, Enum):
    """Classification of one customer × month cell of the pipeline."""

    NOT_BILLABLE = "not_billable"
    AWAITING_GENERATION = "awaiting_generation"
    PENDING = "pending"
    APPROVED = "approved"
    INVOICED = "invoiced"
    PAID = "paid"
    MIXED = "mixed"


class ContractInvoice(BaseModel):
    """All billing lines of one customer in one calendar month."""

    customer_id: str
    period_start: date
    period_end: date
    customer: Optional[BillingCustomerSummary] = None
    items: list[BillingItemRead]
    subtotal: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    item_count: int
    derived_status: InvoiceStatus
    has_items_requiring_approval: bool
    has_discount: bool
    batch_id: Optional[str] = None


class BillingPeriodSummary(BaseModel):
    """Invoices of one calendar month."""

    period_start: date
    period_end: date
    period_label: str
    customer_count: int
    item_count: int
    total_amount: Decimal
    invoices: list[ContractInvoice]
    status_breakdown: dict[InvoiceStatus, int]


class InvoiceStatusUpdate(BaseModel):
    """Advance every line of one invoice."""

    period_start: date
    period_end: date
    status: BillingItemStatus
    invoice_number: Optional[str] = Field(default=None, max_length=64)

    @model_validator(mode="after")
    def validate_period(self):
        if self.period_end < self.period_start:
            raise ValueError("period_end cannot be before period_start")
        return self


class GroupLinesRequest(BaseModel):
    item_ids: list[str] = Field(..., min_length=1)


class PipelineCustomer(BaseModel):
    """Customer profile fields used by the monthly pipeline."""

    id: str
    company_name: str
    organization_number: Optional[str] = None
    billing_email: Optional[str] = None
    billing_frequency: Optional[BillingFrequency] = None
    price_list_id: Optional[str] = None
    price_list_name: Optional[str] = None
    contract_status: ContractStatus = ContractStatus.ACTIVE
    effective_end_date: Optional[date] = None
    monthly_value: Optional[Decimal] = None
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)


class MonthlyCustomerEntry(BaseModel):
    """One cell of the customer × month matrix."""

    customer: PipelineCustomer
    status: MonthlyCustomerStatus
    items: list[BillingItemRead] = Field(default_factory=list)
    recurring_amount: Decimal = Decimal("0")
    adhoc_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    projected_amount: Decimal = Field(
        default=Decimal("0"),
        description="Estimated amount for cells without generated lines",
    )
    is_projected: bool = False
    item_count: int = 0
    has_items_requiring_approval: bool = False


class MonthlyPipelineSummary(BaseModel):
    """One month of the pipeline matrix with its roll-ups."""

    month_key: str
    month_label: str
    period_start: date
    period_end: date
    customers: list[MonthlyCustomerEntry]
    total_customers: int
    billable_customers: int
    generated_customers: int
    missing_setup_customers: int
    total_amount: Decimal
    projected_amount: Decimal
    status_breakdown: dict[MonthlyCustomerStatus, int]
