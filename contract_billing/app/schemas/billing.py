from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models.case_billing import CaseType
from ..models.contract_billing import (
    BatchStatus,
    BillingItemSource,
    BillingItemStatus,
    BillingItemType,
)
from ..models.customer import BillingFrequency
from .common import PaginatedResponse


class BillingCustomerSummary(BaseModel):
    """Customer fields shown next to billing lines and invoices."""

    id: str
    company_name: str
    organization_number: Optional[str] = None
    billing_email: Optional[str] = None
    billing_address: Optional[str] = None
    contact_address: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class BillingItemBase(BaseModel):
    """Shared attributes for billing line operations."""

    customer_id: str = Field(..., description="Customer that owns the charge")
    billing_period_start: date
    billing_period_end: date
    article_id: Optional[str] = None
    article_code: Optional[str] = None
    article_name: str = Field(..., min_length=1)
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    unit_price: Decimal = Field(..., ge=0, description="Unit price after discount")
    vat_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    item_type: BillingItemType = BillingItemType.CONTRACT
    source: BillingItemSource = BillingItemSource.MANUAL
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    original_price: Optional[Decimal] = Field(default=None, ge=0)
    batch_id: Optional[str] = None
    case_id: Optional[str] = None
    case_type: Optional[CaseType] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_period(self):
        if self.billing_period_end < self.billing_period_start:
            raise ValueError("billing_period_end cannot be before billing_period_start")
        return self


class BillingItemCreate(BillingItemBase):
    """Payload to register a billing line by hand."""

    pass


class BillingItemRead(BaseModel):
    """Billing line as returned by the API."""

    id: str
    customer_id: str
    billing_period_start: date
    billing_period_end: date
    article_id: Optional[str] = None
    article_code: Optional[str] = None
    article_name: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    vat_rate: Decimal
    status: BillingItemStatus
    item_type: BillingItemType
    source: BillingItemSource
    discount_percent: Decimal = Decimal("0")
    original_price: Optional[Decimal] = None
    requires_approval: bool = False
    batch_id: Optional[str] = None
    case_id: Optional[str] = None
    case_type: Optional[CaseType] = None
    generated_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    invoiced_at: Optional[datetime] = None
    invoice_number: Optional[str] = None
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    customer: Optional[BillingCustomerSummary] = None

    model_config = ConfigDict(from_attributes=True)


class BillingItemListResponse(PaginatedResponse[BillingItemRead]):
    """Paginated billing line listing."""

    pass


class BillingItemStatusUpdate(BaseModel):
    """Move one billing line to a new status."""

    status: BillingItemStatus
    invoice_number: Optional[str] = Field(default=None, max_length=64)
    notes: Optional[str] = None


class BulkStatusUpdate(BaseModel):
    """Move many billing lines to the same status."""

    ids: list[str] = Field(..., min_length=1)
    status: BillingItemStatus


class BulkStatusResult(BaseModel):
    """Outcome of a bulk status change."""

    status: BillingItemStatus
    updated: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(
        default_factory=list, description="Lines already in the target status"
    )
    held_for_approval: list[str] = Field(
        default_factory=list, description="Discounted lines waiting for approval"
    )


class BillingStatusStat(BaseModel):
    count: int = 0
    amount: Decimal = Decimal("0")


class BillingStats(BaseModel):
    """Line count and amount per lifecycle status."""

    pending: BillingStatusStat = Field(default_factory=BillingStatusStat)
    approved: BillingStatusStat = Field(default_factory=BillingStatusStat)
    invoiced: BillingStatusStat = Field(default_factory=BillingStatusStat)
    paid: BillingStatusStat = Field(default_factory=BillingStatusStat)


class BatchRead(BaseModel):
    """Generation batch with the counters recorded when it was generated."""

    id: str
    batch_number: str
    billing_period_start: date
    billing_period_end: date
    billing_frequency: Optional[BillingFrequency] = None
    status: BatchStatus
    total_customers: int
    total_items: int
    total_amount: Decimal
    failed_customers: int = 0
    generated_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class BatchListResponse(PaginatedResponse[BatchRead]):
    """Paginated batch listing, newest first."""

    pass


class BatchWithItems(BaseModel):
    batch: BatchRead
    items: list[BillingItemRead]


class BatchGenerateRequest(BaseModel):
    """Parameters for a bulk generation run."""

    billing_frequency: BillingFrequency
    period_start: date
    period_end: date
    notes: Optional[str] = None
    failure_policy: Optional[str] = Field(
        default=None,
        pattern="^(continue|abort)$",
        description="Override BILLING_BATCH_FAILURE_POLICY for this run",
    )

    @model_validator(mode="after")
    def validate_period(self):
        if self.period_end < self.period_start:
            raise ValueError("period_end cannot be before period_start")
        return self


class BatchCustomerFailure(BaseModel):
    customer_id: str
    company_name: Optional[str] = None
    reason: str


class BatchGenerationResult(BaseModel):
    """Batch plus the aggregate counters of the run."""

    batch: BatchRead
    item_count: int
    customer_count: int
    total_amount: Decimal
    failed_customers: list[BatchCustomerFailure] = Field(default_factory=list)


class BatchStatusUpdate(BaseModel):
    status: BatchStatus


class EligibleCustomerRead(BaseModel):
    id: str
    company_name: str
    organization_number: Optional[str] = None
    billing_email: Optional[str] = None
    billing_frequency: Optional[BillingFrequency] = None
    price_list_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
