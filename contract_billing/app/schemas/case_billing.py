from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.case_billing import CaseBillingItemStatus, CaseType
from .billing import BillingItemRead


class CaseLineCreate(BaseModel):
    """Article a technician adds to a case."""

    customer_id: Optional[str] = None
    article_id: Optional[str] = None
    article_code: Optional[str] = None
    article_name: str = Field(..., min_length=1)
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    unit_price: Decimal = Field(..., ge=0)
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    vat_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    service_date: Optional[date] = None
    added_by_technician_name: Optional[str] = None
    notes: Optional[str] = None


class CaseLineRead(BaseModel):
    id: str
    case_id: str
    case_type: CaseType
    customer_id: Optional[str] = None
    article_id: Optional[str] = None
    article_code: Optional[str] = None
    article_name: str
    quantity: Decimal
    unit_price: Decimal
    discount_percent: Decimal
    discounted_price: Decimal
    total_price: Decimal
    vat_rate: Decimal
    requires_approval: bool
    service_date: Optional[date] = None
    status: CaseBillingItemStatus
    billed_at: Optional[datetime] = None
    billing_item_id: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CaseBillingSummary(BaseModel):
    item_count: int
    subtotal: Decimal
    total_discount: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    requires_approval: bool


class CaseImportRequest(BaseModel):
    completed_on: Optional[date] = Field(
        default=None, description="Completion date used for lines without a service date"
    )


class CaseImportResult(BaseModel):
    """Lines copied from a case into contract billing."""

    case_id: str
    case_type: CaseType
    imported: list[BillingItemRead] = Field(default_factory=list)
    requires_approval_count: int = 0


class CaseBillingLines(BaseModel):
    """Lines of one case with the totals shown on the case view."""

    items: list[CaseLineRead]
    summary: CaseBillingSummary
