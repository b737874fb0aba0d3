"""Router exposing the derived invoice and pipeline views."""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..services import (
    BillingPeriodService,
    ContractBillingError,
    InvoiceService,
    export_invoices,
    get_monthly_pipeline_data,
)
from .errors import http_error

LOGGER = logging.getLogger(__name__)

router = APIRouter()

MAX_PIPELINE_MONTHS = 36


def _validate_month_key(raw: str, field: str) -> str:
    try:
        key, _, _ = BillingPeriodService.parse_period_key(raw)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {field}, expected YYYY-MM",
        ) from exc
    return key


@router.get("/customers/{customer_id}", response_model=schemas.ContractInvoice)
def get_customer_invoice(
    customer_id: str,
    period_start: date = Query(...),
    period_end: date = Query(...),
    db: Session = Depends(get_db),
) -> schemas.ContractInvoice:
    try:
        invoice = InvoiceService.get_customer_invoice(db, customer_id, period_start, period_end)
    except (ContractBillingError, ValueError) as exc:
        raise http_error(exc) from exc
    if invoice is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No billable lines for this customer and period",
        )
    return invoice


@router.patch("/customers/{customer_id}/status", response_model=schemas.BulkStatusResult)
def update_invoice_status(
    customer_id: str,
    payload: schemas.InvoiceStatusUpdate,
    db: Session = Depends(get_db),
) -> schemas.BulkStatusResult:
    try:
        return InvoiceService.update_invoice_status(db, customer_id, payload)
    except (ContractBillingError, ValueError) as exc:
        raise http_error(exc) from exc


@router.get("/pipeline", response_model=list[schemas.BillingPeriodSummary])
def get_billing_pipeline(
    db: Session = Depends(get_db),
    period_start: Optional[date] = Query(None),
    period_end: Optional[date] = Query(None),
    customer_id: Optional[str] = Query(None),
    status_filter: Optional[List[models.BillingItemStatus]] = Query(None, alias="status"),
    item_type: Optional[models.BillingItemType] = Query(None),
    search: Optional[str] = Query(None, description="Customer name, org number or e-mail"),
) -> list[schemas.BillingPeriodSummary]:
    try:
        return InvoiceService.get_billing_pipeline(
            db,
            period_start=period_start,
            period_end=period_end,
            customer_id=customer_id,
            statuses=status_filter,
            item_type=item_type,
            search=search,
        )
    except ContractBillingError as exc:
        raise http_error(exc) from exc


@router.get("/monthly-pipeline", response_model=list[schemas.MonthlyPipelineSummary])
def get_monthly_pipeline(
    start_month: str = Query(..., description="First month, YYYY-MM"),
    end_month: str = Query(..., description="Last month, YYYY-MM"),
    db: Session = Depends(get_db),
) -> list[schemas.MonthlyPipelineSummary]:
    start_key = _validate_month_key(start_month, "start_month")
    end_key = _validate_month_key(end_month, "end_month")
    if end_key < start_key:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end_month cannot be before start_month",
        )
    months = list(BillingPeriodService.iter_months(start_key, end_key))
    if len(months) > MAX_PIPELINE_MONTHS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"The pipeline covers at most {MAX_PIPELINE_MONTHS} months",
        )
    try:
        return get_monthly_pipeline_data(db, start_key, end_key)
    except ContractBillingError as exc:
        raise http_error(exc) from exc


@router.get("/export", response_class=StreamingResponse)
def export_invoice_lines(
    db: Session = Depends(get_db),
    period_start: Optional[date] = Query(None),
    period_end: Optional[date] = Query(None),
    customer_id: Optional[str] = Query(None),
    status_filter: Optional[List[models.BillingItemStatus]] = Query(None, alias="status"),
) -> StreamingResponse:
    """Download the invoices as a semicolon separated file."""

    try:
        periods = InvoiceService.get_billing_pipeline(
            db,
            period_start=period_start,
            period_end=period_end,
            customer_id=customer_id,
            statuses=status_filter,
        )
    except ContractBillingError as exc:
        raise http_error(exc) from exc

    invoices = [invoice for period in periods for invoice in period.invoices]
    csv_content = export_invoices(invoices)
    filename = "fakturaunderlag.csv"
    if period_start:
        filename = f"fakturaunderlag_{BillingPeriodService.month_key(period_start)}.csv"
    headers = {
        "Content-Disposition": f"attachment; filename={filename}",
        "Cache-Control": "no-store",
    }
    LOGGER.info("Exported %s invoices", len(invoices))
    return StreamingResponse(
        iter([csv_content]), media_type="text/csv; charset=utf-8", headers=headers
    )


@router.post("/group", response_model=list[schemas.ContractInvoice])
def group_lines(
    payload: schemas.GroupLinesRequest, db: Session = Depends(get_db)
) -> list[schemas.ContractInvoice]:
    return InvoiceService.group_line_ids(db, payload.item_ids)
