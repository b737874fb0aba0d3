"""Router exposing contract billing line operations."""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..services import BillingLineService, ContractBillingError
from .errors import http_error

LOGGER = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=schemas.BillingItemListResponse)
def list_billing_items(
    db: Session = Depends(get_db),
    customer_id: Optional[str] = Query(None, description="Filter by customer"),
    status_filter: Optional[List[models.BillingItemStatus]] = Query(
        None, alias="status", description="One or more line statuses"
    ),
    item_type: Optional[models.BillingItemType] = Query(
        None, description="contract or ad_hoc; omit for all"
    ),
    batch_id: Optional[str] = Query(None, description="Filter by generation batch"),
    requires_approval: Optional[bool] = Query(None),
    period_start: Optional[date] = Query(None, description="Periods starting on or after"),
    period_end: Optional[date] = Query(None, description="Periods starting on or before"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
) -> schemas.BillingItemListResponse:
    if period_start and period_end and period_start > period_end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="period_start cannot be after period_end",
        )
    try:
        items, total = BillingLineService.list_lines(
            db,
            customer_id=customer_id,
            statuses=status_filter,
            item_type=item_type,
            batch_id=batch_id,
            requires_approval=requires_approval,
            period_start=period_start,
            period_end=period_end,
            skip=skip,
            limit=limit,
        )
    except ContractBillingError as exc:
        raise http_error(exc) from exc
    return schemas.BillingItemListResponse(items=items, total=total, limit=limit, skip=skip)


@router.post(
    "",
    response_model=schemas.BillingItemRead,
    status_code=status.HTTP_201_CREATED,
)
def create_billing_item(
    item_in: schemas.BillingItemCreate, db: Session = Depends(get_db)
) -> schemas.BillingItemRead:
    try:
        return BillingLineService.create_line(db, item_in)
    except (ContractBillingError, ValueError) as exc:
        raise http_error(exc) from exc


@router.get("/stats", response_model=schemas.BillingStats)
def billing_stats(
    db: Session = Depends(get_db),
    period_start: Optional[date] = Query(None),
    period_end: Optional[date] = Query(None),
) -> schemas.BillingStats:
    try:
        return BillingLineService.billing_stats(
            db, period_start=period_start, period_end=period_end
        )
    except ContractBillingError as exc:
        raise http_error(exc) from exc


@router.get("/requiring-approval", response_model=list[schemas.BillingItemRead])
def list_items_requiring_approval(db: Session = Depends(get_db)):
    """Discounted lines that are still waiting for an explicit approval."""

    return BillingLineService.list_requiring_approval(db)


@router.post("/bulk-status", response_model=schemas.BulkStatusResult)
def bulk_update_status(
    payload: schemas.BulkStatusUpdate, db: Session = Depends(get_db)
) -> schemas.BulkStatusResult:
    try:
        return BillingLineService.bulk_update_status(db, payload.ids, payload.status)
    except ContractBillingError as exc:
        raise http_error(exc) from exc


@router.get("/{item_id}", response_model=schemas.BillingItemRead)
def get_billing_item(item_id: str, db: Session = Depends(get_db)):
    try:
        return BillingLineService.get_line(db, item_id)
    except ContractBillingError as exc:
        raise http_error(exc) from exc


@router.patch("/{item_id}/status", response_model=schemas.BillingItemRead)
def update_billing_item_status(
    item_id: str,
    payload: schemas.BillingItemStatusUpdate,
    db: Session = Depends(get_db),
):
    try:
        return BillingLineService.update_status(db, item_id, payload)
    except ContractBillingError as exc:
        raise http_error(exc) from exc


@router.post("/{item_id}/approve-discount", response_model=schemas.BillingItemRead)
def approve_discount(item_id: str, db: Session = Depends(get_db)):
    try:
        return BillingLineService.approve_discount(db, item_id)
    except ContractBillingError as exc:
        raise http_error(exc) from exc


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_billing_item(item_id: str, db: Session = Depends(get_db)) -> Response:
    try:
        BillingLineService.delete_line(db, item_id)
    except ContractBillingError as exc:
        raise http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
