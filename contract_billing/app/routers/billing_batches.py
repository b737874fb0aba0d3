"""Router exposing billing batch generation and lifecycle."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..services import BatchService, ContractBillingError, PriceCatalogService
from .errors import http_error

LOGGER = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/generate",
    response_model=schemas.BatchGenerationResult,
    status_code=status.HTTP_201_CREATED,
)
def generate_batch(
    payload: schemas.BatchGenerateRequest, db: Session = Depends(get_db)
) -> schemas.BatchGenerationResult:
    """Generate contract lines for every eligible customer of a frequency."""

    try:
        run = BatchService.generate_batch_billing(
            db,
            payload.billing_frequency,
            payload.period_start,
            payload.period_end,
            notes=payload.notes,
            failure_policy=payload.failure_policy,
        )
    except (ContractBillingError, ValueError) as exc:
        raise http_error(exc) from exc
    return run.to_schema()


@router.get("", response_model=schemas.BatchListResponse)
def list_batches(
    db: Session = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
) -> schemas.BatchListResponse:
    items, total = BatchService.list_batches(db, skip=skip, limit=limit)
    return schemas.BatchListResponse(items=items, total=total, limit=limit, skip=skip)


@router.get("/eligible-customers", response_model=list[schemas.EligibleCustomerRead])
def list_eligible_customers(
    billing_frequency: models.BillingFrequency = Query(...),
    db: Session = Depends(get_db),
):
    try:
        return PriceCatalogService.list_eligible_customers(db, billing_frequency)
    except ContractBillingError as exc:
        raise http_error(exc) from exc


@router.get("/{batch_id}", response_model=schemas.BatchWithItems)
def get_batch(batch_id: str, db: Session = Depends(get_db)) -> schemas.BatchWithItems:
    try:
        batch, items = BatchService.get_batch_with_items(db, batch_id)
    except ContractBillingError as exc:
        raise http_error(exc) from exc
    return schemas.BatchWithItems(batch=batch, items=items)


@router.patch("/{batch_id}/status", response_model=schemas.BatchRead)
def update_batch_status(
    batch_id: str,
    payload: schemas.BatchStatusUpdate,
    db: Session = Depends(get_db),
):
    try:
        return BatchService.update_batch_status(db, batch_id, payload.status)
    except ContractBillingError as exc:
        raise http_error(exc) from exc


@router.delete("/{batch_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_batch(batch_id: str, db: Session = Depends(get_db)) -> Response:
    try:
        BatchService.delete_batch(db, batch_id)
    except ContractBillingError as exc:
        raise http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
