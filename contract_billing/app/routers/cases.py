"""Router exposing case billing lines and their import into contract billing."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..services import CaseBillingService, ContractBillingError, import_case_lines
from .errors import http_error

LOGGER = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/{case_type}/{case_id}/billing-lines",
    response_model=schemas.CaseBillingLines,
)
def list_case_billing_lines(
    case_type: models.CaseType,
    case_id: str,
    include_billed: bool = Query(True, description="Include lines already imported"),
    db: Session = Depends(get_db),
) -> schemas.CaseBillingLines:
    try:
        lines = CaseBillingService.get_case_billing_lines(
            db, case_id, case_type, include_billed=include_billed
        )
    except ContractBillingError as exc:
        raise http_error(exc) from exc
    return schemas.CaseBillingLines(
        items=lines, summary=CaseBillingService.case_billing_summary(lines)
    )


@router.post(
    "/{case_type}/{case_id}/billing-lines",
    response_model=schemas.CaseLineRead,
    status_code=status.HTTP_201_CREATED,
)
def add_case_billing_line(
    case_type: models.CaseType,
    case_id: str,
    line_in: schemas.CaseLineCreate,
    db: Session = Depends(get_db),
):
    try:
        return CaseBillingService.add_case_line(db, case_id, case_type, line_in)
    except ContractBillingError as exc:
        raise http_error(exc) from exc


@router.post(
    "/{case_type}/{case_id}/billing-import",
    response_model=schemas.CaseImportResult,
)
def import_case_billing(
    case_type: models.CaseType,
    case_id: str,
    payload: Optional[schemas.CaseImportRequest] = None,
    customer_id: Optional[str] = Query(
        None, description="Customer to bill when the case lines carry none"
    ),
    db: Session = Depends(get_db),
) -> schemas.CaseImportResult:
    """Copy a completed case's lines into contract billing."""

    completed_on = payload.completed_on if payload else None
    try:
        return import_case_lines(
            db, case_id, case_type, completed_on, customer_id=customer_id
        )
    except (ContractBillingError, ValueError) as exc:
        raise http_error(exc) from exc
