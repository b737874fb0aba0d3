"""Copy completed case work into contract billing as ad-hoc lines."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models, schemas
from . import billing_rules
from .billing_errors import BillingLineConflictError, BillingStoreError, CustomerNotFoundError
from .billing_lines import BillingLineService
from .billing_periods import BillingPeriodService, quantize_amount
from .case_billing import CaseBillingService

LOGGER = logging.getLogger(__name__)


def case_dedup_key(case_type: models.CaseType, case_id: str, source_line_id: str) -> str:
    return f"case:{case_type.value}:{case_id}:{source_line_id}"


def _build_adhoc_line(
    source: models.CaseBillingItem,
    case_id: str,
    case_type: models.CaseType,
    customer_id: str,
    completed_on: date,
    now: datetime,
) -> models.ContractBillingItem:
    period_start, period_end = BillingPeriodService.enclosing_month(
        source.service_date or completed_on
    )
    discount = Decimal(source.discount_percent or 0)
    flagged = billing_rules.requires_approval(discount)
    quantity = Decimal(source.quantity)
    unit_price = quantize_amount(source.discounted_price)
    return models.ContractBillingItem(
        customer_id=customer_id,
        billing_period_start=period_start,
        billing_period_end=period_end,
        article_id=source.article_id,
        article_code=source.article_code,
        article_name=source.article_name,
        quantity=quantity,
        unit_price=unit_price,
        total_price=quantize_amount(unit_price * quantity),
        vat_rate=source.vat_rate,
        status=(
            models.BillingItemStatus.PENDING if flagged else models.BillingItemStatus.APPROVED
        ),
        approved_at=None if flagged else now,
        item_type=models.BillingItemType.AD_HOC,
        source=models.BillingItemSource.CASE_COMPLETION,
        discount_percent=discount,
        original_price=quantize_amount(source.unit_price),
        requires_approval=flagged,
        case_id=case_id,
        case_type=case_type,
        dedup_key=case_dedup_key(case_type, case_id, source.id),
        notes=source.notes,
    )


def import_case_lines(
    db: Session,
    case_id: str,
    case_type: models.CaseType,
    completed_on: Optional[date] = None,
    *,
    customer_id: Optional[str] = None,
) -> schemas.CaseImportResult:
    """Import every unconsumed line of a case in a single transaction.

    Returns an empty result when the case has nothing left to bill, so a
    repeated import is harmless.
    """

    completed_on = completed_on or date.today()
    sources = CaseBillingService.get_case_billing_lines(db, case_id, case_type)
    result = schemas.CaseImportResult(case_id=case_id, case_type=case_type)
    if not sources:
        LOGGER.info("Case %s/%s has no billing lines to import", case_type.value, case_id)
        return result

    now = datetime.now(timezone.utc)
    created: list[models.ContractBillingItem] = []
    billed_ids: dict[str, str] = {}
    known_owners: set[str] = set()
    try:
        for source in sources:
            owner = source.customer_id or customer_id
            if not owner:
                raise ValueError(
                    f"Case line {source.id} has no customer; pass customer_id to import it"
                )
            if owner not in known_owners:
                if db.get(models.Customer, owner) is None:
                    raise CustomerNotFoundError(
                        "Customer not found", detail={"customer_id": owner}
                    )
                known_owners.add(owner)
            line = _build_adhoc_line(source, case_id, case_type, owner, completed_on, now)
            BillingLineService.add_line(db, line)
            created.append(line)
            billed_ids[source.id] = line.id

        CaseBillingService.mark_case_lines_billed(sources, billed_ids, billed_at=now)
        db.commit()
    except (BillingLineConflictError, CustomerNotFoundError, ValueError):
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        LOGGER.exception("Failed to import billing lines of case %s", case_id)
        raise BillingStoreError("Could not import the case billing lines") from exc

    for line in created:
        db.refresh(line)
    result.imported = [schemas.BillingItemRead.model_validate(line) for line in created]
    result.requires_approval_count = sum(1 for line in created if line.requires_approval)
    LOGGER.info(
        "Imported %s ad-hoc lines from case %s/%s (%s awaiting approval)",
        len(created),
        case_type.value,
        case_id,
        result.requires_approval_count,
    )
    return result
