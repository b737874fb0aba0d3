"""Access to the billing lines technicians register on service cases."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models, schemas
from . import billing_rules
from .billing_errors import BillingStoreError
from .billing_periods import quantize_amount
from .price_catalog import default_vat_rate

LOGGER = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def discounted_unit_price(unit_price: Decimal, discount_percent: Decimal) -> Decimal:
    factor = (HUNDRED - Decimal(discount_percent or 0)) / HUNDRED
    return quantize_amount(Decimal(unit_price) * factor)


class CaseBillingService:
    """Read and update case lines on behalf of the contract billing engine."""

    @staticmethod
    def get_case_billing_lines(
        db: Session,
        case_id: str,
        case_type: models.CaseType,
        *,
        include_billed: bool = False,
    ) -> list[models.CaseBillingItem]:
        query = db.query(models.CaseBillingItem).filter(
            models.CaseBillingItem.case_id == case_id,
            models.CaseBillingItem.case_type == case_type,
        )
        if not include_billed:
            query = query.filter(
                models.CaseBillingItem.status.notin_(
                    [models.CaseBillingItemStatus.BILLED, models.CaseBillingItemStatus.CANCELLED]
                ),
                models.CaseBillingItem.billing_item_id.is_(None),
            )
        try:
            return query.order_by(models.CaseBillingItem.created_at.asc()).all()
        except SQLAlchemyError as exc:
            LOGGER.exception("Failed to load billing lines for case %s", case_id)
            raise BillingStoreError("Could not load the case billing lines") from exc

    @staticmethod
    def mark_case_lines_billed(
        lines: Iterable[models.CaseBillingItem],
        billing_item_ids: Mapping[str, str],
        *,
        billed_at: Optional[datetime] = None,
    ) -> None:
        """Flag source lines as consumed; the caller commits."""

        timestamp = billed_at or datetime.now(timezone.utc)
        for line in lines:
            line.status = models.CaseBillingItemStatus.BILLED
            line.billed_at = timestamp
            line.billing_item_id = billing_item_ids.get(line.id)

    @staticmethod
    def add_case_line(
        db: Session,
        case_id: str,
        case_type: models.CaseType,
        data: schemas.CaseLineCreate,
    ) -> models.CaseBillingItem:
        discount = Decimal(data.discount_percent or 0)
        discounted = discounted_unit_price(data.unit_price, discount)
        line = models.CaseBillingItem(
            case_id=case_id,
            case_type=case_type,
            customer_id=data.customer_id,
            article_id=data.article_id,
            article_code=data.article_code,
            article_name=data.article_name,
            quantity=data.quantity,
            unit_price=quantize_amount(data.unit_price),
            discount_percent=discount,
            discounted_price=discounted,
            total_price=quantize_amount(discounted * Decimal(data.quantity)),
            vat_rate=data.vat_rate if data.vat_rate is not None else default_vat_rate(),
            requires_approval=billing_rules.requires_approval(discount),
            service_date=data.service_date,
            status=models.CaseBillingItemStatus.PENDING,
            added_by_technician_name=data.added_by_technician_name,
            notes=data.notes,
        )
        try:
            db.add(line)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            LOGGER.exception("Failed to add billing line to case %s", case_id)
            raise BillingStoreError("Could not save the case billing line") from exc
        db.refresh(line)
        return line

    @staticmethod
    def case_billing_summary(
        lines: Iterable[models.CaseBillingItem],
    ) -> schemas.CaseBillingSummary:
        """Totals for the case view; cancelled lines are left out."""

        active = [
            line for line in lines if line.status != models.CaseBillingItemStatus.CANCELLED
        ]
        subtotal = sum(
            (Decimal(line.unit_price) * Decimal(line.quantity) for line in active),
            Decimal("0"),
        )
        total = sum((Decimal(line.total_price) for line in active), Decimal("0"))
        vat = sum(
            (Decimal(line.total_price) * Decimal(line.vat_rate) / HUNDRED for line in active),
            Decimal("0"),
        )
        return schemas.CaseBillingSummary(
            item_count=len(active),
            subtotal=quantize_amount(subtotal),
            total_discount=quantize_amount(subtotal - total),
            vat_amount=quantize_amount(vat),
            total_amount=quantize_amount(total + vat),
            requires_approval=any(line.requires_approval for line in active),
        )
