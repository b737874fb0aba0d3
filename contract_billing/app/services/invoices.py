"""Derive per-customer monthly invoices from billing lines.

Invoices are never stored. Every view below is recomputed from the current
line state, so the grouping and status helpers are plain functions that can be
applied to any collection of lines.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .. import models, schemas
from .billing_errors import BillingLineNotFoundError, BillingStoreError
from .billing_lines import BillingLineService
from .billing_periods import BillingPeriodService, quantize_amount

LOGGER = logging.getLogger(__name__)

HUNDRED = Decimal("100")
CANCELLED = models.BillingItemStatus.CANCELLED


def active_lines(
    lines: Iterable[models.ContractBillingItem],
) -> list[models.ContractBillingItem]:
    return [line for line in lines if line.status != CANCELLED]


def derive_status(
    lines: Iterable[models.ContractBillingItem],
) -> Optional[schemas.InvoiceStatus]:
    """Single status when all live lines agree, ``mixed`` otherwise.

    Returns ``None`` when every line is cancelled.
    """

    statuses = {models.BillingItemStatus(line.status) for line in active_lines(lines)}
    if not statuses:
        return None
    if len(statuses) > 1:
        return schemas.InvoiceStatus.MIXED
    return schemas.InvoiceStatus(statuses.pop().value)


def vat_amount(lines: Iterable[models.ContractBillingItem]) -> Decimal:
    return quantize_amount(
        sum(
            (
                Decimal(line.total_price) * Decimal(line.vat_rate) / HUNDRED
                for line in lines
            ),
            Decimal("0"),
        )
    )


def _customer_name(line: models.ContractBillingItem) -> str:
    customer = line.customer
    if customer is not None and customer.company_name:
        return customer.company_name
    return str(line.customer_id)


def build_invoice(
    customer_id: str,
    period_start: date,
    period_end: date,
    lines: Sequence[models.ContractBillingItem],
) -> Optional[schemas.ContractInvoice]:
    status = derive_status(lines)
    if status is None:
        return None

    # Amounts cover every line of the group; cancelled ones only drop out of
    # the status and approval flags.
    subtotal = quantize_amount(
        sum((Decimal(line.total_price) for line in lines), Decimal("0"))
    )
    vat = vat_amount(lines)
    batch_ids = {line.batch_id for line in lines}
    customer = next((line.customer for line in lines if line.customer is not None), None)

    return schemas.ContractInvoice(
        customer_id=customer_id,
        period_start=period_start,
        period_end=period_end,
        customer=(
            schemas.BillingCustomerSummary.model_validate(customer) if customer else None
        ),
        items=[schemas.BillingItemRead.model_validate(line) for line in lines],
        subtotal=subtotal,
        vat_amount=vat,
        total_amount=quantize_amount(subtotal + vat),
        item_count=len(lines),
        derived_status=status,
        has_items_requiring_approval=any(
            line.requires_approval and line.status == models.BillingItemStatus.PENDING
            for line in active_lines(lines)
        ),
        has_discount=any(Decimal(line.discount_percent or 0) > 0 for line in lines),
        batch_id=batch_ids.pop() if len(batch_ids) == 1 else None,
    )


def group_lines_into_invoices(
    lines: Iterable[models.ContractBillingItem],
) -> list[schemas.ContractInvoice]:
    """Group lines by customer and calendar month of the period start.

    Contract and ad-hoc lines of the same month end up on the same invoice.
    The result does not depend on input order: newest month first, then
    customer name.
    """

    groups: dict[tuple[str, date], list[models.ContractBillingItem]] = defaultdict(list)
    names: dict[str, str] = {}
    for line in lines:
        month_start = BillingPeriodService.month_start(line.billing_period_start)
        key = (str(line.customer_id), month_start)
        groups[key].append(line)
        names.setdefault(key[0], _customer_name(line))

    invoices: list[schemas.ContractInvoice] = []
    for (customer_id, month_start), members in groups.items():
        members.sort(
            key=lambda line: (line.item_type.value, line.article_code or "", str(line.id))
        )
        invoice = build_invoice(
            customer_id, month_start, BillingPeriodService.month_end(month_start), members
        )
        if invoice is not None:
            invoices.append(invoice)

    invoices.sort(key=lambda inv: (names[inv.customer_id].lower(), inv.customer_id))
    invoices.sort(key=lambda inv: inv.period_start, reverse=True)
    return invoices


def summarize_periods(
    invoices: Iterable[schemas.ContractInvoice],
) -> list[schemas.BillingPeriodSummary]:
    """Roll invoices up per month, newest month first."""

    by_month: dict[date, list[schemas.ContractInvoice]] = defaultdict(list)
    for invoice in invoices:
        by_month[invoice.period_start].append(invoice)

    summaries = []
    for month_start in sorted(by_month, reverse=True):
        members = by_month[month_start]
        month_end = BillingPeriodService.month_end(month_start)
        breakdown = Counter(invoice.derived_status for invoice in members)
        summaries.append(
            schemas.BillingPeriodSummary(
                period_start=month_start,
                period_end=month_end,
                period_label=BillingPeriodService.format_period_label(month_start, month_end),
                customer_count=len({invoice.customer_id for invoice in members}),
                item_count=sum(invoice.item_count for invoice in members),
                total_amount=quantize_amount(
                    sum((invoice.total_amount for invoice in members), Decimal("0"))
                ),
                invoices=members,
                status_breakdown={
                    status: breakdown.get(status, 0) for status in schemas.InvoiceStatus
                },
            )
        )
    return summaries


class InvoiceService:
    """Database-backed invoice views."""

    @staticmethod
    def _lines_for_customer_period(
        db: Session, customer_id: str, period_start: date, period_end: date
    ) -> list[models.ContractBillingItem]:
        start, end = BillingPeriodService.normalize_period(period_start, period_end)
        try:
            return (
                BillingLineService.query_lines(
                    db, customer_id=customer_id, period_start=start, period_end=end
                )
                .order_by(models.ContractBillingItem.created_at.asc())
                .all()
            )
        except SQLAlchemyError as exc:
            LOGGER.exception("Failed to load invoice lines for customer %s", customer_id)
            raise BillingStoreError("Could not load the invoice lines") from exc

    @staticmethod
    def get_customer_invoice(
        db: Session, customer_id: str, period_start: date, period_end: date
    ) -> Optional[schemas.ContractInvoice]:
        """All lines of one customer in the given period as a single invoice."""

        start, end = BillingPeriodService.normalize_period(period_start, period_end)
        lines = InvoiceService._lines_for_customer_period(db, customer_id, start, end)
        return build_invoice(customer_id, start, end, lines)

    @staticmethod
    def group_line_ids(db: Session, line_ids: Sequence[str]) -> list[schemas.ContractInvoice]:
        lines = (
            db.query(models.ContractBillingItem)
            .options(selectinload(models.ContractBillingItem.customer))
            .filter(models.ContractBillingItem.id.in_(list(line_ids)))
            .all()
        )
        return group_lines_into_invoices(lines)

    @staticmethod
    def get_billing_pipeline(
        db: Session,
        *,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
        customer_id: Optional[str] = None,
        statuses: Optional[Sequence[models.BillingItemStatus]] = None,
        item_type: Optional[models.BillingItemType] = None,
        search: Optional[str] = None,
    ) -> list[schemas.BillingPeriodSummary]:
        query = BillingLineService.query_lines(
            db,
            customer_id=customer_id,
            statuses=statuses,
            item_type=item_type,
            period_start=period_start,
            period_end=period_end,
        )
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            query = query.join(models.ContractBillingItem.customer).filter(
                or_(
                    models.Customer.company_name.ilike(pattern),
                    models.Customer.organization_number.ilike(pattern),
                    models.Customer.billing_email.ilike(pattern),
                )
            )
        try:
            lines = query.all()
        except SQLAlchemyError as exc:
            LOGGER.exception("Failed to load the billing pipeline")
            raise BillingStoreError("Could not load the billing pipeline") from exc
        return summarize_periods(group_lines_into_invoices(lines))

    @staticmethod
    def update_invoice_status(
        db: Session,
        customer_id: str,
        data: schemas.InvoiceStatusUpdate,
    ) -> schemas.BulkStatusResult:
        """Advance every live line of one invoice with the bulk rules."""

        lines = InvoiceService._lines_for_customer_period(
            db, customer_id, data.period_start, data.period_end
        )
        if not lines:
            raise BillingLineNotFoundError(
                f"No billing lines for customer {customer_id} in the selected period"
            )
        candidates = lines if data.status == CANCELLED else active_lines(lines)
        result = BillingLineService.apply_bulk_status(
            candidates, data.status, invoice_number=data.invoice_number
        )
        if not result.updated:
            return result

        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            LOGGER.exception("Failed to update invoice for customer %s", customer_id)
            raise BillingStoreError("Could not update the invoice") from exc
        LOGGER.info(
            "Moved %s lines of customer %s to %s",
            len(result.updated),
            customer_id,
            data.status.value,
        )
        return result
