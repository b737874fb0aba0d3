"""Customer × month billing matrix mixing generated lines with estimates."""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models, schemas
from .billing_errors import BillingStoreError
from .billing_lines import BillingLineService
from .billing_periods import BillingPeriodService, quantize_amount
from .invoices import active_lines, derive_status
from .price_catalog import PriceCatalogService

LOGGER = logging.getLogger(__name__)

MonthlyStatus = schemas.MonthlyCustomerStatus

ACTIONABLE_STATUSES = frozenset(
    {MonthlyStatus.MIXED, MonthlyStatus.PENDING, MonthlyStatus.AWAITING_GENERATION}
)
ZERO = Decimal("0")


def pipeline_customer(customer: models.Customer) -> schemas.PipelineCustomer:
    price_list = customer.price_list if customer.price_list_id else None
    return schemas.PipelineCustomer(
        id=str(customer.id),
        company_name=customer.company_name,
        organization_number=customer.organization_number,
        billing_email=customer.billing_email,
        billing_frequency=customer.billing_frequency,
        price_list_id=customer.price_list_id,
        price_list_name=price_list.name if price_list is not None else None,
        contract_status=customer.contract_status or models.ContractStatus.ACTIVE,
        effective_end_date=customer.effective_end_date,
        monthly_value=customer.monthly_value,
        is_active=customer.is_active is not False,
    )


def is_ended_before(customer: schemas.PipelineCustomer, month_start: date) -> bool:
    if not customer.is_active:
        return customer.effective_end_date is None or customer.effective_end_date < month_start
    return (
        customer.contract_status == models.ContractStatus.TERMINATED
        and customer.effective_end_date is not None
        and customer.effective_end_date < month_start
    )


def _sum_totals(lines: Iterable[models.ContractBillingItem]) -> Decimal:
    return quantize_amount(sum((Decimal(line.total_price) for line in lines), ZERO))


def build_entry(
    customer: schemas.PipelineCustomer,
    lines: Sequence[models.ContractBillingItem],
) -> schemas.MonthlyCustomerEntry:
    """Classify one cell of the matrix."""

    estimate = quantize_amount(customer.monthly_value or ZERO)
    if not lines:
        status = (
            MonthlyStatus.AWAITING_GENERATION
            if customer.price_list_id
            else MonthlyStatus.NOT_BILLABLE
        )
        return schemas.MonthlyCustomerEntry(
            customer=customer,
            status=status,
            projected_amount=estimate,
            is_projected=True,
        )

    derived = derive_status(lines)
    recurring = _sum_totals(
        line for line in lines if line.item_type == models.BillingItemType.CONTRACT
    )
    adhoc = _sum_totals(
        line for line in lines if line.item_type == models.BillingItemType.AD_HOC
    )
    total = quantize_amount(recurring + adhoc)
    return schemas.MonthlyCustomerEntry(
        customer=customer,
        status=MonthlyStatus(derived.value) if derived else MonthlyStatus.NOT_BILLABLE,
        items=[schemas.BillingItemRead.model_validate(line) for line in lines],
        recurring_amount=recurring,
        adhoc_amount=adhoc,
        total_amount=total,
        projected_amount=total,
        is_projected=False,
        item_count=len(lines),
        has_items_requiring_approval=any(
            line.requires_approval and line.status == models.BillingItemStatus.PENDING
            for line in active_lines(lines)
        ),
    )


def _sort_key(entry: schemas.MonthlyCustomerEntry) -> tuple[int, str]:
    return (
        0 if entry.status in ACTIONABLE_STATUSES else 1,
        entry.customer.company_name.lower(),
    )


def build_monthly_pipeline(
    customers: Iterable[models.Customer | schemas.PipelineCustomer],
    lines: Iterable[models.ContractBillingItem],
    start_month: str,
    end_month: str,
) -> list[schemas.MonthlyPipelineSummary]:
    """Build one summary per month between ``start_month`` and ``end_month``.

    Months are ``YYYY-MM`` keys and both ends are included. Cells without
    generated lines are estimated from the customer's monthly value; those
    estimates only count towards ``projected_amount``.
    """

    profiles = [
        customer
        if isinstance(customer, schemas.PipelineCustomer)
        else pipeline_customer(customer)
        for customer in customers
    ]

    cells: dict[tuple[str, str], list[models.ContractBillingItem]] = defaultdict(list)
    for line in lines:
        month_key = BillingPeriodService.month_key(line.billing_period_start)
        cells[(str(line.customer_id), month_key)].append(line)

    summaries: list[schemas.MonthlyPipelineSummary] = []
    for month_key, month_start, month_end in BillingPeriodService.iter_months(
        start_month, end_month
    ):
        entries: list[schemas.MonthlyCustomerEntry] = []
        missing_setup = 0
        for customer in profiles:
            cell_lines = cells.get((customer.id, month_key), [])
            # Lines already generated are always reported, even after the
            # contract ended.
            if not cell_lines and is_ended_before(customer, month_start):
                continue
            entry = build_entry(customer, cell_lines)
            if not cell_lines and not customer.price_list_id:
                missing_setup += 1
            entries.append(entry)

        entries.sort(key=_sort_key)
        breakdown = Counter(entry.status for entry in entries)
        actual = quantize_amount(sum((entry.total_amount for entry in entries), ZERO))
        estimated = quantize_amount(
            sum((entry.projected_amount for entry in entries if entry.is_projected), ZERO)
        )
        summaries.append(
            schemas.MonthlyPipelineSummary(
                month_key=month_key,
                month_label=BillingPeriodService.format_period_label(month_start, month_end),
                period_start=month_start,
                period_end=month_end,
                customers=entries,
                total_customers=len(entries),
                billable_customers=sum(
                    1 for entry in entries if entry.status != MonthlyStatus.NOT_BILLABLE
                ),
                generated_customers=sum(1 for entry in entries if not entry.is_projected),
                missing_setup_customers=missing_setup,
                total_amount=actual,
                projected_amount=quantize_amount(actual + estimated),
                status_breakdown={status: breakdown.get(status, 0) for status in MonthlyStatus},
            )
        )
    return summaries


def get_monthly_pipeline_data(
    db: Session, start_month: str, end_month: str
) -> list[schemas.MonthlyPipelineSummary]:
    months = list(BillingPeriodService.iter_months(start_month, end_month))
    first_start = months[0][1]
    last_end = months[-1][2]

    customers = PriceCatalogService.list_all_contract_customers(db, include_inactive=True)
    try:
        lines = (
            BillingLineService.query_lines(
                db, period_start=first_start, period_end=last_end
            )
            .order_by(models.ContractBillingItem.created_at.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        LOGGER.exception("Failed to load lines for the monthly pipeline")
        raise BillingStoreError("Could not load the monthly pipeline") from exc

    LOGGER.debug(
        "Monthly pipeline %s..%s: %s customers, %s lines",
        start_month,
        end_month,
        len(customers),
        len(lines),
    )
    return build_monthly_pipeline(customers, lines, start_month, end_month)
