"""Turn a customer's price list into contract billing lines."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from .. import models
from .billing_lines import BillingLineService, line_total
from .billing_periods import BillingPeriodService, quantize_amount
from .price_catalog import PriceCatalogService

LOGGER = logging.getLogger(__name__)


def contract_dedup_key(customer_id: str, period_start: date, article_id: str) -> str:
    return f"contract:{customer_id}:{period_start.isoformat()}:{article_id}"


def generate_billing_lines(
    db: Session,
    customer_id: str,
    period_start: date,
    period_end: date,
    batch_id: Optional[str] = None,
) -> list[models.ContractBillingItem]:
    """Create one pending contract line per price list entry.

    Lines are flushed, not committed, so a batch can roll a single customer
    back. Returns ``[]`` when the customer has no usable price list. Raises
    ``BillingLineConflictError`` when the period was already generated.
    """

    start, end = BillingPeriodService.normalize_period(period_start, period_end)
    catalog = PriceCatalogService.resolve_price_catalog(db, customer_id)
    if not catalog:
        LOGGER.info("Customer %s has no price list entries; nothing to generate", customer_id)
        return []

    quantity = Decimal("1")
    lines: list[models.ContractBillingItem] = []
    for entry in catalog:
        line = models.ContractBillingItem(
            customer_id=customer_id,
            billing_period_start=start,
            billing_period_end=end,
            article_id=entry.article_id,
            article_code=entry.code,
            article_name=entry.name,
            quantity=quantity,
            unit_price=quantize_amount(entry.unit_price),
            total_price=line_total(entry.unit_price, quantity),
            vat_rate=entry.vat_rate,
            status=models.BillingItemStatus.PENDING,
            item_type=models.BillingItemType.CONTRACT,
            source=models.BillingItemSource.PRICE_LIST,
            discount_percent=Decimal("0"),
            requires_approval=False,
            batch_id=batch_id,
            dedup_key=contract_dedup_key(customer_id, start, entry.article_id),
        )
        lines.append(BillingLineService.add_line(db, line))

    LOGGER.debug(
        "Generated %s contract lines for customer %s (%s - %s)",
        len(lines),
        customer_id,
        start,
        end,
    )
    return lines
