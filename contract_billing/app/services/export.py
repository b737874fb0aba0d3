"""Semicolon-separated invoice export for the accounting system."""

from __future__ import annotations

import csv
import io
from decimal import Decimal
from typing import Iterable

from .. import models, schemas
from .billing_periods import BillingPeriodService, quantize_amount

EXPORT_DELIMITER = ";"

EXPORT_COLUMNS = (
    ("customer", "Kund"),
    ("organization_number", "Organisationsnummer"),
    ("billing_email", "Faktura-email"),
    ("billing_address", "Fakturaadress"),
    ("period", "Period"),
    ("article_code", "Artikelnummer"),
    ("article_name", "Artikel"),
    ("quantity", "Antal"),
    ("unit_price", "À-pris"),
    ("discount_percent", "Rabatt %"),
    ("total_price", "Summa"),
    ("vat_rate", "Moms %"),
    ("item_type", "Typ"),
)

ITEM_TYPE_LABELS = {
    models.BillingItemType.CONTRACT: "Avtal",
    models.BillingItemType.AD_HOC: "Tillägg",
}


def format_decimal(value: Decimal | int | None) -> str:
    """Render money with two decimals and a decimal comma."""

    return f"{quantize_amount(value or 0):.2f}".replace(".", ",")


def format_quantity(value: Decimal | int | None) -> str:
    quantity = Decimal(value or 0)
    if quantity == quantity.to_integral_value():
        return str(int(quantity))
    return format(quantity.normalize(), "f").replace(".", ",")


def _invoice_rows(invoice: schemas.ContractInvoice) -> Iterable[dict[str, str]]:
    customer = invoice.customer
    company_name = customer.company_name if customer else invoice.customer_id
    address = ""
    if customer is not None:
        address = customer.billing_address or customer.contact_address or ""
    period = BillingPeriodService.format_period_label(invoice.period_start, invoice.period_end)

    for item in invoice.items:
        yield {
            "customer": company_name,
            "organization_number": (customer.organization_number or "") if customer else "",
            "billing_email": (customer.billing_email or "") if customer else "",
            "billing_address": address,
            "period": period,
            "article_code": item.article_code or "",
            "article_name": item.article_name,
            "quantity": format_quantity(item.quantity),
            "unit_price": format_decimal(item.unit_price),
            "discount_percent": format_decimal(item.discount_percent),
            "total_price": format_decimal(item.total_price),
            "vat_rate": format_decimal(item.vat_rate),
            "item_type": ITEM_TYPE_LABELS[item.item_type],
        }


def export_invoices(invoices: Iterable[schemas.ContractInvoice]) -> str:
    """Write one row per line of every invoice, with a header row.

    Fields containing the delimiter, quotes or line breaks are quoted by the
    csv writer.
    """

    keys = [key for key, _ in EXPORT_COLUMNS]
    buffer = io.StringIO()
    writer = csv.DictWriter(
        buffer,
        fieldnames=keys,
        delimiter=EXPORT_DELIMITER,
        quoting=csv.QUOTE_MINIMAL,
        extrasaction="ignore",
    )
    writer.writerow(dict(EXPORT_COLUMNS))
    for invoice in invoices:
        for row in _invoice_rows(invoice):
            writer.writerow(row)
    return buffer.getvalue()
