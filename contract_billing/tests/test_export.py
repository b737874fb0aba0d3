from __future__ import annotations

import csv
import io
from datetime import date
from decimal import Decimal

from contract_billing.app import models
from contract_billing.app.services import export_invoices, group_lines_into_invoices
from contract_billing.app.services.export import format_decimal, format_quantity


def _rows(payload: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(payload), delimiter=";"))


def test_header_row_lists_columns():
    header = _rows(export_invoices([]))[0]

    assert header == [
        "Kund",
        "Organisationsnummer",
        "Faktura-email",
        "Fakturaadress",
        "Period",
        "Artikelnummer",
        "Artikel",
        "Antal",
        "À-pris",
        "Rabatt %",
        "Summa",
        "Moms %",
        "Typ",
    ]


def test_formatting_helpers():
    assert format_decimal(Decimal("1234.5")) == "1234,50"
    assert format_decimal(None) == "0,00"
    assert format_quantity(Decimal("2.00")) == "2"
    assert format_quantity(Decimal("1.50")) == "1,5"


def test_rows_use_decimal_comma_and_type_labels(make_transient_customer, line_factory):
    customer = make_transient_customer(
        "cust-a",
        "Alfa AB",
        organization_number="556001-0000",
        billing_email="faktura@alfa.se",
        billing_address="Storgatan 1, Malmö",
    )
    lines = [
        line_factory(customer, total="450.00", article_code="BET-01"),
        line_factory(
            customer,
            total="199.90",
            article_code="EXT-01",
            item_type=models.BillingItemType.AD_HOC,
            discount="10",
        ),
    ]

    rows = _rows(export_invoices(group_lines_into_invoices(lines)))[1:]

    assert len(rows) == 2
    contract_row = next(row for row in rows if row[5] == "BET-01")
    assert contract_row[:5] == [
        "Alfa AB",
        "556001-0000",
        "faktura@alfa.se",
        "Storgatan 1, Malmö",
        "jan 2025",
    ]
    assert contract_row[7:] == ["1", "450,00", "0,00", "450,00", "25,00", "Avtal"]
    adhoc_row = next(row for row in rows if row[5] == "EXT-01")
    assert adhoc_row[9] == "10,00"
    assert adhoc_row[10] == "199,90"
    assert adhoc_row[12] == "Tillägg"


def test_fields_with_delimiter_or_quotes_are_quoted(make_transient_customer, line_factory):
    customer = make_transient_customer("cust-q", 'Kafé "Pärlan"; Öst')
    line = line_factory(customer)
    line.article_name = "Kontroll; extra"

    payload = export_invoices(group_lines_into_invoices([line]))

    assert '"Kafé ""Pärlan""; Öst"' in payload
    assert '"Kontroll; extra"' in payload
    row = _rows(payload)[1]
    assert row[0] == 'Kafé "Pärlan"; Öst'
    assert row[6] == "Kontroll; extra"


def test_contact_address_is_used_without_billing_address(make_transient_customer, line_factory):
    customer = make_transient_customer("cust-b", "Beta Bygg", contact_address="Lagergatan 4")

    row = _rows(export_invoices(group_lines_into_invoices([line_factory(customer)])))[1]

    assert row[3] == "Lagergatan 4"
    assert row[1] == ""


def test_every_line_of_an_invoice_is_exported(make_transient_customer, line_factory):
    customer = make_transient_customer("cust-c", "Cafe Citron")
    lines = [
        line_factory(customer, article_code="BET-01", period_start=date(2025, 2, 1)),
        line_factory(
            customer,
            article_code="INS-01",
            period_start=date(2025, 2, 1),
            status=models.BillingItemStatus.CANCELLED,
        ),
    ]

    rows = _rows(export_invoices(group_lines_into_invoices(lines)))[1:]

    assert sorted(row[5] for row in rows) == ["BET-01", "INS-01"]
    assert rows[0][4] == "feb 2025"
