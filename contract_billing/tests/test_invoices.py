from __future__ import annotations

import random
from datetime import date
from decimal import Decimal

import pytest

from contract_billing.app import models
from contract_billing.app.schemas import InvoiceStatus
from contract_billing.app.services import derive_status, group_lines_into_invoices
from contract_billing.app.services.invoices import summarize_periods

Status = models.BillingItemStatus


@pytest.fixture
def customers(make_transient_customer):
    return {
        "alfa": make_transient_customer("cust-a", "Alfa AB", billing_email="a@example.com"),
        "beta": make_transient_customer("cust-b", "beta Bygg"),
    }


@pytest.mark.parametrize(
    "statuses, expected",
    [
        ([Status.PENDING], InvoiceStatus.PENDING),
        ([Status.APPROVED, Status.APPROVED], InvoiceStatus.APPROVED),
        ([Status.PAID, Status.CANCELLED], InvoiceStatus.PAID),
        ([Status.PENDING, Status.APPROVED], InvoiceStatus.MIXED),
        ([Status.INVOICED, Status.PAID, Status.CANCELLED], InvoiceStatus.MIXED),
        ([Status.CANCELLED, Status.CANCELLED], None),
    ],
)
def test_derive_status_table(statuses, expected, customers, line_factory):
    lines = [line_factory(customers["alfa"], status=status) for status in statuses]

    assert derive_status(lines) == expected


def test_contract_and_adhoc_lines_merge_into_one_invoice(customers, line_factory):
    alfa = customers["alfa"]
    lines = [
        line_factory(alfa, period_start=date(2025, 1, 1), period_end=date(2025, 1, 31), total="450.00"),
        line_factory(
            alfa,
            period_start=date(2025, 1, 1),
            period_end=date(2025, 1, 31),
            total="200.00",
            item_type=models.BillingItemType.AD_HOC,
            status=Status.APPROVED,
        ),
    ]

    invoices = group_lines_into_invoices(lines)

    assert len(invoices) == 1
    invoice = invoices[0]
    assert invoice.customer_id == "cust-a"
    assert invoice.period_start == date(2025, 1, 1)
    assert invoice.period_end == date(2025, 1, 31)
    assert invoice.item_count == 2
    assert invoice.subtotal == Decimal("650.00")
    assert invoice.vat_amount == Decimal("162.50")
    assert invoice.total_amount == Decimal("812.50")
    assert invoice.derived_status == InvoiceStatus.MIXED
    assert invoice.customer.billing_email == "a@example.com"


def test_cancelled_lines_count_in_amounts_but_not_in_status(customers, line_factory):
    alfa = customers["alfa"]
    lines = [
        line_factory(alfa, total="100.00", status=Status.PENDING),
        line_factory(
            alfa, total="50.00", status=Status.CANCELLED, discount="10", requires_approval=True
        ),
    ]

    [invoice] = group_lines_into_invoices(lines)

    assert len(invoice.items) == 2
    assert invoice.item_count == 2
    assert invoice.subtotal == Decimal("150.00")
    assert invoice.vat_amount == Decimal("37.50")
    assert invoice.total_amount == Decimal("187.50")
    assert invoice.derived_status == InvoiceStatus.PENDING
    assert invoice.has_items_requiring_approval is False


def test_fully_cancelled_group_is_excluded(customers, line_factory):
    lines = [
        line_factory(customers["alfa"], status=Status.CANCELLED),
        line_factory(customers["beta"], status=Status.PENDING),
    ]

    invoices = group_lines_into_invoices(lines)

    assert [invoice.customer_id for invoice in invoices] == ["cust-b"]


def test_grouping_is_independent_of_input_order(customers, line_factory):
    lines = []
    for month in (1, 2, 3):
        for key in ("alfa", "beta"):
            lines.append(line_factory(customers[key], period_start=date(2025, month, 1)))
            lines.append(
                line_factory(
                    customers[key],
                    period_start=date(2025, month, 15),
                    item_type=models.BillingItemType.AD_HOC,
                    total="50.00",
                )
            )

    expected = [invoice.model_dump() for invoice in group_lines_into_invoices(lines)]
    shuffled = list(lines)
    random.Random(7).shuffle(shuffled)

    assert [invoice.model_dump() for invoice in group_lines_into_invoices(shuffled)] == expected
    assert [(inv.period_start.month, inv.customer_id) for inv in group_lines_into_invoices(lines)] == [
        (3, "cust-a"),
        (3, "cust-b"),
        (2, "cust-a"),
        (2, "cust-b"),
        (1, "cust-a"),
        (1, "cust-b"),
    ]


def test_approval_and_discount_flags(customers, line_factory):
    alfa = customers["alfa"]
    lines = [
        line_factory(alfa, discount="15", requires_approval=True),
        line_factory(alfa, status=Status.APPROVED),
    ]

    [invoice] = group_lines_into_invoices(lines)

    assert invoice.has_items_requiring_approval is True
    assert invoice.has_discount is True


def test_batch_id_is_reported_only_when_shared(customers, line_factory):
    first = line_factory(customers["alfa"])
    second = line_factory(customers["alfa"])
    first.batch_id = second.batch_id = "batch-1"

    [invoice] = group_lines_into_invoices([first, second])
    assert invoice.batch_id == "batch-1"

    second.batch_id = "batch-2"
    [invoice] = group_lines_into_invoices([first, second])
    assert invoice.batch_id is None


def test_summarize_periods_counts_invoices_per_status(customers, line_factory):
    lines = [
        line_factory(customers["alfa"], total="100.00"),
        line_factory(customers["beta"], total="200.00", status=Status.PAID),
        line_factory(customers["beta"], period_start=date(2024, 12, 1), total="80.00"),
    ]

    periods = summarize_periods(group_lines_into_invoices(lines))

    assert [period.period_label for period in periods] == ["jan 2025", "dec 2024"]
    january = periods[0]
    assert january.customer_count == 2
    assert january.item_count == 2
    assert january.total_amount == Decimal("375.00")
    assert january.status_breakdown[InvoiceStatus.PENDING] == 1
    assert january.status_breakdown[InvoiceStatus.PAID] == 1
    assert january.status_breakdown[InvoiceStatus.MIXED] == 0
