from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from contract_billing.app import models, schemas
from contract_billing.app.services import (
    CaseBillingService,
    CustomerNotFoundError,
    import_case_lines,
)

CaseType = models.CaseType


@pytest.fixture
def customer(customer_factory, standard_price_list):
    return customer_factory("Hotell Havsutsikt", price_list=standard_price_list)


@pytest.fixture
def case_lines(db_session, customer):
    plain = CaseBillingService.add_case_line(
        db_session,
        "case-42",
        CaseType.BUSINESS,
        schemas.CaseLineCreate(
            customer_id=customer.id,
            article_code="SAN-01",
            article_name="Sanering kök",
            quantity=Decimal("2"),
            unit_price=Decimal("400.00"),
            added_by_technician_name="Kim Tekniker",
        ),
    )
    discounted = CaseBillingService.add_case_line(
        db_session,
        "case-42",
        CaseType.BUSINESS,
        schemas.CaseLineCreate(
            customer_id=customer.id,
            article_code="FOL-01",
            article_name="Uppföljning",
            unit_price=Decimal("1000.00"),
            discount_percent=Decimal("15"),
            vat_rate=Decimal("12"),
        ),
    )
    return plain, discounted


def test_add_case_line_applies_discount_and_default_vat(case_lines):
    plain, discounted = case_lines

    assert plain.total_price == Decimal("800.00")
    assert plain.vat_rate == Decimal("25")
    assert plain.requires_approval is False
    assert discounted.discounted_price == Decimal("850.00")
    assert discounted.total_price == Decimal("850.00")
    assert discounted.requires_approval is True
    assert discounted.status == models.CaseBillingItemStatus.PENDING


def test_case_summary_totals(case_lines):
    summary = CaseBillingService.case_billing_summary(case_lines)

    assert summary.item_count == 2
    assert summary.subtotal == Decimal("1800.00")
    assert summary.total_discount == Decimal("150.00")
    assert summary.vat_amount == Decimal("302.00")
    assert summary.total_amount == Decimal("1952.00")
    assert summary.requires_approval is True


def test_import_creates_adhoc_lines_in_completion_month(db_session, customer, case_lines):
    plain, discounted = case_lines

    result = import_case_lines(db_session, "case-42", CaseType.BUSINESS, date(2025, 2, 14))

    assert len(result.imported) == 2
    assert result.requires_approval_count == 1
    by_code = {line.article_code: line for line in result.imported}
    for line in result.imported:
        assert line.item_type == models.BillingItemType.AD_HOC
        assert line.source == models.BillingItemSource.CASE_COMPLETION
        assert line.customer_id == customer.id
        assert line.case_id == "case-42"
        assert line.billing_period_start == date(2025, 2, 1)
        assert line.billing_period_end == date(2025, 2, 28)

    flagged = by_code["FOL-01"]
    assert flagged.status == models.BillingItemStatus.PENDING
    assert flagged.requires_approval is True
    assert flagged.unit_price == Decimal("850.00")
    assert flagged.original_price == Decimal("1000.00")
    assert flagged.vat_rate == Decimal("12")

    unflagged = by_code["SAN-01"]
    assert unflagged.status == models.BillingItemStatus.APPROVED
    assert unflagged.approved_at is not None
    assert unflagged.total_price == Decimal("800.00")

    db_session.expire_all()
    for source in case_lines:
        assert source.status == models.CaseBillingItemStatus.BILLED
        assert source.billed_at is not None
        assert source.billing_item_id is not None


def test_second_import_is_a_no_op(db_session, case_lines):
    import_case_lines(db_session, "case-42", CaseType.BUSINESS, date(2025, 2, 14))

    again = import_case_lines(db_session, "case-42", CaseType.BUSINESS, date(2025, 2, 14))

    assert again.imported == []
    assert db_session.query(models.ContractBillingItem).count() == 2


def test_service_date_overrides_completion_month(db_session, customer):
    CaseBillingService.add_case_line(
        db_session,
        "case-7",
        CaseType.CONTRACT,
        schemas.CaseLineCreate(
            customer_id=customer.id,
            article_name="Akut utryckning",
            unit_price=Decimal("1200.00"),
            service_date=date(2025, 1, 30),
        ),
    )

    result = import_case_lines(db_session, "case-7", CaseType.CONTRACT, date(2025, 2, 3))

    [line] = result.imported
    assert line.billing_period_start == date(2025, 1, 1)
    assert line.billing_period_end == date(2025, 1, 31)


def test_line_without_customer_needs_explicit_customer(db_session, customer):
    CaseBillingService.add_case_line(
        db_session,
        "case-9",
        CaseType.PRIVATE,
        schemas.CaseLineCreate(article_name="Råttfälla", unit_price=Decimal("95.00")),
    )

    with pytest.raises(ValueError):
        import_case_lines(db_session, "case-9", CaseType.PRIVATE, date(2025, 3, 1))
    assert db_session.query(models.ContractBillingItem).count() == 0

    result = import_case_lines(
        db_session, "case-9", CaseType.PRIVATE, date(2025, 3, 1), customer_id=customer.id
    )
    assert [line.customer_id for line in result.imported] == [customer.id]


def test_billed_lines_stay_visible_when_requested(db_session, case_lines):
    import_case_lines(db_session, "case-42", CaseType.BUSINESS, date(2025, 2, 14))

    assert CaseBillingService.get_case_billing_lines(db_session, "case-42", CaseType.BUSINESS) == []
    visible = CaseBillingService.get_case_billing_lines(
        db_session, "case-42", CaseType.BUSINESS, include_billed=True
    )
    assert len(visible) == 2


def test_import_for_unknown_customer_is_rejected(db_session, customer):
    CaseBillingService.add_case_line(
        db_session,
        "case-11",
        CaseType.PRIVATE,
        schemas.CaseLineCreate(article_name="Myrbekämpning", unit_price=Decimal("650.00")),
    )

    with pytest.raises(CustomerNotFoundError):
        import_case_lines(
            db_session, "case-11", CaseType.PRIVATE, date(2025, 3, 1), customer_id="missing"
        )

    assert db_session.query(models.ContractBillingItem).count() == 0
    [pending] = CaseBillingService.get_case_billing_lines(db_session, "case-11", CaseType.PRIVATE)
    assert pending.billed_at is None
