from __future__ import annotations

from contextlib import contextmanager
from datetime import date

import pytest

from contract_billing.app import models
from contract_billing.app.scripts import generate_billing_batch
from contract_billing.app.services import generate_billing_lines


@pytest.fixture
def cli_session(db_session, monkeypatch):
    @contextmanager
    def _session_scope():
        try:
            yield db_session
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise

    monkeypatch.setattr(generate_billing_batch, "session_scope", _session_scope)
    monkeypatch.delenv("BILLING_BATCH_FAILURE_POLICY", raising=False)
    return db_session


def test_cli_generates_batch_for_reference_month(cli_session, seed_contract_customers):
    exit_code = generate_billing_batch.main(
        ["--frequency", "monthly", "--reference-date", "2025-05-17", "--notes", "maj"]
    )

    assert exit_code == generate_billing_batch.EXIT_OK
    batch = cli_session.query(models.ContractBillingBatch).one()
    assert batch.billing_period_start == date(2025, 5, 1)
    assert batch.billing_period_end == date(2025, 5, 31)
    assert batch.notes == "maj"
    assert batch.total_items == 15


def test_cli_reports_partial_failures(cli_session, seed_contract_customers):
    generate_billing_lines(
        cli_session, seed_contract_customers[0].id, date(2025, 6, 1), date(2025, 6, 30)
    )
    cli_session.commit()

    exit_code = generate_billing_batch.main(["--period-start", "2025-06-01"])

    assert exit_code == generate_billing_batch.EXIT_PARTIAL
    batch = cli_session.query(models.ContractBillingBatch).one()
    assert batch.failed_customers == 1
    assert batch.total_customers == 4


def test_cli_abort_policy_exits_with_failure(cli_session, seed_contract_customers):
    generate_billing_lines(
        cli_session, seed_contract_customers[0].id, date(2025, 6, 1), date(2025, 6, 30)
    )
    cli_session.commit()

    exit_code = generate_billing_batch.main(
        ["--period-start", "2025-06-01", "--failure-policy", "abort"]
    )

    assert exit_code == generate_billing_batch.EXIT_FAILED
    assert cli_session.query(models.ContractBillingBatch).count() == 0


def test_cli_rejects_reversed_period(cli_session):
    exit_code = generate_billing_batch.main(
        ["--period-start", "2025-06-01", "--period-end", "2025-05-01"]
    )

    assert exit_code == generate_billing_batch.EXIT_FAILED
