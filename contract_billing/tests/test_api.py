from __future__ import annotations

import csv
import io

from contract_billing.app import models


def _create_line(client, customer_id: str, **overrides) -> dict:
    payload = {
        "customer_id": customer_id,
        "billing_period_start": "2025-01-01",
        "billing_period_end": "2025-01-31",
        "article_code": "EXT-01",
        "article_name": "Extra kontroll",
        "unit_price": "250.00",
        "quantity": "1",
    }
    payload.update(overrides)
    response = client.post("/billing-items", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_health_check(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_create_and_fetch_billing_item(client, customer_factory):
    customer = customer_factory("Alfa Fastigheter AB")

    created = _create_line(client, customer.id)
    response = client.get(f"/billing-items/{created['id']}")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "pending"
    assert body["item_type"] == "contract"
    assert float(body["total_price"]) == 250.0
    assert body["customer"]["company_name"] == "Alfa Fastigheter AB"


def test_unknown_billing_item_returns_404(client):
    response = client.get("/billing-items/does-not-exist")

    assert response.status_code == 404


def test_create_for_unknown_customer_returns_404(client):
    response = client.post(
        "/billing-items",
        json={
            "customer_id": "missing",
            "billing_period_start": "2025-01-01",
            "billing_period_end": "2025-01-31",
            "article_name": "Kontroll",
            "unit_price": "100",
        },
    )

    assert response.status_code == 404
    assert response.json()["detail"] == "Customer not found"


def test_create_with_unknown_batch_or_article_returns_404(client, customer_factory):
    customer = customer_factory("Alfa Fastigheter AB")
    payload = {
        "customer_id": customer.id,
        "billing_period_start": "2025-01-01",
        "billing_period_end": "2025-01-31",
        "article_name": "Kontroll",
        "unit_price": "100",
    }

    batch = client.post("/billing-items", json={**payload, "batch_id": "no-such-batch"})
    article = client.post("/billing-items", json={**payload, "article_id": "no-such-article"})

    assert batch.status_code == 404
    assert batch.json()["detail"] == "Batch not found"
    assert article.status_code == 404
    assert client.get("/billing-items", params={"customer_id": customer.id}).json()["total"] == 0


def test_invalid_status_transition_returns_400(client, customer_factory):
    customer = customer_factory("Beta Bygg")
    line = _create_line(client, customer.id)
    client.patch(f"/billing-items/{line['id']}/status", json={"status": "paid"})

    response = client.patch(f"/billing-items/{line['id']}/status", json={"status": "pending"})

    assert response.status_code == 400


def test_bulk_status_holds_discounted_lines(client, customer_factory):
    customer = customer_factory("Cafe Citron")
    plain = _create_line(client, customer.id)
    discounted = _create_line(client, customer.id, article_code="EXT-02", discount_percent="10")

    response = client.post(
        "/billing-items/bulk-status",
        json={"ids": [plain["id"], discounted["id"]], "status": "approved"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["updated"] == [plain["id"]]
    assert body["held_for_approval"] == [discounted["id"]]

    queue = client.get("/billing-items/requiring-approval").json()
    assert [item["id"] for item in queue] == [discounted["id"]]

    approved = client.post(f"/billing-items/{discounted['id']}/approve-discount")
    assert approved.status_code == 200
    assert approved.json()["requires_approval"] is False


def test_bulk_status_with_unknown_id_returns_404(client, customer_factory):
    customer = customer_factory("Delta Lager")
    line = _create_line(client, customer.id)

    response = client.post(
        "/billing-items/bulk-status", json={"ids": [line["id"], "ghost"], "status": "approved"}
    )

    assert response.status_code == 404


def test_list_filters_by_status(client, customer_factory):
    customer = customer_factory("Eken Skola")
    first = _create_line(client, customer.id)
    _create_line(client, customer.id, article_code="EXT-02")
    client.patch(f"/billing-items/{first['id']}/status", json={"status": "approved"})

    response = client.get("/billing-items", params={"status": "approved"})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["items"][0]["id"] == first["id"]


def test_generate_batch_and_fetch_items(client, seed_contract_customers):
    response = client.post(
        "/billing-batches/generate",
        json={
            "billing_frequency": "monthly",
            "period_start": "2025-03-01",
            "period_end": "2025-03-31",
        },
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["item_count"] == 15
    assert body["customer_count"] == 5
    assert float(body["total_amount"]) == 4500.0
    assert body["failed_customers"] == []
    batch_id = body["batch"]["id"]
    assert body["batch"]["status"] == "generated"

    detail = client.get(f"/billing-batches/{batch_id}")
    assert detail.status_code == 200
    assert len(detail.json()["items"]) == 15

    listing = client.get("/billing-batches").json()
    assert listing["total"] == 1

    deleted = client.delete(f"/billing-batches/{batch_id}")
    assert deleted.status_code == 204
    assert client.get(f"/billing-batches/{batch_id}").status_code == 404


def test_eligible_customers_require_price_list(client, seed_contract_customers, customer_factory):
    customer_factory("Utan Prislista")

    response = client.get(
        "/billing-batches/eligible-customers", params={"billing_frequency": "monthly"}
    )

    assert response.status_code == 200
    assert len(response.json()) == 5


def test_generating_twice_with_abort_policy_returns_400(client, seed_contract_customers):
    payload = {
        "billing_frequency": "monthly",
        "period_start": "2025-03-01",
        "period_end": "2025-03-31",
    }
    assert client.post("/billing-batches/generate", json=payload).status_code == 201

    response = client.post(
        "/billing-batches/generate", json={**payload, "failure_policy": "abort"}
    )

    assert response.status_code == 400


def test_monthly_pipeline_rejects_bad_month_keys(client):
    bad_key = client.get(
        "/contract-invoices/monthly-pipeline",
        params={"start_month": "2025-13", "end_month": "2026-01"},
    )
    reversed_range = client.get(
        "/contract-invoices/monthly-pipeline",
        params={"start_month": "2025-06", "end_month": "2025-01"},
    )

    assert bad_key.status_code == 400
    assert reversed_range.status_code == 400


def test_monthly_pipeline_returns_one_summary_per_month(client, seed_contract_customers):
    response = client.get(
        "/contract-invoices/monthly-pipeline",
        params={"start_month": "2025-01", "end_month": "2025-03"},
    )

    assert response.status_code == 200
    months = response.json()
    assert [month["month_key"] for month in months] == ["2025-01", "2025-02", "2025-03"]
    assert all(month["total_customers"] == 5 for month in months)


def test_customer_invoice_and_status_update(client, customer_factory):
    customer = customer_factory("Fiskaffären")
    _create_line(client, customer.id)
    _create_line(
        client,
        customer.id,
        article_code="EXT-02",
        item_type="ad_hoc",
        billing_period_start="2025-01-20",
        billing_period_end="2025-01-20",
    )
    period = {"period_start": "2025-01-01", "period_end": "2025-01-31"}

    invoice = client.get(f"/contract-invoices/customers/{customer.id}", params=period)
    assert invoice.status_code == 200
    assert invoice.json()["item_count"] == 2
    assert invoice.json()["derived_status"] == "pending"

    update = client.patch(
        f"/contract-invoices/customers/{customer.id}/status",
        json={**period, "status": "invoiced", "invoice_number": "F-100"},
    )
    assert update.status_code == 200
    assert len(update.json()["updated"]) == 2

    invoice = client.get(f"/contract-invoices/customers/{customer.id}", params=period)
    assert invoice.json()["derived_status"] == "invoiced"

    empty = client.get(
        f"/contract-invoices/customers/{customer.id}",
        params={"period_start": "2024-01-01", "period_end": "2024-01-31"},
    )
    assert empty.status_code == 404


def test_export_returns_semicolon_csv(client, customer_factory):
    customer = customer_factory("Gamla Bryggeriet; AB", billing_address="Hamnen 2")
    _create_line(client, customer.id)

    response = client.get("/contract-invoices/export", params={"period_start": "2025-01-01"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "fakturaunderlag_2025-01.csv" in response.headers["content-disposition"]
    rows = list(csv.reader(io.StringIO(response.text), delimiter=";"))
    assert rows[0][0] == "Kund"
    assert rows[1][0] == "Gamla Bryggeriet; AB"
    assert rows[1][10] == "250,00"


def test_case_import_endpoint(client, customer_factory):
    customer = customer_factory("Hotell Havsutsikt")
    added = client.post(
        "/cases/business/case-1/billing-lines",
        json={
            "customer_id": customer.id,
            "article_name": "Sanering",
            "unit_price": "500.00",
            "discount_percent": "20",
        },
    )
    assert added.status_code == 201

    response = client.post(
        "/cases/business/case-1/billing-import", json={"completed_on": "2025-04-10"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["requires_approval_count"] == 1
    [line] = body["imported"]
    assert line["item_type"] == "ad_hoc"
    assert line["billing_period_start"] == "2025-04-01"

    again = client.post("/cases/business/case-1/billing-import")
    assert again.json()["imported"] == []

    lines = client.get("/cases/business/case-1/billing-lines").json()
    assert lines["items"][0]["status"] == "billed"
    assert lines["summary"]["item_count"] == 1


def test_duplicate_case_line_import_conflicts(client, db_session, customer_factory):
    customer = customer_factory("Konflikt AB")
    client.post(
        "/cases/private/case-2/billing-lines",
        json={"customer_id": customer.id, "article_name": "Fälla", "unit_price": "90.00"},
    )
    client.post("/cases/private/case-2/billing-import", json={"completed_on": "2025-04-10"})

    # Reopen the source line so the next import collides with the existing charge.
    source = db_session.query(models.CaseBillingItem).one()
    source.status = models.CaseBillingItemStatus.PENDING
    source.billing_item_id = None
    db_session.commit()

    response = client.post("/cases/private/case-2/billing-import")

    assert response.status_code == 409


def test_cors_allows_local_development_origin(client):
    response = client.options(
        "/billing-items",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "GET",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
