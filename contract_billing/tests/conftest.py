from __future__ import annotations

from datetime import date
from decimal import Decimal
import os
import sys
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure the project root (which exposes the ``contract_billing`` package) is on ``sys.path``
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ["RUN_MIGRATIONS_ON_STARTUP"] = "0"

from contract_billing.app import models
from contract_billing.app.database import Base, get_db
from contract_billing.app.main import app


@pytest.fixture
def engine():
    """Fresh in-memory database per test so commits and savepoints are real."""

    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Let SQLAlchemy drive BEGIN/SAVEPOINT instead of the pysqlite driver.
    @event.listens_for(test_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, _record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(test_engine, "begin")
    def _emit_begin(connection):
        connection.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db_session(engine) -> Generator[Session, None, None]:
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        try:
            yield db_session
        finally:
            db_session.expire_all()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def price_list_factory(db_session: Session) -> Callable[..., models.PriceList]:
    """Create a price list with ``(code, name, price, vat_rate)`` articles."""

    def _create(name: str, articles: list[tuple]) -> models.PriceList:
        price_list = models.PriceList(name=name)
        db_session.add(price_list)
        for code, article_name, price, vat_rate in articles:
            article = (
                db_session.query(models.Article).filter(models.Article.code == code).first()
            )
            if article is None:
                article = models.Article(
                    code=code,
                    name=article_name,
                    default_price=Decimal(price),
                    vat_rate=vat_rate,
                )
                db_session.add(article)
            price_list.items.append(
                models.PriceListItem(article=article, custom_price=Decimal(price))
            )
        db_session.commit()
        return price_list

    return _create


@pytest.fixture
def customer_factory(db_session: Session) -> Callable[..., models.Customer]:
    def _create(
        company_name: str,
        *,
        price_list: Optional[models.PriceList] = None,
        frequency: Optional[models.BillingFrequency] = models.BillingFrequency.MONTHLY,
        monthly_value: Optional[str] = None,
        **fields,
    ) -> models.Customer:
        customer = models.Customer(
            company_name=company_name,
            price_list=price_list,
            billing_frequency=frequency,
            monthly_value=Decimal(monthly_value) if monthly_value is not None else None,
            **fields,
        )
        db_session.add(customer)
        db_session.commit()
        return customer

    return _create


@pytest.fixture
def standard_price_list(price_list_factory) -> models.PriceList:
    return price_list_factory(
        "Standard",
        [
            ("BET-01", "Betesstation kontroll", "450.00", Decimal("25")),
            ("INS-01", "Insektsinspektion", "300.00", Decimal("25")),
            ("RAP-01", "Dokumentation och rapport", "150.00", None),
        ],
    )


@pytest.fixture
def seed_contract_customers(customer_factory, standard_price_list) -> list[models.Customer]:
    """Five monthly customers on the standard price list."""

    names = ["Alfa Fastigheter AB", "Bageri Björk", "Cafe Citron", "Delta Lager", "Eken Skola"]
    return [
        customer_factory(
            name,
            price_list=standard_price_list,
            monthly_value="900.00",
            organization_number=f"55600{index}-0000",
            billing_email=f"faktura{index}@example.com",
        )
        for index, name in enumerate(names, start=1)
    ]


@pytest.fixture
def line_factory() -> Callable[..., models.ContractBillingItem]:
    """Build transient billing lines for the pure aggregation helpers."""

    counter = {"value": 0}

    def _build(
        customer: models.Customer,
        *,
        period_start: date = date(2025, 1, 1),
        period_end: Optional[date] = None,
        total: str = "100.00",
        status: models.BillingItemStatus = models.BillingItemStatus.PENDING,
        item_type: models.BillingItemType = models.BillingItemType.CONTRACT,
        discount: str = "0",
        requires_approval: bool = False,
        vat_rate: str = "25",
        article_code: Optional[str] = None,
    ) -> models.ContractBillingItem:
        counter["value"] += 1
        number = counter["value"]
        return models.ContractBillingItem(
            id=f"line-{number:03d}",
            customer_id=customer.id,
            customer=customer,
            billing_period_start=period_start,
            billing_period_end=period_end or period_start,
            article_code=article_code or f"ART-{number:03d}",
            article_name=f"Artikel {number}",
            quantity=Decimal("1"),
            unit_price=Decimal(total),
            total_price=Decimal(total),
            vat_rate=Decimal(vat_rate),
            status=status,
            item_type=item_type,
            source=models.BillingItemSource.MANUAL,
            discount_percent=Decimal(discount),
            requires_approval=requires_approval,
        )

    return _build


@pytest.fixture
def make_transient_customer() -> Callable[..., models.Customer]:
    def _build(customer_id: str, company_name: str, **fields) -> models.Customer:
        return models.Customer(id=customer_id, company_name=company_name, **fields)

    return _build
