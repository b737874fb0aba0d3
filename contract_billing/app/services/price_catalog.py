"""Resolve customer price lists and the customers eligible for billing."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .. import models
from .billing_errors import BillingStoreError

LOGGER = logging.getLogger(__name__)

DEFAULT_VAT_RATE_ENV = "BILLING_DEFAULT_VAT_RATE"
DEFAULT_VAT_RATE = Decimal("25")


def default_vat_rate() -> Decimal:
    raw = os.getenv(DEFAULT_VAT_RATE_ENV)
    if not raw:
        return DEFAULT_VAT_RATE
    try:
        value = Decimal(raw.strip())
    except ArithmeticError:
        LOGGER.warning("Invalid %s=%s; using %s", DEFAULT_VAT_RATE_ENV, raw, DEFAULT_VAT_RATE)
        return DEFAULT_VAT_RATE
    if value < 0 or value > 100:
        LOGGER.warning("%s out of range; using %s", DEFAULT_VAT_RATE_ENV, DEFAULT_VAT_RATE)
        return DEFAULT_VAT_RATE
    return value


@dataclass(frozen=True)
class PriceCatalogEntry:
    """One contracted article price for a customer."""

    article_id: str
    code: str
    name: str
    unit_price: Decimal
    vat_rate: Decimal


class PriceCatalogService:
    """Read-only access to price lists and billing profiles."""

    @staticmethod
    def resolve_price_catalog(db: Session, customer_id: str) -> list[PriceCatalogEntry]:
        """Return the customer's contracted prices, or ``[]`` without a price list."""

        try:
            customer = (
                db.query(models.Customer)
                .filter(models.Customer.id == customer_id)
                .first()
            )
            if customer is None or not customer.price_list_id:
                return []

            rows = (
                db.query(models.PriceListItem)
                .options(selectinload(models.PriceListItem.article))
                .join(models.PriceListItem.article)
                .filter(
                    models.PriceListItem.price_list_id == customer.price_list_id,
                    models.Article.is_active.is_(True),
                )
                .order_by(models.Article.code.asc())
                .all()
            )
        except SQLAlchemyError as exc:
            LOGGER.exception("Failed to resolve price list for customer %s", customer_id)
            raise BillingStoreError("Could not load the customer's price list") from exc

        fallback_vat = default_vat_rate()
        return [
            PriceCatalogEntry(
                article_id=row.article.id,
                code=row.article.code,
                name=row.article.name,
                unit_price=Decimal(row.custom_price),
                vat_rate=(
                    Decimal(row.article.vat_rate)
                    if row.article.vat_rate is not None
                    else fallback_vat
                ),
            )
            for row in rows
        ]

    @staticmethod
    def list_eligible_customers(
        db: Session, frequency: models.BillingFrequency
    ) -> list[models.Customer]:
        """Active customers billed with ``frequency`` that have a price list."""

        try:
            return (
                db.query(models.Customer)
                .filter(
                    models.Customer.is_active.is_(True),
                    models.Customer.billing_frequency == frequency,
                    models.Customer.price_list_id.isnot(None),
                )
                .order_by(models.Customer.company_name.asc())
                .all()
            )
        except SQLAlchemyError as exc:
            LOGGER.exception("Failed to list customers for %s billing", frequency.value)
            raise BillingStoreError("Could not load customers for billing") from exc

    @staticmethod
    def list_all_contract_customers(
        db: Session, *, include_inactive: bool = False
    ) -> list[models.Customer]:
        """Every contract customer, including those without a price list."""

        query = db.query(models.Customer).options(selectinload(models.Customer.price_list))
        if not include_inactive:
            query = query.filter(models.Customer.is_active.is_(True))
        try:
            return query.order_by(models.Customer.company_name.asc()).all()
        except SQLAlchemyError as exc:
            LOGGER.exception("Failed to list contract customers")
            raise BillingStoreError("Could not load contract customers") from exc

    @staticmethod
    def get_customer(db: Session, customer_id: str) -> Optional[models.Customer]:
        return db.query(models.Customer).filter(models.Customer.id == customer_id).first()
