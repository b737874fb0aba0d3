"""Business logic for the contract billing line store."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .. import models, schemas
from . import billing_rules
from .billing_errors import (
    ArticleNotFoundError,
    BatchNotFoundError,
    BillingLineConflictError,
    BillingLineNotFoundError,
    BillingStoreError,
    CustomerNotFoundError,
)
from .billing_periods import BillingPeriodService, quantize_amount
from .price_catalog import default_vat_rate

LOGGER = logging.getLogger(__name__)


def line_total(unit_price: Decimal, quantity: Decimal) -> Decimal:
    return quantize_amount(Decimal(unit_price) * Decimal(quantity))


def is_unique_violation(exc: IntegrityError) -> bool:
    # PostgreSQL reports SQLSTATE 23505; SQLite only has the message text.
    if getattr(exc.orig, "pgcode", None) == "23505":
        return True
    return "UNIQUE constraint failed" in str(exc.orig)


def _exists(db: Session, column, value: str) -> Optional[tuple]:
    return db.query(column).filter(column == value).first()


class BillingLineService:
    """Create, query and advance billing lines."""

    @staticmethod
    def check_references(db: Session, data: schemas.BillingItemCreate) -> None:
        """Resolve the customer, article and batch a new line points at."""

        if _exists(db, models.Customer.id, data.customer_id) is None:
            raise CustomerNotFoundError(
                "Customer not found", detail={"customer_id": data.customer_id}
            )
        if data.article_id and _exists(db, models.Article.id, data.article_id) is None:
            raise ArticleNotFoundError(
                "Article not found", detail={"article_id": data.article_id}
            )
        if data.batch_id and _exists(db, models.ContractBillingBatch.id, data.batch_id) is None:
            raise BatchNotFoundError("Batch not found", detail={"batch_id": data.batch_id})

    @staticmethod
    def add_line(db: Session, line: models.ContractBillingItem) -> models.ContractBillingItem:
        """Stage ``line`` and flush it, mapping duplicate keys to a conflict.

        The caller owns the transaction; nothing is committed here.
        """

        if line.dedup_key:
            existing = (
                db.query(models.ContractBillingItem.id)
                .filter(models.ContractBillingItem.dedup_key == line.dedup_key)
                .first()
            )
            if existing is not None:
                raise BillingLineConflictError(
                    f"Billing line {line.dedup_key} already exists",
                    detail={"dedup_key": line.dedup_key, "existing_id": existing[0]},
                )

        db.add(line)
        try:
            db.flush()
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            raise BillingLineConflictError(
                f"Billing line {line.dedup_key or line.article_name} already exists",
                detail={"dedup_key": line.dedup_key},
            ) from exc
        return line

    @staticmethod
    def create_line(
        db: Session, data: schemas.BillingItemCreate
    ) -> models.ContractBillingItem:
        period_start, period_end = BillingPeriodService.normalize_period(
            data.billing_period_start, data.billing_period_end
        )
        discount = Decimal(data.discount_percent or 0)
        line = models.ContractBillingItem(
            customer_id=data.customer_id,
            billing_period_start=period_start,
            billing_period_end=period_end,
            article_id=data.article_id,
            article_code=data.article_code,
            article_name=data.article_name,
            quantity=data.quantity,
            unit_price=quantize_amount(data.unit_price),
            total_price=line_total(data.unit_price, data.quantity),
            vat_rate=data.vat_rate if data.vat_rate is not None else default_vat_rate(),
            status=models.BillingItemStatus.PENDING,
            item_type=data.item_type,
            source=data.source,
            discount_percent=discount,
            original_price=data.original_price,
            requires_approval=billing_rules.requires_approval(discount),
            batch_id=data.batch_id,
            case_id=data.case_id,
            case_type=data.case_type,
            notes=data.notes,
        )

        BillingLineService.check_references(db, data)

        try:
            BillingLineService.add_line(db, line)
            db.commit()
        except BillingLineConflictError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            LOGGER.exception("Failed to create billing line for customer %s", data.customer_id)
            raise BillingStoreError("Could not save the billing line") from exc

        db.refresh(line)
        LOGGER.info(
            "Created %s billing line %s for customer %s",
            line.item_type.value,
            line.id,
            line.customer_id,
        )
        return line

    @staticmethod
    def query_lines(
        db: Session,
        *,
        customer_id: Optional[str] = None,
        customer_ids: Optional[Sequence[str]] = None,
        statuses: Optional[Sequence[models.BillingItemStatus]] = None,
        item_type: Optional[models.BillingItemType] = None,
        batch_id: Optional[str] = None,
        requires_approval: Optional[bool] = None,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
    ):
        """Return a filtered query; callers decide ordering and paging."""

        query = db.query(models.ContractBillingItem).options(
            selectinload(models.ContractBillingItem.customer)
        )
        if customer_id:
            query = query.filter(models.ContractBillingItem.customer_id == customer_id)
        if customer_ids is not None:
            query = query.filter(models.ContractBillingItem.customer_id.in_(list(customer_ids)))
        if statuses:
            query = query.filter(models.ContractBillingItem.status.in_(list(statuses)))
        if item_type:
            query = query.filter(models.ContractBillingItem.item_type == item_type)
        if batch_id:
            query = query.filter(models.ContractBillingItem.batch_id == batch_id)
        if requires_approval is not None:
            query = query.filter(
                models.ContractBillingItem.requires_approval.is_(requires_approval)
            )
        if period_start:
            query = query.filter(
                models.ContractBillingItem.billing_period_start >= period_start
            )
        if period_end:
            query = query.filter(models.ContractBillingItem.billing_period_start <= period_end)
        return query

    @staticmethod
    def list_lines(
        db: Session,
        *,
        skip: int = 0,
        limit: int = 100,
        **filters,
    ) -> Tuple[Iterable[models.ContractBillingItem], int]:
        query = BillingLineService.query_lines(db, **filters)
        try:
            total = query.count()
            items = (
                query.order_by(
                    models.ContractBillingItem.billing_period_start.desc(),
                    models.ContractBillingItem.created_at.desc(),
                )
                .offset(max(skip, 0))
                .limit(max(limit, 1))
                .all()
            )
        except SQLAlchemyError as exc:
            LOGGER.exception("Failed to list billing lines")
            raise BillingStoreError("Could not load billing lines") from exc
        return items, total

    @staticmethod
    def get_line(db: Session, line_id: str) -> models.ContractBillingItem:
        line = (
            db.query(models.ContractBillingItem)
            .options(selectinload(models.ContractBillingItem.customer))
            .filter(models.ContractBillingItem.id == line_id)
            .first()
        )
        if line is None:
            raise BillingLineNotFoundError(f"Billing line {line_id} not found")
        return line

    @staticmethod
    def update_status(
        db: Session,
        line_id: str,
        data: schemas.BillingItemStatusUpdate,
    ) -> models.ContractBillingItem:
        """Move a single line; flagged lines are not blocked on this path."""

        line = BillingLineService.get_line(db, line_id)
        changed = billing_rules.apply_status(
            line,
            data.status,
            invoice_number=data.invoice_number,
            notes=data.notes,
        )
        if not changed:
            LOGGER.debug("Billing line %s already %s", line.id, data.status.value)
            return line

        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            LOGGER.exception("Failed to update billing line %s", line_id)
            raise BillingStoreError("Could not update the billing line") from exc
        db.refresh(line)
        return line

    @staticmethod
    def apply_bulk_status(
        lines: Iterable[models.ContractBillingItem],
        target: models.BillingItemStatus,
        *,
        invoice_number: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> schemas.BulkStatusResult:
        """Advance ``lines`` in memory; every transition is checked before any change.

        Flagged lines still waiting for approval are held back and no-ops are
        skipped.
        """

        result = schemas.BulkStatusResult(status=target)
        cancelling = target == models.BillingItemStatus.CANCELLED
        movable: list[models.ContractBillingItem] = []
        for line in lines:
            if billing_rules.is_noop(line, target):
                result.skipped.append(line.id)
            elif billing_rules.is_held_for_approval(line) and not cancelling:
                result.held_for_approval.append(line.id)
            else:
                billing_rules.ensure_transition(line, target)
                movable.append(line)

        timestamp = now or datetime.now(timezone.utc)
        for line in movable:
            billing_rules.apply_status(line, target, invoice_number=invoice_number, now=timestamp)
            result.updated.append(line.id)
        return result

    @staticmethod
    def bulk_update_status(
        db: Session,
        line_ids: Sequence[str],
        target: models.BillingItemStatus,
        *,
        invoice_number: Optional[str] = None,
    ) -> schemas.BulkStatusResult:
        unique_ids = list(dict.fromkeys(line_ids))
        lines = (
            db.query(models.ContractBillingItem)
            .filter(models.ContractBillingItem.id.in_(unique_ids))
            .all()
        )
        found = {line.id for line in lines}
        missing = [line_id for line_id in unique_ids if line_id not in found]
        if missing:
            raise BillingLineNotFoundError(
                f"Billing lines not found: {', '.join(missing)}",
                detail={"missing": missing},
            )

        result = BillingLineService.apply_bulk_status(
            lines, target, invoice_number=invoice_number
        )
        if not result.updated:
            return result

        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            LOGGER.exception("Failed to update %s billing lines", len(result.updated))
            raise BillingStoreError("Could not update the billing lines") from exc

        if result.held_for_approval:
            LOGGER.info(
                "Held %s discounted billing lines awaiting approval",
                len(result.held_for_approval),
            )
        return result

    @staticmethod
    def approve_discount(db: Session, line_id: str) -> models.ContractBillingItem:
        line = BillingLineService.get_line(db, line_id)
        if not billing_rules.approve_discount(line):
            return line
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            LOGGER.exception("Failed to approve discount on billing line %s", line_id)
            raise BillingStoreError("Could not approve the discount") from exc
        db.refresh(line)
        LOGGER.info("Approved discount on billing line %s", line_id)
        return line

    @staticmethod
    def delete_line(db: Session, line_id: str) -> None:
        line = BillingLineService.get_line(db, line_id)
        try:
            db.delete(line)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            LOGGER.exception("Failed to delete billing line %s", line_id)
            raise BillingStoreError("Could not delete the billing line") from exc

    @staticmethod
    def list_requiring_approval(db: Session) -> list[models.ContractBillingItem]:
        """Approval queue: flagged lines still pending, oldest period first."""

        return (
            BillingLineService.query_lines(
                db,
                statuses=[models.BillingItemStatus.PENDING],
                requires_approval=True,
            )
            .order_by(
                models.ContractBillingItem.billing_period_start.asc(),
                models.ContractBillingItem.created_at.asc(),
            )
            .all()
        )

    @staticmethod
    def billing_stats(
        db: Session,
        *,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
    ) -> schemas.BillingStats:
        query = db.query(
            models.ContractBillingItem.status,
            func.count(models.ContractBillingItem.id),
            func.coalesce(func.sum(models.ContractBillingItem.total_price), 0),
        )
        if period_start:
            query = query.filter(
                models.ContractBillingItem.billing_period_start >= period_start
            )
        if period_end:
            query = query.filter(models.ContractBillingItem.billing_period_start <= period_end)

        try:
            rows = query.group_by(models.ContractBillingItem.status).all()
        except SQLAlchemyError as exc:
            LOGGER.exception("Failed to compute billing statistics")
            raise BillingStoreError("Could not compute billing statistics") from exc

        stats = schemas.BillingStats()
        for status, count, amount in rows:
            key = models.BillingItemStatus(status)
            if key == models.BillingItemStatus.CANCELLED:
                continue
            setattr(
                stats,
                key.value,
                schemas.BillingStatusStat(count=int(count), amount=quantize_amount(amount)),
            )
        return stats
