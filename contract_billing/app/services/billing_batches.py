"""Batch lifecycle and bulk generation of contract billing lines."""

from __future__ import annotations

import logging
import os
import secrets
import string
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .. import models, schemas
from .billing_errors import (
    BatchGenerationError,
    BatchNotFoundError,
    BillingStoreError,
    ContractBillingError,
)
from .billing_periods import BillingPeriodService, quantize_amount
from .line_generator import generate_billing_lines
from .price_catalog import PriceCatalogService

LOGGER = logging.getLogger(__name__)

FAILURE_POLICY_ENV = "BILLING_BATCH_FAILURE_POLICY"
FAILURE_POLICY_CONTINUE = "continue"
FAILURE_POLICY_ABORT = "abort"
_FAILURE_POLICIES = {FAILURE_POLICY_CONTINUE, FAILURE_POLICY_ABORT}

_BATCH_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def resolve_failure_policy(override: Optional[str] = None) -> str:
    raw = override or os.getenv(FAILURE_POLICY_ENV) or FAILURE_POLICY_CONTINUE
    policy = raw.strip().lower()
    if policy not in _FAILURE_POLICIES:
        raise ValueError(
            f"{FAILURE_POLICY_ENV} must be one of: {', '.join(sorted(_FAILURE_POLICIES))}"
        )
    return policy


def generate_batch_number(today: Optional[date] = None) -> str:
    stamp = (today or date.today()).strftime("%Y%m%d")
    suffix = "".join(secrets.choice(_BATCH_SUFFIX_ALPHABET) for _ in range(6))
    return f"BATCH-{stamp}-{suffix}"


@dataclass
class BatchRunResult:
    """Batch plus the customers that could not be billed."""

    batch: models.ContractBillingBatch
    item_count: int = 0
    customer_count: int = 0
    total_amount: Decimal = Decimal("0")
    failures: list[schemas.BatchCustomerFailure] = field(default_factory=list)

    def to_schema(self) -> schemas.BatchGenerationResult:
        return schemas.BatchGenerationResult(
            batch=schemas.BatchRead.model_validate(self.batch),
            item_count=self.item_count,
            customer_count=self.customer_count,
            total_amount=self.total_amount,
            failed_customers=self.failures,
        )


class BatchService:
    """Operations on contract billing batches."""

    @staticmethod
    def create_batch(
        db: Session,
        *,
        period_start: date,
        period_end: date,
        frequency: Optional[models.BillingFrequency] = None,
        notes: Optional[str] = None,
        commit: bool = True,
    ) -> models.ContractBillingBatch:
        start, end = BillingPeriodService.normalize_period(period_start, period_end)
        batch = models.ContractBillingBatch(
            batch_number=generate_batch_number(),
            billing_period_start=start,
            billing_period_end=end,
            billing_frequency=frequency,
            status=models.BatchStatus.DRAFT,
            notes=notes,
        )
        try:
            db.add(batch)
            if commit:
                db.commit()
                db.refresh(batch)
            else:
                db.flush()
        except SQLAlchemyError as exc:
            db.rollback()
            LOGGER.exception("Failed to create billing batch")
            raise BillingStoreError("Could not create the billing batch") from exc
        return batch

    @staticmethod
    def generate_batch_billing(
        db: Session,
        frequency: models.BillingFrequency,
        period_start: date,
        period_end: date,
        *,
        notes: Optional[str] = None,
        failure_policy: Optional[str] = None,
    ) -> BatchRunResult:
        """Generate lines for every eligible customer of ``frequency``.

        Each customer runs inside its own savepoint. With the ``continue``
        policy a failing customer is rolled back and reported while the rest
        of the batch proceeds; with ``abort`` the whole batch is discarded.
        """

        policy = resolve_failure_policy(failure_policy)
        customers = PriceCatalogService.list_eligible_customers(db, frequency)
        batch = BatchService.create_batch(
            db,
            period_start=period_start,
            period_end=period_end,
            frequency=frequency,
            notes=notes,
            commit=False,
        )
        run = BatchRunResult(batch=batch)
        LOGGER.info(
            "Generating batch %s for %s %s customers (policy=%s)",
            batch.batch_number,
            len(customers),
            frequency.value,
            policy,
        )

        for customer in customers:
            try:
                with db.begin_nested():
                    lines = generate_billing_lines(
                        db,
                        customer.id,
                        batch.billing_period_start,
                        batch.billing_period_end,
                        batch_id=batch.id,
                    )
            except (ContractBillingError, SQLAlchemyError, ValueError) as exc:
                LOGGER.warning(
                    "Billing generation failed for customer %s: %s", customer.id, exc
                )
                if policy == FAILURE_POLICY_ABORT:
                    db.rollback()
                    raise BatchGenerationError(
                        f"Batch aborted: customer {customer.company_name} failed ({exc})",
                        detail={"customer_id": customer.id, "reason": str(exc)},
                    ) from exc
                run.failures.append(
                    schemas.BatchCustomerFailure(
                        customer_id=customer.id,
                        company_name=customer.company_name,
                        reason=str(exc),
                    )
                )
                continue

            if lines:
                run.customer_count += 1
                run.item_count += len(lines)
                run.total_amount += sum(
                    (Decimal(line.total_price) for line in lines), Decimal("0")
                )

        run.total_amount = quantize_amount(run.total_amount)
        batch.total_customers = run.customer_count
        batch.total_items = run.item_count
        batch.total_amount = run.total_amount
        batch.failed_customers = len(run.failures)
        batch.status = models.BatchStatus.GENERATED
        batch.generated_at = datetime.now(timezone.utc)

        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            LOGGER.exception("Failed to commit billing batch %s", batch.batch_number)
            raise BillingStoreError("Could not save the billing batch") from exc

        db.refresh(batch)
        LOGGER.info(
            "Batch %s generated %s lines for %s customers, total %s (%s failed)",
            batch.batch_number,
            run.item_count,
            run.customer_count,
            run.total_amount,
            len(run.failures),
        )
        return run

    @staticmethod
    def list_batches(
        db: Session, *, skip: int = 0, limit: int = 50
    ) -> Tuple[Iterable[models.ContractBillingBatch], int]:
        query = db.query(models.ContractBillingBatch)
        total = query.count()
        items = (
            query.order_by(models.ContractBillingBatch.created_at.desc())
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total

    @staticmethod
    def get_batch(db: Session, batch_id: str) -> models.ContractBillingBatch:
        batch = (
            db.query(models.ContractBillingBatch)
            .filter(models.ContractBillingBatch.id == batch_id)
            .first()
        )
        if batch is None:
            raise BatchNotFoundError(f"Billing batch {batch_id} not found")
        return batch

    @staticmethod
    def get_batch_with_items(
        db: Session, batch_id: str
    ) -> tuple[models.ContractBillingBatch, list[models.ContractBillingItem]]:
        batch = BatchService.get_batch(db, batch_id)
        items = (
            db.query(models.ContractBillingItem)
            .options(selectinload(models.ContractBillingItem.customer))
            .filter(models.ContractBillingItem.batch_id == batch.id)
            .order_by(
                models.ContractBillingItem.customer_id.asc(),
                models.ContractBillingItem.article_code.asc(),
            )
            .all()
        )
        return batch, items

    @staticmethod
    def update_batch_status(
        db: Session, batch_id: str, status: models.BatchStatus
    ) -> models.ContractBillingBatch:
        """Set the batch status; line statuses are managed separately."""

        batch = BatchService.get_batch(db, batch_id)
        now = datetime.now(timezone.utc)
        batch.status = status
        if status == models.BatchStatus.APPROVED and batch.approved_at is None:
            batch.approved_at = now
        elif status == models.BatchStatus.COMPLETED and batch.completed_at is None:
            batch.completed_at = now
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            LOGGER.exception("Failed to update billing batch %s", batch_id)
            raise BillingStoreError("Could not update the billing batch") from exc
        db.refresh(batch)
        return batch

    @staticmethod
    def delete_batch(db: Session, batch_id: str) -> None:
        """Delete a batch together with the lines it generated."""

        batch = BatchService.get_batch(db, batch_id)
        try:
            db.delete(batch)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            LOGGER.exception("Failed to delete billing batch %s", batch_id)
            raise BillingStoreError("Could not delete the billing batch") from exc
        LOGGER.info("Deleted billing batch %s", batch.batch_number)
