"""Status transition and discount approval rules for billing lines.

Everything here is pure: functions receive a line (or plain values) and either
answer a question or mutate the line in memory. Persistence is left to the
calling service.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from .. import models
from .billing_errors import BillingTransitionError

Status = models.BillingItemStatus

ALLOWED_TRANSITIONS: dict[models.BillingItemStatus, frozenset[models.BillingItemStatus]] = {
    Status.PENDING: frozenset({Status.APPROVED, Status.INVOICED, Status.PAID, Status.CANCELLED}),
    Status.APPROVED: frozenset({Status.INVOICED, Status.PAID, Status.CANCELLED}),
    Status.INVOICED: frozenset({Status.PAID, Status.CANCELLED}),
    Status.PAID: frozenset(),
    Status.CANCELLED: frozenset(),
}

TIMESTAMP_FIELDS: dict[models.BillingItemStatus, str] = {
    Status.APPROVED: "approved_at",
    Status.INVOICED: "invoiced_at",
    Status.PAID: "paid_at",
}


def requires_approval(discount_percent: Optional[Decimal | int | float]) -> bool:
    """A line needs an explicit approval when it carries any discount."""

    return Decimal(str(discount_percent or 0)) > 0


def can_transition(current: models.BillingItemStatus, target: models.BillingItemStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def is_noop(line: models.ContractBillingItem, target: models.BillingItemStatus) -> bool:
    return line.status == target


def is_held_for_approval(line: models.ContractBillingItem) -> bool:
    """Flagged lines still waiting for the discount approval action."""

    return bool(line.requires_approval) and line.status == Status.PENDING


def ensure_transition(line: models.ContractBillingItem, target: models.BillingItemStatus) -> None:
    if not can_transition(line.status, target):
        raise BillingTransitionError(
            f"Cannot move billing line {line.id} "
            f"from {Status(line.status).value} to {target.value}",
            detail={
                "id": line.id,
                "current_status": Status(line.status).value,
                "target_status": target.value,
            },
        )


def apply_status(
    line: models.ContractBillingItem,
    target: models.BillingItemStatus,
    *,
    invoice_number: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Move ``line`` to ``target`` and stamp the timestamp for the new state.

    Returns ``False`` when the line already has the target status; that case is
    skipped rather than treated as an error.
    """

    if is_noop(line, target):
        return False
    ensure_transition(line, target)

    timestamp = now or datetime.now(timezone.utc)
    line.status = target
    field = TIMESTAMP_FIELDS.get(target)
    if field:
        setattr(line, field, timestamp)
    if target == Status.INVOICED and invoice_number:
        line.invoice_number = invoice_number
    if notes:
        line.notes = notes
    return True


def approve_discount(line: models.ContractBillingItem) -> bool:
    """Clear the approval flag without touching the lifecycle status."""

    if not line.requires_approval:
        return False
    line.requires_approval = False
    return True
