"""Exceptions raised by the contract billing services."""

from __future__ import annotations

from typing import Optional


class ContractBillingError(RuntimeError):
    """Base class for billing operations that cannot be completed."""

    def __init__(self, message: str, *, detail: Optional[object] = None) -> None:
        super().__init__(message)
        self.detail = detail if detail is not None else message


class BillingLineNotFoundError(ContractBillingError):
    """Raised when a billing line does not exist."""


class BatchNotFoundError(ContractBillingError):
    """Raised when a generation batch does not exist."""


class CustomerNotFoundError(ContractBillingError):
    """Raised when a line or import refers to an unknown customer."""


class ArticleNotFoundError(ContractBillingError):
    """Raised when a line refers to an article missing from the catalogue."""


class BillingTransitionError(ContractBillingError):
    """Raised when a status change would move a line backwards or out of a final state."""


class BillingLineConflictError(ContractBillingError):
    """Raised when a line with the same idempotency key already exists."""


class BillingStoreError(ContractBillingError):
    """Raised when the database rejects a billing read or write."""


class BatchGenerationError(ContractBillingError):
    """Raised when a batch is aborted because one customer failed."""
