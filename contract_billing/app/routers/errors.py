"""Translate billing service errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from ..services.billing_errors import (
    ArticleNotFoundError,
    BatchGenerationError,
    BatchNotFoundError,
    BillingLineConflictError,
    BillingLineNotFoundError,
    BillingStoreError,
    BillingTransitionError,
    ContractBillingError,
    CustomerNotFoundError,
)

_STATUS_BY_ERROR: tuple[tuple[type[ContractBillingError], int], ...] = (
    (BillingLineNotFoundError, status.HTTP_404_NOT_FOUND),
    (BatchNotFoundError, status.HTTP_404_NOT_FOUND),
    (CustomerNotFoundError, status.HTTP_404_NOT_FOUND),
    (ArticleNotFoundError, status.HTTP_404_NOT_FOUND),
    (BillingLineConflictError, status.HTTP_409_CONFLICT),
    (BillingTransitionError, status.HTTP_400_BAD_REQUEST),
    (BatchGenerationError, status.HTTP_400_BAD_REQUEST),
    (BillingStoreError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def http_error(exc: Exception) -> HTTPException:
    """Map a service exception to the matching ``HTTPException``."""

    if isinstance(exc, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    for error_cls, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
