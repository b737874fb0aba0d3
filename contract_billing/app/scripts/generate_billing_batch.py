"""Command line entry-point to generate a contract billing batch from cron."""

from __future__ import annotations

import argparse
import logging
from datetime import date
from typing import Optional

from ..database import session_scope
from ..models import BillingFrequency
from ..services.billing_batches import FAILURE_POLICY_ENV, BatchService
from ..services.billing_errors import ContractBillingError
from ..services.billing_periods import BillingPeriodService

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PARTIAL = 2


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Generate contract billing lines for every customer on a billing "
            "frequency, suitable for cron."
        )
    )
    parser.add_argument(
        "--frequency",
        choices=[member.value for member in BillingFrequency],
        default=BillingFrequency.MONTHLY.value,
        help="Billing frequency to generate (default: monthly).",
    )
    parser.add_argument(
        "--reference-date",
        type=date.fromisoformat,
        help="Any day inside the period to bill (YYYY-MM-DD, default: today).",
    )
    parser.add_argument(
        "--period-start",
        type=date.fromisoformat,
        help="Explicit period start; overrides --reference-date.",
    )
    parser.add_argument(
        "--period-end",
        type=date.fromisoformat,
        help="Explicit period end; defaults to the end of the start month.",
    )
    parser.add_argument(
        "--failure-policy",
        choices=["continue", "abort"],
        help=f"Override {FAILURE_POLICY_ENV} for this run.",
    )
    parser.add_argument("--notes", help="Free text stored on the batch.")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log every generated customer.",
    )
    return parser.parse_args(argv)


def _resolve_period(args: argparse.Namespace, frequency: BillingFrequency) -> tuple[date, date]:
    if args.period_start:
        return BillingPeriodService.normalize_period(args.period_start, args.period_end)
    return BillingPeriodService.calculate_billing_period(frequency, args.reference_date)


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)

    frequency = BillingFrequency(args.frequency)
    try:
        period_start, period_end = _resolve_period(args, frequency)
    except ValueError as exc:
        LOGGER.error("Invalid billing period: %s", exc)
        return EXIT_FAILED

    LOGGER.info(
        "Generating %s billing for %s",
        frequency.value,
        BillingPeriodService.format_period_label(period_start, period_end),
    )
    try:
        with session_scope() as db:
            run = BatchService.generate_batch_billing(
                db,
                frequency,
                period_start,
                period_end,
                notes=args.notes,
                failure_policy=args.failure_policy,
            )
            batch_number = run.batch.batch_number
    except (ContractBillingError, ValueError) as exc:
        LOGGER.error("Batch generation failed: %s", exc)
        return EXIT_FAILED

    LOGGER.info(
        "Batch %s: %s lines for %s customers, total %s",
        batch_number,
        run.item_count,
        run.customer_count,
        BillingPeriodService.format_amount(run.total_amount),
    )
    for failure in run.failures:
        LOGGER.warning(
            "Customer %s (%s) was not billed: %s",
            failure.company_name,
            failure.customer_id,
            failure.reason,
        )
    return EXIT_PARTIAL if run.failures else EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
