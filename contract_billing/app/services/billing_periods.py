"""Helpers to normalize, iterate and label calendar billing periods."""

from __future__ import annotations

import re
from calendar import monthrange
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterator, Optional

from .. import models

SWEDISH_MONTH_ABBREVIATIONS = (
    "jan",
    "feb",
    "mar",
    "apr",
    "maj",
    "jun",
    "jul",
    "aug",
    "sep",
    "okt",
    "nov",
    "dec",
)

FREQUENCY_MONTHS: dict[models.BillingFrequency, int] = {
    models.BillingFrequency.MONTHLY: 1,
    models.BillingFrequency.QUARTERLY: 3,
    models.BillingFrequency.SEMI_ANNUAL: 6,
    models.BillingFrequency.ANNUAL: 12,
    models.BillingFrequency.ON_DEMAND: 0,
}

CENTS = Decimal("0.01")


class BillingPeriodService:
    """Utility helpers around whole-month billing periods."""

    VALID_PERIOD_PATTERN = re.compile(r"^\d{4}-\d{2}$")

    @staticmethod
    def month_start(value: date) -> date:
        return value.replace(day=1)

    @staticmethod
    def month_end(value: date) -> date:
        _, last_day = monthrange(value.year, value.month)
        return value.replace(day=last_day)

    @staticmethod
    def month_key(value: date) -> str:
        return f"{value.year:04d}-{value.month:02d}"

    @classmethod
    def enclosing_month(cls, value: date) -> tuple[date, date]:
        """Expand a single day to the calendar month that contains it."""

        return cls.month_start(value), cls.month_end(value)

    @classmethod
    def normalize_period(cls, start: date, end: Optional[date] = None) -> tuple[date, date]:
        """Widen a date range so it starts and ends on month boundaries."""

        end = end or start
        if end < start:
            raise ValueError("Period end cannot be before period start")
        return cls.month_start(start), cls.month_end(end)

    @classmethod
    def parse_period_key(cls, period_key: str) -> tuple[str, date, date]:
        """Return ``(normalized_key, first_day, last_day)`` for a ``YYYY-MM`` key."""

        if not period_key:
            raise ValueError("period_key is required")

        sanitized = period_key.strip()
        if not cls.VALID_PERIOD_PATTERN.match(sanitized):
            raise ValueError("Invalid period key format, expected YYYY-MM")

        year_str, month_str = sanitized.split("-", maxsplit=1)
        year = int(year_str)
        month = int(month_str)
        if month < 1 or month > 12:
            raise ValueError("Invalid period key format, expected YYYY-MM")

        starts_on = date(year, month, 1)
        return cls.month_key(starts_on), starts_on, cls.month_end(starts_on)

    @classmethod
    def iter_months(cls, start_key: str, end_key: str) -> Iterator[tuple[str, date, date]]:
        """Yield every month between two ``YYYY-MM`` keys, both included."""

        _, current, _ = cls.parse_period_key(start_key)
        _, last, _ = cls.parse_period_key(end_key)
        if last < current:
            raise ValueError("end_month cannot be before start_month")

        while current <= last:
            yield cls.month_key(current), current, cls.month_end(current)
            if current.month == 12:
                current = date(current.year + 1, 1, 1)
            else:
                current = date(current.year, current.month + 1, 1)

    @classmethod
    def calculate_billing_period(
        cls,
        frequency: models.BillingFrequency,
        reference_date: Optional[date] = None,
    ) -> tuple[date, date]:
        """Return the period that contains ``reference_date`` for a frequency.

        Quarters and half-years are aligned to the calendar year. On-demand
        billing falls back to the current month.
        """

        reference = reference_date or date.today()
        month_index = reference.month - 1

        if frequency == models.BillingFrequency.QUARTERLY:
            start_index = (month_index // 3) * 3
            end_index = start_index + 2
        elif frequency == models.BillingFrequency.SEMI_ANNUAL:
            start_index = 0 if month_index < 6 else 6
            end_index = start_index + 5
        elif frequency == models.BillingFrequency.ANNUAL:
            start_index, end_index = 0, 11
        else:
            start_index = end_index = month_index

        start = date(reference.year, start_index + 1, 1)
        end = cls.month_end(date(reference.year, end_index + 1, 1))
        return start, end

    @staticmethod
    def format_period_label(start: date, end: date) -> str:
        """Render a period the way the Swedish invoices show it (``jan 2025``)."""

        start_label = SWEDISH_MONTH_ABBREVIATIONS[start.month - 1]
        end_label = SWEDISH_MONTH_ABBREVIATIONS[end.month - 1]
        if (start.year, start.month) == (end.year, end.month):
            return f"{start_label} {start.year}"
        if start.year == end.year:
            return f"{start_label} - {end_label} {start.year}"
        return f"{start_label} {start.year} - {end_label} {end.year}"

    @staticmethod
    def format_amount(amount: Decimal) -> str:
        """Format an amount as whole kronor with a space as thousands separator."""

        rounded = Decimal(amount or 0).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return f"{int(rounded):,} kr".replace(",", " ")


def quantize_amount(value: Decimal | int | str) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)
