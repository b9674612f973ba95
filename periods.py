import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

logger = logging.getLogger(__name__)

# Upper bound on the month walk; 600 months is fifty years of history.
MAX_MONTH_STEPS = 600

# Latest month whose exclusive end still fits in a date.
LAST_SUPPORTED_MONTH = (9999, 11)


class MonthValidationError(ValueError):
    pass


@dataclass(frozen=True)
class MonthRange:
    key: str
    start: date
    end: date  # exclusive: first day of the following month


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def month_start(d: date) -> date:
    return d.replace(day=1)


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def month_range(month: str) -> MonthRange:
    """Resolve a ``YYYY-MM`` string into its [start, end) calendar window."""
    parts = (month or "").strip().split("-")
    if len(parts) != 2:
        raise MonthValidationError("month is invalid, use YYYY-MM")
    try:
        year = int(parts[0])
        month_value = int(parts[1])
    except ValueError as exc:
        raise MonthValidationError("month is invalid, use YYYY-MM") from exc
    if year <= 0 or month_value < 1 or month_value > 12:
        raise MonthValidationError("month is invalid, use YYYY-MM")
    if (year, month_value) > LAST_SUPPORTED_MONTH:
        raise MonthValidationError("month must be on or before 9999-11")
    start = date(year, month_value, 1)
    return MonthRange(month_key(start), start, add_months(start, 1))


def month_span(
    first: date, last: date, *, max_steps: Optional[int] = None
) -> list[date]:
    """First days of every month from ``first`` to ``last``, both inclusive.

    The walk stops after ``max_steps`` months even if ``last`` was not
    reached, so a corrupted date cannot turn it into an unbounded loop.
    """
    limit = MAX_MONTH_STEPS if max_steps is None else max_steps
    current = month_start(first)
    end_month = month_start(last)
    months: list[date] = []
    while current <= end_month:
        if len(months) >= limit:
            logger.warning(
                "month_span: cap of %s months reached between %s and %s",
                limit,
                month_key(first),
                month_key(last),
            )
            break
        months.append(current)
        try:
            current = add_months(current, 1)
        except ValueError:
            break
    return months
