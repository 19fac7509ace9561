"""
Month resolution helpers for billing.

Months are carried around as "YYYY-MM" strings. The bill for month X is due
early in month X+1; a due day past the end of that month is clamped to its
last day (due day 31 for a February bill lands on 30 March, for a January
bill on 28/29 February).
"""
import re
from calendar import monthrange
from datetime import date, datetime, timezone
from typing import Tuple

MONTH_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


class InvalidMonth(ValueError):
     """Month string is not YYYY-MM."""


def utcnow() -> datetime:
     """Naive UTC timestamp, matching how DateTime columns are stored."""
     return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_month(month: str) -> Tuple[int, int]:
     match = MONTH_PATTERN.match(month or "")
     if not match:
          raise InvalidMonth(f"Month must be in YYYY-MM format, got {month!r}")
     return int(match.group(1)), int(match.group(2))


def format_month(year: int, month: int) -> str:
     return f"{year:04d}-{month:02d}"


def current_month(now: datetime) -> str:
     return format_month(now.year, now.month)


def next_month(now: datetime) -> str:
     """Calendar month following `now`, e.g. 2024-12-15 -> "2025-01"."""
     if now.month == 12:
          return format_month(now.year + 1, 1)
     return format_month(now.year, now.month + 1)


def due_date(month: str, due_day: int) -> date:
     """
     The `due_day`-th day of the month following `month`, clamped to the
     last day of that month.

     Raises:
          InvalidMonth: malformed month string
          ValueError: due_day is zero or negative
     """
     if due_day is None or due_day < 1:
          raise ValueError(f"Due day must be a positive day of month, got {due_day}")

     year, month_num = parse_month(month)
     if month_num == 12:
          year, month_num = year + 1, 1
     else:
          month_num += 1

     last_day = monthrange(year, month_num)[1]
     return date(year, month_num, min(due_day, last_day))


def days_between(start: date, end: date) -> int:
     """Whole days from start to end (negative if end is before start)."""
     return (end - start).days
