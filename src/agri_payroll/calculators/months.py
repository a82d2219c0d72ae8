"""Calendar month keys (``YYYY-MM``)."""

from __future__ import annotations

import re
from datetime import date

from agri_payroll.errors import ValidationError

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def parse_month(key: str) -> date:
    """Return the first day of the month named by ``key``.

    Raises:
        ValidationError: If the key is not a valid ``YYYY-MM`` string
    """
    match = _MONTH_RE.match(key or "")
    if not match or not 1 <= int(match.group(2)) <= 12:
        raise ValidationError(f"Invalid month '{key}', expected YYYY-MM", month=key)
    return date(int(match.group(1)), int(match.group(2)), 1)


def month_bounds(key: str) -> tuple[date, date]:
    """First day of the month and first day of the following month."""
    start = parse_month(key)
    if start.month == 12:
        end = date(start.year + 1, 1, 1)
    else:
        end = date(start.year, start.month + 1, 1)
    return start, end
