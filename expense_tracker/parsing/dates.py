"""
Date Parsing

Two date grammars live here:

1. Expense dates typed inside a message: "<day> <mon>", e.g. "02 aug".
   No year is typed. The current year is assumed, and a date that would
   land in the future is moved back one year so that logging a December
   expense in early January works.

2. Command arguments: strict ISO "YYYY-MM-DD".

Expense dates that do not parse return None (the caller treats that as
"no draft"). Command dates that do not parse raise InvalidDateError so
the chat layer can tell the user exactly what was wrong.
"""

import re
from datetime import date
from typing import Optional

MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

_LEADING_INT = re.compile(r"^[+-]?\d+")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")


class InvalidDateError(ValueError):
    """A command date argument could not be understood."""

    def __init__(self, value: str, expected: str = "YYYY-MM-DD"):
        self.value = value
        self.expected = expected
        super().__init__(f"Invalid date {value!r}, expected {expected}")


def parse_expense_date(value: str, today: Optional[date] = None) -> Optional[date]:
    """
    Parse "<day> <mon>" into a calendar date.

    Day must be 1-31 and the month one of the twelve three-letter
    abbreviations (any case). Impossible days such as "30 feb" are
    rejected rather than rolled into the next month.

    Returns None when the value does not parse.
    """
    today = today or date.today()
    parts = value.lower().strip().split()
    if len(parts) < 2:
        return None

    day_match = _LEADING_INT.match(parts[0])
    if not day_match:
        return None
    day = int(day_match.group())

    month = MONTHS.get(parts[1])
    if month is None or day < 1 or day > 31:
        return None

    try:
        parsed = date(today.year, month, day)
    except ValueError:
        return None

    if parsed > today:
        try:
            parsed = parsed.replace(year=today.year - 1)
        except ValueError:
            # 29 feb when last year was not a leap year
            return None

    return parsed


def parse_command_date(value: str) -> date:
    """
    Parse a strict YYYY-MM-DD command argument.

    Raises:
        InvalidDateError: If the value is malformed or not a real date
    """
    match = _ISO_DATE.match(value.strip())
    if not match:
        raise InvalidDateError(value)
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        raise InvalidDateError(value) from None
