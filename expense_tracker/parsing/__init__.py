"""Message parsing package."""

from expense_tracker.parsing.dates import (
    InvalidDateError,
    parse_command_date,
    parse_expense_date,
)
from expense_tracker.parsing.parser import ExpenseParser, parse_amount, split_blocks

__all__ = [
    "ExpenseParser",
    "InvalidDateError",
    "parse_amount",
    "parse_command_date",
    "parse_expense_date",
    "split_blocks",
]
