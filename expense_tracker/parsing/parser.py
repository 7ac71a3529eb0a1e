"""
Expense Message Parser

Turns raw chat text into expense drafts.

A single expense is a block of lines, each starting with a prefix
(case-insensitive):

    amount: 300
    category: hair remover
    date: 02 aug
    description: optional note

Lines with any other prefix are ignored. When a prefix repeats, the
last valid occurrence wins. A draft exists only if amount, category
and date are all present and valid.

Several expenses can be sent in one message by separating the blocks
with blank lines. Blocks that do not parse are dropped from the result;
parse_many_with_report() also returns them for callers that care.

IMPORTANT: Parsing never raises. Text that is not an expense is an
expected input in a chat, not an error.
"""

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

from pydantic import ValidationError

from expense_tracker.models.expense import ExpenseDraft, ParseReport, quantize_amount
from expense_tracker.parsing.dates import parse_expense_date


AMOUNT_PREFIX = "amount:"
CATEGORY_PREFIX = "category:"
DATE_PREFIX = "date:"
DESCRIPTION_PREFIX = "description:"

REQUIRED_PREFIXES = (AMOUNT_PREFIX, CATEGORY_PREFIX, DATE_PREFIX)

_BLOCK_SEPARATOR = re.compile(r"\n\s*\n")
_LEADING_NUMBER = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)")


def split_blocks(text: str) -> list[str]:
    """Split text on blank lines into non-empty blocks."""
    return [block for block in _BLOCK_SEPARATOR.split(text) if block.strip()]


def parse_amount(value: str) -> Optional[Decimal]:
    """
    Read the leading decimal number of value.

    "300", "25.50" and "300 rs" are accepted. The result is rounded to
    cents and must be strictly positive.
    """
    match = _LEADING_NUMBER.match(value.strip())
    if not match:
        return None
    try:
        amount = quantize_amount(Decimal(match.group()))
    except InvalidOperation:
        return None
    if amount <= 0:
        return None
    return amount


class ExpenseParser:
    """
    Line-oriented expense parser.

    The clock is injectable so year inference can be tested.
    """

    def __init__(self, today: Optional[Callable[[], date]] = None):
        self._today = today or date.today

    def parse_one(self, text: str) -> Optional[ExpenseDraft]:
        """Parse one expense block. Returns None if it is incomplete."""
        amount: Optional[Decimal] = None
        category: Optional[str] = None
        expense_date: Optional[date] = None
        description = ""

        today = self._today()

        for raw_line in text.splitlines():
            line = raw_line.strip()
            if not line:
                continue
            lower_line = line.lower()

            if lower_line.startswith(AMOUNT_PREFIX):
                parsed_amount = parse_amount(line[len(AMOUNT_PREFIX):])
                if parsed_amount is not None:
                    amount = parsed_amount

            elif lower_line.startswith(CATEGORY_PREFIX):
                label = line[len(CATEGORY_PREFIX):].strip()
                if label:
                    category = label

            elif lower_line.startswith(DATE_PREFIX):
                parsed_date = parse_expense_date(line[len(DATE_PREFIX):], today=today)
                if parsed_date is not None:
                    expense_date = parsed_date

            elif lower_line.startswith(DESCRIPTION_PREFIX):
                description = line[len(DESCRIPTION_PREFIX):].strip()

        if amount is None or category is None or expense_date is None:
            return None

        try:
            return ExpenseDraft(
                amount=amount,
                category_label=category,
                description=description,
                date=expense_date,
            )
        except ValidationError:
            # e.g. a category label longer than storage allows
            return None

    def parse_many_with_report(self, text: str) -> ParseReport:
        """Parse every blank-line separated block, keeping failures."""
        report = ParseReport()
        for block in split_blocks(text):
            draft = self.parse_one(block)
            if draft is None:
                report.failed_blocks.append(block.strip())
            else:
                report.drafts.append(draft)
        return report

    def parse_many(self, text: str) -> list[ExpenseDraft]:
        """Parse every blank-line separated block, dropping failures."""
        return self.parse_many_with_report(text).drafts

    @staticmethod
    def looks_like_expense(text: str) -> bool:
        """
        Cheap pre-filter: all three required prefixes appear somewhere.

        This over-approximates. A True result can still parse to nothing.
        """
        lower_text = text.lower()
        return all(prefix in lower_text for prefix in REQUIRED_PREFIXES)

    @staticmethod
    def contains_multiple(text: str) -> bool:
        """True if the text has more than one non-empty block."""
        return len(split_blocks(text)) > 1
