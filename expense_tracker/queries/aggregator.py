"""
Aggregation Engine

DESIGN DECISION: Reports are computed, never stored.
Every call fetches the matching expenses from the store and re-scans
them. There is no cache to invalidate when expenses are added or cleared.

Breakdowns group by the category label saved with each expense, not by
category id, so a renamed category keeps its old label in history.
"""

from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Optional

from expense_tracker.models.expense import (
    DailySummary,
    Expense,
    OverallStats,
    RangeSummary,
)
from expense_tracker.services.storage import ExpenseStorageInterface


class InvalidRangeError(ValueError):
    """Range start falls after range end."""

    def __init__(self, start: date, end: date):
        self.start = start
        self.end = end
        super().__init__(f"Start date {start.isoformat()} is after end date {end.isoformat()}")


def category_breakdown(expenses: Iterable[Expense]) -> dict[str, Decimal]:
    """
    Summed amount per category label.

    Keys keep the order in which each label was first seen.
    """
    breakdown: dict[str, Decimal] = {}
    for expense in expenses:
        label = expense.category_label
        breakdown[label] = breakdown.get(label, Decimal("0")) + expense.amount
    return breakdown


def _total(expenses: Iterable[Expense]) -> Decimal:
    return sum((e.amount for e in expenses), Decimal("0"))


class Aggregator:
    """
    Builds summaries and statistics from the expense store.

    GUARANTEES:
    - Only reports what storage returns
    - An empty period is a zero report, not an error
    """

    def __init__(
        self,
        store: ExpenseStorageInterface,
        today: Optional[Callable[[], date]] = None,
    ):
        self._store = store
        self._today = today or date.today

    @staticmethod
    def category_breakdown(expenses: Iterable[Expense]) -> dict[str, Decimal]:
        return category_breakdown(expenses)

    async def daily_summary(self, day: date) -> DailySummary:
        """Spending on one calendar day."""
        expenses = await self._store.by_date(day)
        return DailySummary(
            date=day,
            total_amount=_total(expenses),
            expenses=expenses,
            category_breakdown=category_breakdown(expenses),
        )

    async def range_summary(self, start: date, end: date) -> RangeSummary:
        """
        Spending from start to end, both days included.

        Raises:
            InvalidRangeError: If start is after end
        """
        if start > end:
            raise InvalidRangeError(start, end)

        expenses = await self._store.by_date_range(start, end)
        return RangeSummary(
            start=start,
            end=end,
            total_amount=_total(expenses),
            expenses=expenses,
            category_breakdown=category_breakdown(expenses),
        )

    async def overall_stats(
        self,
        all_expenses: Optional[list[Expense]] = None,
        today: Optional[date] = None,
    ) -> OverallStats:
        """
        Totals across all_expenses (every stored expense if omitted).

        this_month_total always comes from the store, covering the first
        of the current month through today.
        """
        if all_expenses is None:
            all_expenses = await self._store.all()
        today = today or self._today()

        this_month_total = await self._store.total_for_date_range(today.replace(day=1), today)

        return OverallStats(
            total_amount=_total(all_expenses),
            category_count=len({e.category_label for e in all_expenses}),
            this_month_total=this_month_total,
            entry_count=len(all_expenses),
        )
