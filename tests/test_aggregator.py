"""Tests for the aggregation engine."""

from datetime import date
from decimal import Decimal

import pytest

from expense_tracker.queries import Aggregator, InvalidRangeError, category_breakdown

from conftest import TODAY, make_expense


@pytest.fixture
def aggregator(expense_store) -> Aggregator:
    return Aggregator(expense_store, today=lambda: TODAY)


class TestDailySummary:
    """Tests for daily summaries."""

    @pytest.mark.asyncio
    async def test_empty_day(self, aggregator):
        summary = await aggregator.daily_summary(TODAY)

        assert summary.date == TODAY
        assert summary.total_amount == Decimal("0")
        assert summary.category_breakdown == {}
        assert summary.expenses == []

    @pytest.mark.asyncio
    async def test_two_expenses_same_day(self, aggregator, expense_store):
        await expense_store.add(make_expense("25.50", "Coffee"))
        await expense_store.add(make_expense("150.00", "Groceries"))
        await expense_store.add(make_expense("99.99", "Coffee", day=date(2024, 8, 14)))

        summary = await aggregator.daily_summary(TODAY)

        assert summary.total_amount == Decimal("175.50")
        assert summary.category_breakdown == {
            "Coffee": Decimal("25.50"),
            "Groceries": Decimal("150.00"),
        }
        assert len(summary.expenses) == 2

    @pytest.mark.asyncio
    async def test_breakdown_groups_by_label(self, aggregator, expense_store):
        await expense_store.add(make_expense("10", "Coffee", category_id=1))
        await expense_store.add(make_expense("5", "Coffee", category_id=2))

        summary = await aggregator.daily_summary(TODAY)
        assert summary.category_breakdown == {"Coffee": Decimal("15.00")}


class TestRangeSummary:
    @pytest.mark.asyncio
    async def test_inclusive_range(self, aggregator, expense_store):
        await expense_store.add(make_expense("1", "A", day=date(2024, 8, 1)))
        await expense_store.add(make_expense("2", "B", day=date(2024, 8, 10)))
        await expense_store.add(make_expense("4", "A", day=date(2024, 8, 11)))

        summary = await aggregator.range_summary(date(2024, 8, 1), date(2024, 8, 10))

        assert summary.total_amount == Decimal("3.00")
        assert summary.category_breakdown == {"A": Decimal("1.00"), "B": Decimal("2.00")}

    @pytest.mark.asyncio
    async def test_start_after_end(self, aggregator):
        with pytest.raises(InvalidRangeError):
            await aggregator.range_summary(date(2024, 8, 2), date(2024, 8, 1))


class TestOverallStats:
    """Tests for overall statistics."""

    @pytest.mark.asyncio
    async def test_stats(self, aggregator, expense_store):
        await expense_store.add(make_expense("100", "Rent", day=date(2024, 7, 31)))
        await expense_store.add(make_expense("25.50", "Coffee", day=date(2024, 8, 1)))
        await expense_store.add(make_expense("4.50", "coffee", day=TODAY))

        stats = await aggregator.overall_stats()

        assert stats.total_amount == Decimal("130.00")
        assert stats.entry_count == 3
        # Labels are counted as typed
        assert stats.category_count == 3
        assert stats.this_month_total == Decimal("30.00")

    @pytest.mark.asyncio
    async def test_stats_over_given_expenses(self, aggregator, expense_store):
        await expense_store.add(make_expense("10", "A"))
        given = [make_expense("1", "X"), make_expense("2", "Y")]

        stats = await aggregator.overall_stats(given, today=TODAY)

        assert stats.total_amount == Decimal("3.00")
        assert stats.entry_count == 2
        assert stats.category_count == 2
        # Month total always comes from storage
        assert stats.this_month_total == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_empty(self, aggregator):
        stats = await aggregator.overall_stats()
        assert stats.total_amount == Decimal("0")
        assert stats.entry_count == 0
        assert stats.this_month_total == Decimal("0")


def test_category_breakdown_keeps_first_seen_order():
    expenses = [make_expense("1", "B"), make_expense("5", "A"), make_expense("2", "B")]
    assert list(category_breakdown(expenses).items()) == [
        ("B", Decimal("3.00")),
        ("A", Decimal("5.00")),
    ]
