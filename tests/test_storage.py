"""
Tests for expense and category storage.

Every test runs against both implementations: the in-memory one and
the SQLAlchemy one on a temporary SQLite file.
"""

from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio

from expense_tracker.config import DatabaseSettings
from expense_tracker.models.expense import Category
from expense_tracker.services.storage import (
    DuplicateError,
    InMemoryCategoryStorage,
    InMemoryExpenseStorage,
    SqlCategoryStorage,
    SqlExpenseStorage,
    create_engine_from_settings,
    init_db,
)

from conftest import make_expense

AUG_1 = date(2024, 8, 1)
AUG_2 = date(2024, 8, 2)
AUG_3 = date(2024, 8, 3)


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def stores(request, tmp_path):
    """(expense_store, category_store) for each backend."""
    if request.param == "memory":
        expenses = InMemoryExpenseStorage()
        yield expenses, InMemoryCategoryStorage(expenses)
        return

    settings = DatabaseSettings(url=f"sqlite:///{tmp_path / 'expenses.db'}")
    engine = create_engine_from_settings(settings)
    await init_db(engine)
    try:
        yield SqlExpenseStorage(engine), SqlCategoryStorage(engine)
    finally:
        await engine.dispose()


class TestExpenseStorage:
    """Tests for the expense query surface."""

    @pytest.mark.asyncio
    async def test_add_assigns_id(self, stores):
        expenses, _ = stores
        stored = await expenses.add(make_expense("25.50", "Coffee", AUG_2, description="latte"))

        assert stored.id is not None
        assert stored.amount == Decimal("25.50")
        assert stored.description == "latte"
        assert stored.date == AUG_2
        assert await expenses.count() == 1

    @pytest.mark.asyncio
    async def test_by_date_covers_only_that_day(self, stores):
        expenses, _ = stores
        await expenses.add(make_expense("1", day=AUG_1))
        await expenses.add(make_expense("2", day=AUG_2))
        await expenses.add(make_expense("3", day=AUG_2))
        await expenses.add(make_expense("4", day=AUG_3))

        result = await expenses.by_date(AUG_2)
        assert [e.amount for e in result] == [Decimal("2.00"), Decimal("3.00")]

    @pytest.mark.asyncio
    async def test_by_date_range_is_inclusive(self, stores):
        expenses, _ = stores
        for day in (date(2024, 7, 31), AUG_1, AUG_2, AUG_3, date(2024, 8, 4)):
            await expenses.add(make_expense("1", day=day))

        result = await expenses.by_date_range(AUG_1, AUG_3)
        assert [e.date for e in result] == [AUG_1, AUG_2, AUG_3]

    @pytest.mark.asyncio
    async def test_by_date_range_user_filter(self, stores):
        expenses, _ = stores
        await expenses.add(make_expense("1", day=AUG_1, user_id=1))
        await expenses.add(make_expense("2", day=AUG_1, user_id=2))

        result = await expenses.by_date_range(AUG_1, AUG_1, user_id=2)
        assert [e.user_id for e in result] == [2]

    @pytest.mark.asyncio
    async def test_by_category_matches_stored_label_any_case(self, stores):
        expenses, _ = stores
        await expenses.add(make_expense("1", "Coffee"))
        await expenses.add(make_expense("2", "coffee"))
        await expenses.add(make_expense("3", "Tea"))

        result = await expenses.by_category("COFFEE")
        assert sorted(e.amount for e in result) == [Decimal("1.00"), Decimal("2.00")]

    @pytest.mark.asyncio
    async def test_by_chat_and_topic(self, stores):
        expenses, _ = stores
        await expenses.add(make_expense("1", chat_id=10, topic_id=5))
        await expenses.add(make_expense("2", chat_id=10))
        await expenses.add(make_expense("3", chat_id=20, topic_id=5))

        assert len(await expenses.by_chat(10)) == 2
        assert len(await expenses.by_topic(5)) == 2
        assert await expenses.by_topic(99) == []

    @pytest.mark.asyncio
    async def test_clear_for_date_leaves_adjacent_days(self, stores):
        expenses, _ = stores
        await expenses.add(make_expense("1", day=AUG_1))
        await expenses.add(make_expense("2", day=AUG_2))
        await expenses.add(make_expense("3", day=AUG_2))
        await expenses.add(make_expense("4", day=AUG_3))

        removed = await expenses.clear_for_date(AUG_2)

        assert removed == 2
        assert await expenses.by_date(AUG_2) == []
        assert len(await expenses.by_date(AUG_1)) == 1
        assert len(await expenses.by_date(AUG_3)) == 1

    @pytest.mark.asyncio
    async def test_clear_for_date_range(self, stores):
        expenses, _ = stores
        for day in (AUG_1, AUG_2, AUG_3):
            await expenses.add(make_expense("1", day=day))

        assert await expenses.clear_for_date_range(AUG_1, AUG_2) == 2
        assert await expenses.count() == 1

    @pytest.mark.asyncio
    async def test_clear_all(self, stores):
        expenses, _ = stores
        await expenses.add(make_expense("1"))
        await expenses.add(make_expense("2"))

        assert await expenses.clear_all() == 2
        assert await expenses.count() == 0
        assert await expenses.clear_all() == 0

    @pytest.mark.asyncio
    async def test_total_for_date_range(self, stores):
        expenses, _ = stores
        assert await expenses.total_for_date_range(AUG_1, AUG_3) == Decimal("0")

        await expenses.add(make_expense("25.50", day=AUG_1))
        await expenses.add(make_expense("150.00", day=AUG_3))
        await expenses.add(make_expense("99", day=date(2024, 8, 4)))

        assert await expenses.total_for_date_range(AUG_1, AUG_3) == Decimal("175.50")

    @pytest.mark.asyncio
    async def test_category_totals_and_distinct_labels(self, stores):
        expenses, _ = stores
        await expenses.add(make_expense("5", "Tea"))
        await expenses.add(make_expense("10", "Coffee"))
        await expenses.add(make_expense("7", "Coffee"))

        assert await expenses.distinct_categories() == ["Coffee", "Tea"]
        assert await expenses.category_totals() == {
            "Coffee": Decimal("17.00"),
            "Tea": Decimal("5.00"),
        }

    @pytest.mark.asyncio
    async def test_all_is_newest_first(self, stores):
        expenses, _ = stores
        await expenses.add(make_expense("1", day=AUG_1))
        await expenses.add(make_expense("3", day=AUG_3))
        await expenses.add(make_expense("2", day=AUG_2))

        assert [e.date for e in await expenses.all()] == [AUG_3, AUG_2, AUG_1]


class TestCategoryStorage:
    """Tests for category storage and its uniqueness rules."""

    @pytest.mark.asyncio
    async def test_insert_and_lookup_any_case(self, stores):
        _, categories = stores
        created = await categories.insert(Category(name="Pets", icon="🐶"))

        found = await categories.get_by_name("pETS")
        assert found is not None
        assert found.id == created.id
        assert found.icon == "🐶"
        assert await categories.get(created.id) == found

    @pytest.mark.asyncio
    async def test_insert_duplicate_any_case_raises(self, stores):
        _, categories = stores
        await categories.insert(Category(name="Pets"))
        with pytest.raises(DuplicateError):
            await categories.insert(Category(name="PETS"))

    @pytest.mark.asyncio
    async def test_insert_if_absent(self, stores):
        _, categories = stores
        assert await categories.insert_if_absent(Category(name="Pets")) is True
        assert await categories.insert_if_absent(Category(name="pets")) is False
        assert len(await categories.list_all()) == 1

    @pytest.mark.asyncio
    async def test_search_and_list(self, stores):
        _, categories = stores
        for name in ("Groceries", "Gifts", "Rent"):
            await categories.insert(Category(name=name))
        await categories.insert(Category(name="Other", is_default=True))

        assert [c.name for c in await categories.search("g")] == ["Gifts", "Groceries"]
        assert [c.name for c in await categories.search("100%")] == []
        assert [c.name for c in await categories.list_all()] == ["Gifts", "Groceries", "Other", "Rent"]
        assert [c.name for c in await categories.list_all(defaults_only=True)] == ["Other"]

    @pytest.mark.asyncio
    async def test_update(self, stores):
        _, categories = stores
        pets = await categories.insert(Category(name="Pets"))
        await categories.insert(Category(name="Rent"))

        updated = await categories.update(pets.id, name="Animals", color="#123456")
        assert updated.name == "Animals"
        assert updated.color == "#123456"
        assert await categories.get_by_name("Pets") is None

        with pytest.raises(DuplicateError):
            await categories.update(pets.id, name="rent")
        assert await categories.update(9999, name="Ghost") is None

    @pytest.mark.asyncio
    async def test_usage_stats_includes_unused(self, stores):
        expenses, categories = stores
        food = await categories.insert(Category(name="Food"))
        await categories.insert(Category(name="Rent"))
        await expenses.add(make_expense("25.50", "food", category_id=food.id))
        await expenses.add(make_expense("150.00", "Food", category_id=food.id))

        stats = await categories.usage_stats()

        assert list(stats) == ["Food", "Rent"]
        assert stats["Food"].count == 2
        assert stats["Food"].total == Decimal("175.50")
        assert stats["Rent"].count == 0
        assert stats["Rent"].total == Decimal("0")

    @pytest.mark.asyncio
    async def test_delete_guard(self, stores):
        expenses, categories = stores
        default = await categories.insert(Category(name="Other", is_default=True))
        used = await categories.insert(Category(name="Food"))
        unused = await categories.insert(Category(name="Pets"))
        await expenses.add(make_expense("5", "Food", category_id=used.id))

        assert await categories.delete_if_unused(default.id) is False
        assert await categories.delete_if_unused(used.id) is False
        assert await categories.delete_if_unused(unused.id) is True
        assert await categories.delete_if_unused(unused.id) is False
        assert await categories.get_by_name("Pets") is None
        assert await categories.get_by_name("Food") is not None
