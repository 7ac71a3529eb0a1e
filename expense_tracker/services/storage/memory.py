"""
In-Memory Storage Implementation

Used by tests and when the bot runs without a database. Data lives
only as long as the process.

The category store shares the expense list of its expense store so
usage statistics and the in-use delete guard see the same records.
"""

import asyncio
from datetime import date, datetime
from decimal import Decimal
from itertools import count
from typing import Optional

from expense_tracker.models.expense import Category, CategoryStats, Expense
from expense_tracker.services.storage.interface import (
    CategoryStorageInterface,
    DuplicateError,
    ExpenseStorageInterface,
)


def _newest_first(expenses: list[Expense]) -> list[Expense]:
    return sorted(expenses, key=lambda e: (e.date, e.id or 0), reverse=True)


def _oldest_first(expenses: list[Expense]) -> list[Expense]:
    return sorted(expenses, key=lambda e: (e.date, e.id or 0))


class InMemoryExpenseStorage(ExpenseStorageInterface):
    """List-backed expense storage."""

    def __init__(self):
        self._expenses: list[Expense] = []
        self._ids = count(1)

    async def add(self, expense: Expense) -> Expense:
        stored = expense.model_copy(
            update={"id": next(self._ids), "created_at": datetime.utcnow()}
        )
        self._expenses.append(stored)
        return stored

    async def by_date(self, day: date) -> list[Expense]:
        return _oldest_first([e for e in self._expenses if e.date == day])

    async def by_date_range(
        self,
        start: date,
        end: date,
        user_id: Optional[int] = None,
    ) -> list[Expense]:
        return _oldest_first([
            e for e in self._expenses
            if start <= e.date <= end
            and (user_id is None or e.user_id == user_id)
        ])

    async def by_category(self, name: str) -> list[Expense]:
        wanted = name.strip().lower()
        return _newest_first([
            e for e in self._expenses if e.category_label.lower() == wanted
        ])

    async def by_chat(self, chat_id: int) -> list[Expense]:
        return _newest_first([e for e in self._expenses if e.chat_id == chat_id])

    async def by_topic(self, topic_id: int) -> list[Expense]:
        return _newest_first([e for e in self._expenses if e.topic_id == topic_id])

    async def all(self) -> list[Expense]:
        return _newest_first(list(self._expenses))

    async def clear_all(self) -> int:
        removed = len(self._expenses)
        self._expenses = []
        return removed

    async def clear_for_date(self, day: date) -> int:
        return await self.clear_for_date_range(day, day)

    async def clear_for_date_range(self, start: date, end: date) -> int:
        before = len(self._expenses)
        self._expenses = [e for e in self._expenses if not (start <= e.date <= end)]
        return before - len(self._expenses)

    async def total_for_date_range(self, start: date, end: date) -> Decimal:
        return sum(
            (e.amount for e in self._expenses if start <= e.date <= end),
            Decimal("0"),
        )

    async def count(self) -> int:
        return len(self._expenses)

    async def distinct_categories(self) -> list[str]:
        return sorted({e.category_label for e in self._expenses})

    async def category_totals(self) -> dict[str, Decimal]:
        totals: dict[str, Decimal] = {}
        for expense in self._expenses:
            totals[expense.category_label] = (
                totals.get(expense.category_label, Decimal("0")) + expense.amount
            )
        return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))

    def references(self, category_id: int) -> int:
        """Number of stored expenses pointing at a category id."""
        return sum(1 for e in self._expenses if e.category_id == category_id)

    def snapshot(self) -> list[Expense]:
        return list(self._expenses)


class InMemoryCategoryStorage(CategoryStorageInterface):
    """
    Dict-backed category storage keyed by lowercase name.

    The lock stands in for the database's unique index.
    """

    def __init__(self, expenses: InMemoryExpenseStorage):
        self._expenses = expenses
        self._by_key: dict[str, Category] = {}
        self._ids = count(1)
        self._lock = asyncio.Lock()

    @staticmethod
    def _key(name: str) -> str:
        return name.strip().lower()

    async def get(self, category_id: int) -> Optional[Category]:
        for category in self._by_key.values():
            if category.id == category_id:
                return category
        return None

    async def get_by_name(self, name: str) -> Optional[Category]:
        return self._by_key.get(self._key(name))

    def _store(self, category: Category) -> Category:
        stored = category.model_copy(
            update={"id": next(self._ids), "created_at": datetime.utcnow()}
        )
        self._by_key[self._key(stored.name)] = stored
        return stored

    async def insert(self, category: Category) -> Category:
        async with self._lock:
            if self._key(category.name) in self._by_key:
                raise DuplicateError(f"Category already exists: {category.name}")
            return self._store(category)

    async def insert_if_absent(self, category: Category) -> bool:
        async with self._lock:
            if self._key(category.name) in self._by_key:
                return False
            self._store(category)
            return True

    async def update(
        self,
        category_id: int,
        name: Optional[str] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Optional[Category]:
        async with self._lock:
            current = await self.get(category_id)
            if current is None:
                return None
            changes = {
                field: value
                for field, value in (("name", name), ("icon", icon), ("color", color))
                if value is not None
            }
            if "name" in changes:
                clash = self._by_key.get(self._key(changes["name"]))
                if clash is not None and clash.id != category_id:
                    raise DuplicateError(f"Category already exists: {changes['name']}")
            updated = Category.model_validate({**current.model_dump(), **changes})
            del self._by_key[self._key(current.name)]
            self._by_key[self._key(updated.name)] = updated
            return updated

    async def search(self, term: str) -> list[Category]:
        needle = term.strip().lower()
        return sorted(
            (c for c in self._by_key.values() if needle in c.name.lower()),
            key=lambda c: c.name,
        )

    async def list_all(self, defaults_only: bool = False) -> list[Category]:
        return sorted(
            (c for c in self._by_key.values() if c.is_default or not defaults_only),
            key=lambda c: c.name,
        )

    async def usage_stats(self) -> dict[str, CategoryStats]:
        stats = {c.name: CategoryStats() for c in self._by_key.values()}
        names = {c.id: c.name for c in self._by_key.values()}
        for expense in self._expenses.snapshot():
            name = names.get(expense.category_id)
            if name is None:
                continue
            entry = stats[name]
            entry.count += 1
            entry.total += expense.amount
        return dict(sorted(stats.items(), key=lambda item: item[1].total, reverse=True))

    async def delete_if_unused(self, category_id: int) -> bool:
        async with self._lock:
            category = await self.get(category_id)
            if category is None or category.is_default:
                return False
            if self._expenses.references(category_id) > 0:
                return False
            del self._by_key[self._key(category.name)]
            return True
