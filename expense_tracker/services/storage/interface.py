"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run against PostgreSQL in production and SQLite locally
2. Use in-memory storage for testing
3. Keep parsing and aggregation decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Just the operations expense tracking needs.

All date filters apply to the expense's own calendar date, never to
when the row was inserted.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Optional

from expense_tracker.models.expense import Category, CategoryStats, Expense


class ExpenseStorageInterface(ABC):
    """
    Abstract interface for expense storage operations.

    Any storage implementation (PostgreSQL, SQLite, in-memory)
    must implement these methods.
    """

    @abstractmethod
    async def add(self, expense: Expense) -> Expense:
        """
        Store an expense.

        Args:
            expense: The expense to store (category already resolved)

        Returns:
            The stored expense with its assigned id

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def by_date(self, day: date) -> list[Expense]:
        """Expenses on one calendar day, oldest first."""
        pass

    @abstractmethod
    async def by_date_range(
        self,
        start: date,
        end: date,
        user_id: Optional[int] = None,
    ) -> list[Expense]:
        """
        Expenses with start <= date <= end, oldest first.

        Args:
            start: First day (inclusive)
            end: Last day (inclusive)
            user_id: Only this user's expenses if given
        """
        pass

    @abstractmethod
    async def by_category(self, name: str) -> list[Expense]:
        """
        Expenses whose stored category label matches name (any case).

        Matches the label saved with the expense, not the category id,
        so a later rename of the category does not change history.
        Newest first.
        """
        pass

    @abstractmethod
    async def by_chat(self, chat_id: int) -> list[Expense]:
        """Expenses sent from one chat, newest first."""
        pass

    @abstractmethod
    async def by_topic(self, topic_id: int) -> list[Expense]:
        """Expenses sent in one forum topic, newest first."""
        pass

    @abstractmethod
    async def all(self) -> list[Expense]:
        """Every stored expense, newest first."""
        pass

    @abstractmethod
    async def clear_all(self) -> int:
        """Delete every expense. Returns the number removed."""
        pass

    @abstractmethod
    async def clear_for_date(self, day: date) -> int:
        """Delete expenses on one day. Returns the number removed."""
        pass

    @abstractmethod
    async def clear_for_date_range(self, start: date, end: date) -> int:
        """Delete expenses with start <= date <= end. Returns the number removed."""
        pass

    @abstractmethod
    async def total_for_date_range(self, start: date, end: date) -> Decimal:
        """Sum of amounts with start <= date <= end (0 if none)."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of stored expenses."""
        pass

    @abstractmethod
    async def distinct_categories(self) -> list[str]:
        """Distinct stored category labels, alphabetical."""
        pass

    @abstractmethod
    async def category_totals(self) -> dict[str, Decimal]:
        """Summed amount per stored category label, highest first."""
        pass


class CategoryStorageInterface(ABC):
    """
    Abstract interface for category storage.

    Names are unique regardless of case. Implementations must enforce
    that at the storage level so concurrent find-or-create calls for
    the same name cannot produce two rows.
    """

    @abstractmethod
    async def get(self, category_id: int) -> Optional[Category]:
        pass

    @abstractmethod
    async def get_by_name(self, name: str) -> Optional[Category]:
        """Case-insensitive exact match."""
        pass

    @abstractmethod
    async def insert(self, category: Category) -> Category:
        """
        Insert a new category.

        Raises:
            DuplicateError: If the name already exists (any case)
        """
        pass

    @abstractmethod
    async def insert_if_absent(self, category: Category) -> bool:
        """
        Insert unless the name already exists; never raises on conflict.

        Returns:
            True if a row was inserted
        """
        pass

    @abstractmethod
    async def update(
        self,
        category_id: int,
        name: Optional[str] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Optional[Category]:
        """
        Edit name/icon/color. Returns None if the category doesn't exist.

        Raises:
            DuplicateError: If the new name collides with another category
        """
        pass

    @abstractmethod
    async def search(self, term: str) -> list[Category]:
        """Case-insensitive substring match on name, ordered by name."""
        pass

    @abstractmethod
    async def list_all(self, defaults_only: bool = False) -> list[Category]:
        """All categories ordered by name."""
        pass

    @abstractmethod
    async def usage_stats(self) -> dict[str, CategoryStats]:
        """
        Expense count and total per category, highest total first.

        Categories with no expenses are included with zeros.
        """
        pass

    @abstractmethod
    async def delete_if_unused(self, category_id: int) -> bool:
        """
        Delete a non-default category that no expense references.

        Returns:
            False (without raising) if the category is missing,
            is a default category, or is still in use
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
