"""Services package."""

from expense_tracker.services.storage import (
    CategoryStorageInterface,
    ConnectionError,
    DuplicateError,
    ExpenseStorageInterface,
    InMemoryCategoryStorage,
    InMemoryExpenseStorage,
    NotFoundError,
    SqlCategoryStorage,
    SqlExpenseStorage,
    StorageError,
)

__all__ = [
    "CategoryStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "ExpenseStorageInterface",
    "InMemoryCategoryStorage",
    "InMemoryExpenseStorage",
    "NotFoundError",
    "SqlCategoryStorage",
    "SqlExpenseStorage",
    "StorageError",
]
