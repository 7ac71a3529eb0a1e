"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
SQLAlchemy (PostgreSQL or SQLite) is the persistent backend; the in-memory
implementation backs tests and database-less runs.
"""

from expense_tracker.services.storage.interface import (
    CategoryStorageInterface,
    ConnectionError,
    DuplicateError,
    ExpenseStorageInterface,
    NotFoundError,
    StorageError,
)
from expense_tracker.services.storage.database import (
    create_engine_from_settings,
    create_session_factory,
    init_db,
)
from expense_tracker.services.storage.memory import (
    InMemoryCategoryStorage,
    InMemoryExpenseStorage,
)
from expense_tracker.services.storage.sql import SqlCategoryStorage, SqlExpenseStorage

__all__ = [
    # Interfaces
    "CategoryStorageInterface",
    "ExpenseStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Database helpers
    "create_engine_from_settings",
    "create_session_factory",
    "init_db",
    # In-memory implementation
    "InMemoryCategoryStorage",
    "InMemoryExpenseStorage",
    # SQL implementation
    "SqlCategoryStorage",
    "SqlExpenseStorage",
]
