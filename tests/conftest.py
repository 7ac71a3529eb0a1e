"""Shared fixtures."""

from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

from expense_tracker.models.expense import Expense
from expense_tracker.services.storage import InMemoryCategoryStorage, InMemoryExpenseStorage

TODAY = date(2024, 8, 15)


def make_expense(
    amount: str,
    label: str = "Food",
    day: date = TODAY,
    user_id: int = 1,
    chat_id: int = 100,
    message_id: int = 1,
    topic_id: Optional[int] = None,
    category_id: Optional[int] = None,
    description: str = "",
) -> Expense:
    return Expense(
        amount=Decimal(amount),
        category_label=label,
        description=description,
        date=day,
        user_id=user_id,
        chat_id=chat_id,
        message_id=message_id,
        topic_id=topic_id,
        category_id=category_id,
    )


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def expense_store() -> InMemoryExpenseStorage:
    return InMemoryExpenseStorage()


@pytest.fixture
def category_store(expense_store) -> InMemoryCategoryStorage:
    return InMemoryCategoryStorage(expense_store)
