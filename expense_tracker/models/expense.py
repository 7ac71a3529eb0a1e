"""
Core Data Models for Expense Tracker

These models define the schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Keep money as Decimal end to end
3. Be plain data the presentation layer can render
4. Carry the opaque chat identifiers without interpreting them

DESIGN DECISION: A draft either has all of amount, category and date
or it does not exist. The parser never hands out half-filled drafts.
"""

import datetime as dt
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


CENT = Decimal("0.01")

DEFAULT_CATEGORY_ICON = "📦"
DEFAULT_CATEGORY_COLOR = "#95A5A6"


def quantize_amount(value: Decimal) -> Decimal:
    """Round an amount to whole cents."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


# =============================================================================
# EXPENSES
# =============================================================================

class ExpenseDraft(BaseModel):
    """
    A parsed-but-not-yet-persisted expense.

    Produced by the parser, consumed by the expense flow.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount spent"
    )
    category_label: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Category label as typed by the user"
    )
    description: str = Field(
        default="",
        description="Free-text note (may be empty)"
    )
    date: dt.date = Field(
        ...,
        description="Calendar day of the expense"
    )

    @field_validator('amount')
    @classmethod
    def round_to_cents(cls, v: Decimal) -> Decimal:
        v = quantize_amount(v)
        if v <= 0:
            raise ValueError("Amount must be greater than zero")
        return v


class Expense(ExpenseDraft):
    """
    A stored expense.

    The user/chat/message/topic identifiers come from the chat transport
    and are never interpreted here. Records are immutable once stored.
    """

    id: Optional[int] = Field(
        default=None,
        description="Storage-assigned identifier"
    )
    category_id: Optional[int] = Field(
        default=None,
        description="Resolved category (None only before resolution)"
    )
    user_id: int
    chat_id: int
    message_id: int
    topic_id: Optional[int] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_draft(
        cls,
        draft: ExpenseDraft,
        user_id: int,
        chat_id: int,
        message_id: int,
        topic_id: Optional[int] = None,
        category_id: Optional[int] = None,
    ) -> "Expense":
        """Attach transport identifiers (and optionally a category) to a draft."""
        return cls(
            amount=draft.amount,
            category_label=draft.category_label,
            description=draft.description,
            date=draft.date,
            user_id=user_id,
            chat_id=chat_id,
            message_id=message_id,
            topic_id=topic_id,
            category_id=category_id,
        )


# =============================================================================
# CATEGORIES
# =============================================================================

class Category(BaseModel):
    """A canonical spending category."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[int] = None
    name: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Unique (case-insensitive) category name"
    )
    icon: str = Field(
        default=DEFAULT_CATEGORY_ICON,
        max_length=10,
        description="Display glyph"
    )
    color: str = Field(
        default=DEFAULT_CATEGORY_COLOR,
        pattern=r"^#[0-9A-Fa-f]{6}$",
        description="Display color as #RRGGBB"
    )
    is_default: bool = False
    created_at: Optional[datetime] = None


class CategoryStats(BaseModel):
    """Usage of one category across all stored expenses."""

    count: int = Field(default=0, ge=0)
    total: Decimal = Field(default=Decimal("0"))


# Seed set present in every deployment. These can never be deleted.
DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category(name="Food & Dining", icon="🍽️", color="#FF6B6B", is_default=True),
    Category(name="Transportation", icon="🚗", color="#4ECDC4", is_default=True),
    Category(name="Shopping", icon="🛍️", color="#45B7D1", is_default=True),
    Category(name="Entertainment", icon="🎬", color="#96CEB4", is_default=True),
    Category(name="Healthcare", icon="🏥", color="#FFEAA7", is_default=True),
    Category(name="Utilities", icon="⚡", color="#DDA0DD", is_default=True),
    Category(name="Housing", icon="🏠", color="#98D8C8", is_default=True),
    Category(name="Education", icon="📚", color="#F7DC6F", is_default=True),
    Category(name="Travel", icon="✈️", color="#BB8FCE", is_default=True),
    Category(name="Personal Care", icon="💄", color="#F8C471", is_default=True),
    Category(name="Gifts", icon="🎁", color="#E74C3C", is_default=True),
    Category(name="Insurance", icon="🛡️", color="#3498DB", is_default=True),
    Category(name="Investments", icon="📈", color="#2ECC71", is_default=True),
    Category(name="Subscriptions", icon="📱", color="#9B59B6", is_default=True),
    Category(name="Other", icon=DEFAULT_CATEGORY_ICON, color=DEFAULT_CATEGORY_COLOR, is_default=True),
)


# =============================================================================
# COMPUTED REPORTS (never stored)
# =============================================================================

def _sorted_breakdown(breakdown: dict[str, Decimal]) -> list[tuple[str, Decimal]]:
    return sorted(breakdown.items(), key=lambda item: item[1], reverse=True)


class DailySummary(BaseModel):
    """
    Spending for one calendar day.

    The breakdown keeps first-seen order; use sorted_breakdown()
    for the usual highest-first presentation.
    """

    date: date
    total_amount: Decimal = Decimal("0")
    expenses: list[Expense] = Field(default_factory=list)
    category_breakdown: dict[str, Decimal] = Field(default_factory=dict)

    def sorted_breakdown(self) -> list[tuple[str, Decimal]]:
        return _sorted_breakdown(self.category_breakdown)


class RangeSummary(BaseModel):
    """Spending between two dates (inclusive)."""

    start: date
    end: date
    total_amount: Decimal = Decimal("0")
    expenses: list[Expense] = Field(default_factory=list)
    category_breakdown: dict[str, Decimal] = Field(default_factory=dict)

    def sorted_breakdown(self) -> list[tuple[str, Decimal]]:
        return _sorted_breakdown(self.category_breakdown)


class OverallStats(BaseModel):
    """Totals across every stored expense."""

    total_amount: Decimal = Decimal("0")
    category_count: int = Field(default=0, ge=0)
    this_month_total: Decimal = Decimal("0")
    entry_count: int = Field(default=0, ge=0)


class ParseReport(BaseModel):
    """
    Outcome of multi-record parsing.

    drafts holds every block that parsed, in message order.
    failed_blocks holds the raw text of blocks that did not.
    """

    drafts: list[ExpenseDraft] = Field(default_factory=list)
    failed_blocks: list[str] = Field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failed_blocks)
