"""
Relational Storage Implementation

DESIGN DECISION: SQLAlchemy's asyncio extension is used so storage calls
are awaitable and one dispatcher can interleave many chat messages.
PostgreSQL (asyncpg) is the production target, SQLite (aiosqlite) the
local and test target.

TRADEOFFS:
- No internal retry: a failed statement surfaces as StorageError
- Clear operations are plain DELETEs, not isolated from concurrent inserts
- Category uniqueness is enforced by a unique index on lower(name);
  find-or-create inserts with ON CONFLICT DO NOTHING and re-reads
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

import structlog
from sqlalchemy import delete, func, insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from expense_tracker.models.expense import (
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_CATEGORY_ICON,
    Category,
    CategoryStats,
    Expense,
)
from expense_tracker.services.storage.database import create_session_factory
from expense_tracker.services.storage.interface import (
    CategoryStorageInterface,
    DuplicateError,
    ExpenseStorageInterface,
    StorageError,
)
from expense_tracker.services.storage.tables import CategoryRecord, ExpenseRecord

logger = structlog.get_logger(__name__)


def _to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


class SqlExpenseStorage(ExpenseStorageInterface):
    """
    SQL implementation of expense storage.

    One session per call; every write commits before returning.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self._engine = engine
        self._session_factory = session_factory or create_session_factory(engine)

    @staticmethod
    def _record_to_expense(record: ExpenseRecord) -> Expense:
        return Expense(
            id=record.id,
            amount=_to_decimal(record.amount),
            category_id=record.category_id,
            category_label=record.category_name,
            description=record.description or "",
            date=record.date,
            user_id=record.user_id,
            chat_id=record.chat_id,
            message_id=record.message_id,
            topic_id=record.topic_id,
            created_at=record.created_at,
        )

    async def _select(self, *criteria, newest_first: bool = False) -> list[Expense]:
        if newest_first:
            order = (ExpenseRecord.date.desc(), ExpenseRecord.id.desc())
        else:
            order = (ExpenseRecord.date.asc(), ExpenseRecord.id.asc())
        stmt = select(ExpenseRecord).where(*criteria).order_by(*order)
        try:
            async with self._session_factory() as session:
                records = await session.scalars(stmt)
                return [self._record_to_expense(record) for record in records]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to query expenses: {e}") from e

    async def _delete(self, *criteria) -> int:
        stmt = delete(ExpenseRecord).where(*criteria)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount or 0
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete expenses: {e}") from e

    async def add(self, expense: Expense) -> Expense:
        record = ExpenseRecord(
            amount=expense.amount,
            category_id=expense.category_id,
            category_name=expense.category_label,
            description=expense.description,
            date=expense.date,
            user_id=expense.user_id,
            message_id=expense.message_id,
            chat_id=expense.chat_id,
            topic_id=expense.topic_id,
        )
        try:
            async with self._session_factory() as session:
                session.add(record)
                await session.commit()
                await session.refresh(record)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save expense: {e}") from e

        logger.debug("expense_inserted", expense_id=record.id, chat_id=record.chat_id)
        return self._record_to_expense(record)

    async def by_date(self, day: date) -> list[Expense]:
        return await self._select(ExpenseRecord.date == day)

    async def by_date_range(
        self,
        start: date,
        end: date,
        user_id: Optional[int] = None,
    ) -> list[Expense]:
        criteria = [ExpenseRecord.date >= start, ExpenseRecord.date <= end]
        if user_id is not None:
            criteria.append(ExpenseRecord.user_id == user_id)
        return await self._select(*criteria)

    async def by_category(self, name: str) -> list[Expense]:
        return await self._select(
            func.lower(ExpenseRecord.category_name) == name.strip().lower(),
            newest_first=True,
        )

    async def by_chat(self, chat_id: int) -> list[Expense]:
        return await self._select(ExpenseRecord.chat_id == chat_id, newest_first=True)

    async def by_topic(self, topic_id: int) -> list[Expense]:
        return await self._select(ExpenseRecord.topic_id == topic_id, newest_first=True)

    async def all(self) -> list[Expense]:
        return await self._select(newest_first=True)

    async def clear_all(self) -> int:
        return await self._delete()

    async def clear_for_date(self, day: date) -> int:
        return await self._delete(ExpenseRecord.date == day)

    async def clear_for_date_range(self, start: date, end: date) -> int:
        return await self._delete(ExpenseRecord.date >= start, ExpenseRecord.date <= end)

    async def _scalar(self, stmt, action: str) -> Any:
        try:
            async with self._session_factory() as session:
                return await session.scalar(stmt)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to {action}: {e}") from e

    async def total_for_date_range(self, start: date, end: date) -> Decimal:
        stmt = (
            select(func.coalesce(func.sum(ExpenseRecord.amount), 0))
            .where(ExpenseRecord.date >= start, ExpenseRecord.date <= end)
        )
        return _to_decimal(await self._scalar(stmt, "sum expenses"))

    async def count(self) -> int:
        stmt = select(func.count()).select_from(ExpenseRecord)
        return int(await self._scalar(stmt, "count expenses") or 0)

    async def distinct_categories(self) -> list[str]:
        stmt = (
            select(ExpenseRecord.category_name)
            .distinct()
            .order_by(ExpenseRecord.category_name)
        )
        try:
            async with self._session_factory() as session:
                return list(await session.scalars(stmt))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list categories: {e}") from e

    async def category_totals(self) -> dict[str, Decimal]:
        total = func.sum(ExpenseRecord.amount)
        stmt = (
            select(ExpenseRecord.category_name, total)
            .group_by(ExpenseRecord.category_name)
            .order_by(total.desc())
        )
        try:
            async with self._session_factory() as session:
                rows = await session.execute(stmt)
                return {name: _to_decimal(amount) for name, amount in rows}
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to total categories: {e}") from e


class SqlCategoryStorage(CategoryStorageInterface):
    """SQL implementation of category storage."""

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self._engine = engine
        self._session_factory = session_factory or create_session_factory(engine)

    @staticmethod
    def _record_to_category(record: CategoryRecord) -> Category:
        return Category(
            id=record.id,
            name=record.name,
            icon=record.icon or DEFAULT_CATEGORY_ICON,
            color=record.color or DEFAULT_CATEGORY_COLOR,
            is_default=record.is_default,
            created_at=record.created_at,
        )

    def _insert_ignoring_conflicts(self, values: dict):
        """INSERT ... ON CONFLICT DO NOTHING for the engine's dialect."""
        dialect = self._engine.dialect.name
        if dialect == "postgresql":
            return postgresql.insert(CategoryRecord).values(**values).on_conflict_do_nothing()
        if dialect == "sqlite":
            return sqlite.insert(CategoryRecord).values(**values).on_conflict_do_nothing()
        return None

    async def get(self, category_id: int) -> Optional[Category]:
        try:
            async with self._session_factory() as session:
                record = await session.get(CategoryRecord, category_id)
                return self._record_to_category(record) if record else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get category: {e}") from e

    async def get_by_name(self, name: str) -> Optional[Category]:
        stmt = select(CategoryRecord).where(
            func.lower(CategoryRecord.name) == name.strip().lower()
        )
        try:
            async with self._session_factory() as session:
                record = await session.scalar(stmt)
                return self._record_to_category(record) if record else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get category: {e}") from e

    async def insert(self, category: Category) -> Category:
        record = CategoryRecord(
            name=category.name,
            icon=category.icon,
            color=category.color,
            is_default=category.is_default,
        )
        try:
            async with self._session_factory() as session:
                session.add(record)
                await session.commit()
                await session.refresh(record)
        except IntegrityError as e:
            raise DuplicateError(f"Category already exists: {category.name}") from e
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create category: {e}") from e
        return self._record_to_category(record)

    async def insert_if_absent(self, category: Category) -> bool:
        values = {
            "name": category.name,
            "icon": category.icon,
            "color": category.color,
            "is_default": category.is_default,
        }
        stmt = self._insert_ignoring_conflicts(values)
        if stmt is None:
            stmt = insert(CategoryRecord).values(**values)
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(stmt)
            return (result.rowcount or 0) > 0
        except IntegrityError:
            # Dialects without ON CONFLICT: the unique index rejected it
            return False
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create category: {e}") from e

    async def update(
        self,
        category_id: int,
        name: Optional[str] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Optional[Category]:
        try:
            async with self._session_factory() as session:
                record = await session.get(CategoryRecord, category_id)
                if record is None:
                    return None
                if name is not None:
                    record.name = name
                if icon is not None:
                    record.icon = icon
                if color is not None:
                    record.color = color
                try:
                    await session.commit()
                except IntegrityError as e:
                    await session.rollback()
                    raise DuplicateError(f"Category already exists: {name}") from e
                await session.refresh(record)
                return self._record_to_category(record)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update category: {e}") from e

    async def search(self, term: str) -> list[Category]:
        stmt = (
            select(CategoryRecord)
            .where(func.lower(CategoryRecord.name).contains(term.strip().lower(), autoescape=True))
            .order_by(CategoryRecord.name)
        )
        return await self._select_categories(stmt)

    async def list_all(self, defaults_only: bool = False) -> list[Category]:
        stmt = select(CategoryRecord).order_by(CategoryRecord.name)
        if defaults_only:
            stmt = stmt.where(CategoryRecord.is_default.is_(True))
        return await self._select_categories(stmt)

    async def _select_categories(self, stmt) -> list[Category]:
        try:
            async with self._session_factory() as session:
                records = await session.scalars(stmt)
                return [self._record_to_category(record) for record in records]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list categories: {e}") from e

    async def usage_stats(self) -> dict[str, CategoryStats]:
        expense_count = func.count(ExpenseRecord.id)
        total = func.coalesce(func.sum(ExpenseRecord.amount), 0)
        stmt = (
            select(CategoryRecord.name, expense_count, total)
            .outerjoin(ExpenseRecord, ExpenseRecord.category_id == CategoryRecord.id)
            .group_by(CategoryRecord.id, CategoryRecord.name)
            .order_by(total.desc(), CategoryRecord.name)
        )
        try:
            async with self._session_factory() as session:
                rows = await session.execute(stmt)
                return {
                    name: CategoryStats(count=int(count), total=_to_decimal(amount))
                    for name, count, amount in rows
                }
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to compute category usage: {e}") from e

    async def delete_if_unused(self, category_id: int) -> bool:
        try:
            async with self._session_factory() as session:
                record = await session.get(CategoryRecord, category_id)
                if record is None or record.is_default:
                    return False

                references = await session.scalar(
                    select(func.count())
                    .select_from(ExpenseRecord)
                    .where(ExpenseRecord.category_id == category_id)
                )
                if references:
                    return False

                try:
                    result = await session.execute(
                        delete(CategoryRecord).where(CategoryRecord.id == category_id)
                    )
                    await session.commit()
                except IntegrityError:
                    # An expense referenced it between the check and the delete
                    await session.rollback()
                    return False
                return (result.rowcount or 0) > 0
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete category: {e}") from e
