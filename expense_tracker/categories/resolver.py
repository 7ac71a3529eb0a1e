"""
Category Resolver

Maps the free-text label a user typed to a canonical Category.

DESIGN DECISION: Find-or-create never checks and then inserts. It asks
storage to insert while ignoring a name conflict, then re-reads by name.
Two messages racing on the same new label therefore end up pointing at
the same row.

Default categories are seeded once at startup and can never be deleted.
Other categories can be deleted only while no expense references them.
"""

from typing import Optional
from uuid import UUID

import structlog

from expense_tracker.audit import AuditLogger
from expense_tracker.models.expense import (
    DEFAULT_CATEGORIES,
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_CATEGORY_ICON,
    Category,
    CategoryStats,
)
from expense_tracker.services.storage import CategoryStorageInterface, StorageError

logger = structlog.get_logger(__name__)


class CategoryResolver:
    """
    Category lookups and lifecycle on top of a category store.

    Constructed once at startup and passed to whatever needs it.
    """

    def __init__(
        self,
        storage: CategoryStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger

    @staticmethod
    def _clean_name(name: str) -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValueError("Category name cannot be empty")
        return cleaned

    async def find_by_name(self, name: str) -> Optional[Category]:
        """Case-insensitive exact match, None if absent."""
        if not name or not name.strip():
            return None
        return await self._storage.get_by_name(name)

    async def get(self, category_id: int) -> Optional[Category]:
        return await self._storage.get(category_id)

    async def create(
        self,
        name: str,
        icon: Optional[str] = None,
        color: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Category:
        """
        Create a non-default category.

        Raises:
            ValueError: If the name is empty
            DuplicateError: If the name exists in any case
        """
        category = Category(
            name=self._clean_name(name),
            icon=icon or DEFAULT_CATEGORY_ICON,
            color=color or DEFAULT_CATEGORY_COLOR,
        )
        created = await self._storage.insert(category)

        if self._audit_logger:
            await self._audit_logger.log_category_created(
                category_id=created.id,
                name=created.name,
                correlation_id=correlation_id,
            )
        return created

    async def find_or_create(
        self,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> Category:
        """
        Return the category for name, creating it on first use.

        Idempotent: repeated calls with the same name in any case
        return the same category.
        """
        cleaned = self._clean_name(name)

        existing = await self._storage.get_by_name(cleaned)
        if existing is not None:
            return existing

        inserted = await self._storage.insert_if_absent(Category(name=cleaned))
        category = await self._storage.get_by_name(cleaned)
        if category is None:
            # Inserted or lost the race, either way the row must exist now
            raise StorageError(f"Category vanished after insert: {cleaned}")

        if inserted:
            logger.info("category_created", category_id=category.id, name=category.name)
            if self._audit_logger:
                await self._audit_logger.log_category_created(
                    category_id=category.id,
                    name=category.name,
                    correlation_id=correlation_id,
                )
        return category

    async def update(
        self,
        category_id: int,
        name: Optional[str] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Category]:
        """
        Edit name, icon or color. Other fields are not editable.

        Returns None if the category doesn't exist.
        """
        if name is not None:
            name = self._clean_name(name)
        changes = {
            field: value
            for field, value in (("name", name), ("icon", icon), ("color", color))
            if value is not None
        }
        current = await self._storage.get(category_id)
        if current is None or not changes:
            return current

        # Raises ValidationError (a ValueError) for a bad icon or color
        Category.model_validate({**current.model_dump(), **changes})

        updated = await self._storage.update(category_id, name=name, icon=icon, color=color)
        if updated is not None and self._audit_logger:
            await self._audit_logger.log_category_updated(
                category_id=category_id,
                changes=changes,
                correlation_id=correlation_id,
            )
        return updated

    async def search(self, term: str) -> list[Category]:
        """Case-insensitive substring match, ordered by name."""
        return await self._storage.search(term)

    async def list_all(self) -> list[Category]:
        return await self._storage.list_all()

    async def list_defaults(self) -> list[Category]:
        return await self._storage.list_all(defaults_only=True)

    async def usage_stats(self) -> dict[str, CategoryStats]:
        """
        Expense count and total per category name.

        Every category appears, unused ones with zero count and total.
        """
        return await self._storage.usage_stats()

    async def delete(
        self,
        category_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Delete a category if allowed.

        Returns False (never raises) for a missing category, a default
        category, or one that any expense still references.
        """
        deleted = await self._storage.delete_if_unused(category_id)
        if self._audit_logger:
            await self._audit_logger.log_category_deleted(
                category_id=category_id,
                deleted=deleted,
                correlation_id=correlation_id,
            )
        return deleted

    async def ensure_defaults(self) -> int:
        """
        Seed the default categories that are missing.

        Returns the number of categories inserted.
        """
        inserted = 0
        for default in DEFAULT_CATEGORIES:
            if await self._storage.insert_if_absent(default):
                inserted += 1
        if inserted:
            logger.info("default_categories_seeded", inserted=inserted)
        return inserted
