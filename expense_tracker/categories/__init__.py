"""Category resolution package."""

from expense_tracker.categories.resolver import CategoryResolver

__all__ = ["CategoryResolver"]
