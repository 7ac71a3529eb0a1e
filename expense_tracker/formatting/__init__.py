"""Chat message formatting package."""

from expense_tracker.formatting.messages import MessageFormatter

__all__ = ["MessageFormatter"]
