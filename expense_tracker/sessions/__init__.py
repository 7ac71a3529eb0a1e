"""Chat session state package."""

from expense_tracker.sessions.confirmations import (
    ConfirmationTracker,
    PendingAction,
    PendingConfirmation,
)

__all__ = ["ConfirmationTracker", "PendingAction", "PendingConfirmation"]
