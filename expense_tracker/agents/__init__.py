"""AI Agents package."""

from expense_tracker.agents.assistant import FALLBACK_MESSAGE, ExpenseAssistant, sanitize_markdown

__all__ = ["FALLBACK_MESSAGE", "ExpenseAssistant", "sanitize_markdown"]
