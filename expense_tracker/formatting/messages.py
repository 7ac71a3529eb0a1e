"""
Chat Message Formatting

Turns the plain data returned by the core (summaries, stats, stored
expenses, categories) into Markdown text for the chat client.

Nothing here touches storage. Every method is a pure function of its
arguments and the configured currency symbol.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from expense_tracker.models.expense import (
    Category,
    CategoryStats,
    DailySummary,
    Expense,
    OverallStats,
    RangeSummary,
)

CONFIRM_HINT = 'Reply with "yes" to confirm or "no" to cancel.'


def _long_date(day: date) -> str:
    return day.strftime("%A, %B %d, %Y")


def _short_date(day: date) -> str:
    return day.strftime("%b %d, %Y")


def _percentage(amount: Decimal, total: Decimal) -> str:
    if not total:
        return "0.0%"
    return f"{amount / total * 100:.1f}%"


class MessageFormatter:
    """Markdown renderer for bot replies."""

    def __init__(self, currency_symbol: str = "$"):
        self._currency = currency_symbol

    def money(self, amount: Decimal) -> str:
        return f"{self._currency}{amount:,.2f}"

    # -------------------------------------------------------------------------
    # Reports
    # -------------------------------------------------------------------------

    def _breakdown_lines(
        self,
        breakdown: list[tuple[str, Decimal]],
        total: Decimal,
    ) -> list[str]:
        return [
            f"• {label}: {self.money(amount)} ({_percentage(amount, total)})"
            for label, amount in breakdown
        ]

    def _expense_lines(self, expenses: list[Expense], with_date: bool = False) -> list[str]:
        lines = []
        for index, expense in enumerate(expenses, start=1):
            line = f"{index}. {self.money(expense.amount)} - {expense.category_label}"
            if expense.description:
                line += f" ({expense.description})"
            if with_date:
                line += f" on {_short_date(expense.date)}"
            lines.append(line)
        return lines

    def daily_summary(self, summary: DailySummary) -> str:
        """Daily report with the breakdown sorted highest first."""
        lines = [
            "📊 *Daily Expense Summary*",
            f"📅 *Date:* {_long_date(summary.date)}",
            f"💰 *Total:* {self.money(summary.total_amount)}",
            "",
        ]
        if not summary.expenses:
            lines.append("No expenses recorded for this day.")
            return "\n".join(lines)

        lines.append("📋 *Category Breakdown:*")
        lines.extend(self._breakdown_lines(summary.sorted_breakdown(), summary.total_amount))
        lines.append("")
        lines.append("📝 *All Expenses:*")
        lines.extend(self._expense_lines(summary.expenses))
        return "\n".join(lines)

    def range_summary(self, summary: RangeSummary) -> str:
        lines = [
            "📊 *Expense Summary*",
            f"📅 *From:* {_short_date(summary.start)} *to* {_short_date(summary.end)}",
            f"💰 *Total:* {self.money(summary.total_amount)}",
            f"📝 *Entries:* {len(summary.expenses)}",
            "",
        ]
        if not summary.expenses:
            lines.append("No expenses recorded in this period.")
            return "\n".join(lines)

        lines.append("📋 *Category Breakdown:*")
        lines.extend(self._breakdown_lines(summary.sorted_breakdown(), summary.total_amount))
        return "\n".join(lines)

    def overall_stats(self, stats: OverallStats) -> str:
        return "\n".join([
            "📈 *Overall Statistics*",
            "",
            f"💰 Total spent: {self.money(stats.total_amount)}",
            f"📅 This month: {self.money(stats.this_month_total)}",
            f"📝 Entries: {stats.entry_count}",
            f"📂 Categories used: {stats.category_count}",
        ])

    # -------------------------------------------------------------------------
    # Expense confirmations
    # -------------------------------------------------------------------------

    def expense_added(self, expense: Expense) -> str:
        lines = [
            "✅ *Expense Added Successfully!*",
            "",
            f"💰 Amount: {self.money(expense.amount)}",
            f"📂 Category: {expense.category_label}",
            f"📅 Date: {_short_date(expense.date)}",
        ]
        if expense.description:
            lines.append(f"📝 Note: {expense.description}")
        lines.extend(["", "Use /summary to see today's total."])
        return "\n".join(lines)

    def multiple_expenses_added(self, expenses: list[Expense], failed: int = 0) -> str:
        total = sum((e.amount for e in expenses), Decimal("0"))
        lines = [
            "✅ *Multiple Expenses Added Successfully!*",
            "",
            f"📊 Total Amount: {self.money(total)}",
            f"📝 Number of Expenses: {len(expenses)}",
            "",
            "📋 *Expenses Added:*",
        ]
        lines.extend(self._expense_lines(expenses, with_date=True))
        if failed:
            lines.append("")
            lines.append(f"⚠️ {failed} block(s) could not be read and were skipped.")
        lines.extend(["", "Use /summary to see today's total."])
        return "\n".join(lines)

    def parse_failed(self) -> str:
        return self.error(
            "I couldn't read that expense. Each expense needs an amount, "
            "a category and a date, for example:\n"
            "amount: 300\ncategory: groceries\ndate: 02 aug"
        )

    # -------------------------------------------------------------------------
    # Clearing
    # -------------------------------------------------------------------------

    @staticmethod
    def clear_prompt(start: Optional[date] = None, end: Optional[date] = None) -> str:
        if start and end:
            question = (
                "Are you sure you want to clear all expenses from "
                f"{_short_date(start)} to {_short_date(end)}?"
            )
        elif start:
            question = f"Are you sure you want to clear all expenses for {_short_date(start)}?"
        else:
            question = "Are you sure you want to clear ALL expenses?"
        return "\n".join([
            "⚠️ *Confirm Clear Action*",
            "",
            question,
            "",
            "This action cannot be undone!",
            "",
            CONFIRM_HINT,
        ])

    @staticmethod
    def clear_result(count: int, start: Optional[date] = None, end: Optional[date] = None) -> str:
        if start and end:
            return "\n".join([
                f"🗑️ *Cleared {count} expenses*",
                "",
                f"📅 Date range: {_short_date(start)} to {_short_date(end)}",
                "✅ All expenses in this range have been removed.",
            ])
        if start:
            return "\n".join([
                f"🗑️ *Cleared {count} expenses*",
                "",
                f"📅 Date: {_short_date(start)}",
                "✅ All expenses for this date have been removed.",
            ])
        return "\n".join([
            "🗑️ *Cleared all expenses*",
            "",
            f"📊 Total removed: {count} expenses",
            "✅ All stored expenses have been cleared.",
        ])

    @staticmethod
    def clear_cancelled() -> str:
        return "❎ Clear cancelled. Nothing was removed."

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    @staticmethod
    def category_list(categories: list[Category]) -> str:
        if not categories:
            return "📂 No categories yet."
        lines = ["📂 *Categories*", ""]
        for category in categories:
            marker = "" if category.is_default else " (custom)"
            lines.append(f"{category.icon} {category.name}{marker}")
        return "\n".join(lines)

    def usage_stats(self, stats: dict[str, CategoryStats]) -> str:
        used = {name: s for name, s in stats.items() if s.count}
        if not used:
            return "📂 No category has any expenses yet."
        lines = ["📂 *Spending by Category*", ""]
        for name, entry in used.items():
            lines.append(f"• {name}: {self.money(entry.total)} ({entry.count} entries)")
        return "\n".join(lines)

    # -------------------------------------------------------------------------
    # Static texts
    # -------------------------------------------------------------------------

    @staticmethod
    def settings(
        send_confirmations: bool,
        allowed_chat_ids: list[int],
        allowed_topic_ids: list[int],
    ) -> str:
        chats = ", ".join(str(i) for i in allowed_chat_ids) or "All chats"
        topics = ", ".join(str(i) for i in allowed_topic_ids) or "All topics"
        confirmations = "✅ Enabled" if send_confirmations else "❌ Disabled"
        return "\n".join([
            "⚙️ *Bot Settings*",
            "",
            f"📨 Confirmations: {confirmations}",
            f"💬 Allowed chats: {chats}",
            f"📋 Allowed topics: {topics}",
            "",
            "💡 Use /help for available commands.",
        ])

    @staticmethod
    def welcome() -> str:
        return "\n".join([
            "👋 *Welcome to Expense Tracker!*",
            "",
            "Send me your expenses and I'll keep track of them.",
            "",
            "Example:",
            "amount: 300",
            "category: groceries",
            "date: 02 aug",
            "",
            "Use /help to see everything I can do.",
        ])

    @staticmethod
    def help() -> str:
        return "\n".join([
            "🤖 *Expense Tracker Bot Help*",
            "",
            "*How to add expenses:*",
            "Send a message in this format:",
            "```",
            "amount: 300",
            "category: hair remover",
            "date: 02 aug",
            "description: optional note",
            "```",
            "Separate several expenses with a blank line to add them at once.",
            "",
            "*Available commands:*",
            "• /summary - Today's expense summary",
            "• /summary YYYY-MM-DD - Summary for a specific date",
            "• /range YYYY-MM-DD YYYY-MM-DD - Summary for a date range",
            "• /stats - Overall statistics",
            "• /categories - Categories and their usage",
            "• /clear - Clear all expenses",
            "• /clear YYYY-MM-DD - Clear expenses for a specific date",
            "• /clear YYYY-MM-DD YYYY-MM-DD - Clear expenses for a date range",
            "• /settings - Current bot settings",
            "• /ask <question> - Ask the AI assistant about your spending",
            "• /help - Show this help message",
            "",
            "*Notes:*",
            '• Date format: DD MMM (e.g., "02 aug", "15 dec")',
            "• The current year is assumed; dates in the future count as last year",
            "• Use /clear carefully - this action cannot be undone",
        ])

    @staticmethod
    def invalid_date(value: str) -> str:
        return MessageFormatter.error(
            f'"{value}" is not a valid date. Please use YYYY-MM-DD, e.g. 2024-08-02.'
        )

    @staticmethod
    def invalid_range(start: date, end: date) -> str:
        return MessageFormatter.error(
            f"The start date {start.isoformat()} is after the end date {end.isoformat()}."
        )

    @staticmethod
    def error(message: str) -> str:
        return f"❌ *Error*\n{message}\n\nUse /help for instructions."
