"""
Tests for the AI assistant.

Gemini is replaced by a small fake; no network calls are made.
"""

from datetime import date
from types import SimpleNamespace

import pytest
from tenacity import wait_none

from expense_tracker.agents import FALLBACK_MESSAGE, ExpenseAssistant, sanitize_markdown
from expense_tracker.services.storage import StorageError

from conftest import TODAY, make_expense


class FakeModel:
    """Stands in for genai.GenerativeModel."""

    def __init__(self, replies):
        self._replies = list(replies)
        self.prompts = []

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(text=reply)


class BrokenStore:
    async def by_date_range(self, start, end, user_id=None):
        raise StorageError("database is down")


def make_assistant(store, model):
    return ExpenseAssistant(store, model=model, wait=wait_none(), today=lambda: TODAY)


class TestContext:
    """Tests for the 30-day expense context."""

    @pytest.mark.asyncio
    async def test_no_data(self, expense_store):
        assistant = make_assistant(expense_store, FakeModel([]))
        assert await assistant.build_context(user_id=1) == "The user has no recent expense data."

    @pytest.mark.asyncio
    async def test_context_contents(self, expense_store):
        await expense_store.add(make_expense("60", "Groceries", day=date(2024, 8, 1), user_id=1))
        await expense_store.add(make_expense("30", "Coffee", day=TODAY, user_id=1, description="beans"))
        await expense_store.add(make_expense("500", "Rent", day=TODAY, user_id=2))
        await expense_store.add(make_expense("70", "Old", day=date(2024, 6, 1), user_id=1))

        context = await make_assistant(expense_store, FakeModel([])).build_context(user_id=1)

        assert "Total spent: $90.00" in context
        assert "Daily average: $3.00" in context
        assert "Number of transactions: 2" in context
        assert "1. Groceries: $60.00 (66.7%)" in context
        assert "2. Coffee: $30.00 (33.3%)" in context
        assert "- $30.00 on Coffee (beans) - 2024-08-15" in context
        assert "Rent" not in context
        assert "Old" not in context

    @pytest.mark.asyncio
    async def test_storage_failure_degrades(self):
        context = await make_assistant(BrokenStore(), FakeModel([])).build_context(user_id=1)
        assert context == "Unable to retrieve user's expense data."


class TestRespond:
    """Tests for replies, retries and the fallback."""

    @pytest.mark.asyncio
    async def test_reply_is_sanitized(self, expense_store):
        model = FakeModel(["# Tips\nSpend less on [coffee](http://x.y)."])
        reply = await make_assistant(expense_store, model).respond("help me save", user_id=1)

        assert reply == "Tips\nSpend less on coffee."
        assert 'User\'s Message: "help me save"' in model.prompts[0]

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, expense_store):
        model = FakeModel([RuntimeError("503"), RuntimeError("503"), "All good"])
        reply = await make_assistant(expense_store, model).respond("hi", user_id=1)

        assert reply == "All good"
        assert len(model.prompts) == 3

    @pytest.mark.asyncio
    async def test_fallback_after_three_failures(self, expense_store):
        model = FakeModel([RuntimeError("down")] * 4)
        reply = await make_assistant(expense_store, model).respond("hi", user_id=1)

        assert reply == FALLBACK_MESSAGE
        assert len(model.prompts) == 3

    @pytest.mark.asyncio
    async def test_empty_reply_falls_back(self, expense_store):
        reply = await make_assistant(expense_store, FakeModel(["```code only```"])).respond("hi", user_id=1)
        assert reply == FALLBACK_MESSAGE

    @pytest.mark.asyncio
    async def test_connection(self, expense_store):
        assert await make_assistant(expense_store, FakeModel(["yes"])).test_connection() is True
        assert await make_assistant(expense_store, FakeModel([RuntimeError("x")])).test_connection() is False


class TestSanitizeMarkdown:
    def test_strips_code_blocks_and_links(self):
        assert sanitize_markdown("a\n```py\nx=1\n```\nb [site](http://e.com)") == "a\n\nb site"

    def test_collapses_blank_lines(self):
        assert sanitize_markdown("a\n\n\n\nb") == "a\n\nb"

    def test_residual_markup_is_removed(self):
        assert sanitize_markdown("**Bold** and _it_") == "Bold and it"

    def test_truncates(self):
        assert len(sanitize_markdown("x" * 5000)) == 4000
