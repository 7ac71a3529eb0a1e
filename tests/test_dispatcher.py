"""
Integration tests for the chat dispatcher.

The full flow runs on in-memory storage; the AI assistant is faked.
"""

from datetime import date
from decimal import Decimal

import pytest

from expense_tracker.agents import FALLBACK_MESSAGE
from expense_tracker.config import BotSettings
from expense_tracker.orchestrator import ChatMessage, create_dispatcher
from expense_tracker.services.storage import InMemoryExpenseStorage, StorageError

from conftest import TODAY, make_expense

SINGLE = "amount: 25.50\ncategory: Coffee\ndate: 15 aug"
MULTIPLE = (
    "amount: 25.50\ncategory: Coffee\ndate: 15 aug\n\n"
    "amount: 150\ncategory: Groceries\ndate: 15 aug\n\n"
    "amount: nope\ncategory: Broken\ndate: 15 aug"
)


class FakeAssistant:
    def __init__(self):
        self.questions = []

    async def respond(self, message, user_id, correlation_id=None):
        self.questions.append((message, user_id))
        return f"advice for {user_id}"


class FailingExpenseStorage(InMemoryExpenseStorage):
    async def add(self, expense):
        raise StorageError("connection lost")


def bot_settings(**overrides) -> BotSettings:
    values = {
        "send_confirmations": True,
        "allowed_chat_ids": "",
        "allowed_topic_ids": "",
        "currency_symbol": "$",
    }
    values.update(overrides)
    return BotSettings(**values)


def message(text, user_id=1, chat_id=100, topic_id=None) -> ChatMessage:
    return ChatMessage(text=text, user_id=user_id, chat_id=chat_id, message_id=7, topic_id=topic_id)


@pytest.fixture
def assistant() -> FakeAssistant:
    return FakeAssistant()


@pytest.fixture
def dispatcher(expense_store, category_store, assistant):
    return create_dispatcher(
        expense_store,
        category_store,
        bot_settings(),
        assistant=assistant,
        today=lambda: TODAY,
    )


class TestRecordingExpenses:
    """Tests for plain expense messages."""

    @pytest.mark.asyncio
    async def test_single_expense(self, dispatcher, expense_store, category_store):
        replies = await dispatcher.handle(message(SINGLE, topic_id=3))

        assert len(replies) == 1
        assert "Expense Added Successfully" in replies[0]
        assert "$25.50" in replies[0]

        [stored] = await expense_store.all()
        coffee = await category_store.get_by_name("coffee")
        assert stored.category_id == coffee.id
        assert (stored.user_id, stored.chat_id, stored.message_id, stored.topic_id) == (1, 100, 7, 3)

    @pytest.mark.asyncio
    async def test_multiple_expenses_with_one_bad_block(self, dispatcher, expense_store):
        replies = await dispatcher.handle(message(MULTIPLE))

        assert "Multiple Expenses Added" in replies[0]
        assert "$175.50" in replies[0]
        assert "1 block(s) could not be read" in replies[0]
        assert await expense_store.count() == 2

    @pytest.mark.asyncio
    async def test_label_kept_as_typed_category_shared(self, dispatcher, expense_store, category_store):
        await dispatcher.handle(message("amount: 1\ncategory: coffee\ndate: 15 aug"))
        await dispatcher.handle(message("amount: 2\ncategory: COFFEE\ndate: 15 aug"))

        labels = sorted(e.category_label for e in await expense_store.all())
        assert labels == ["COFFEE", "coffee"]
        assert len({e.category_id for e in await expense_store.all()}) == 1

    @pytest.mark.asyncio
    async def test_unparseable_expense(self, dispatcher, expense_store):
        replies = await dispatcher.handle(message("amount: lots\ncategory: x\ndate: someday"))

        assert "couldn't read that expense" in replies[0]
        assert await expense_store.count() == 0

    @pytest.mark.asyncio
    async def test_confirmations_disabled(self, expense_store, category_store):
        dispatcher = create_dispatcher(
            expense_store, category_store, bot_settings(send_confirmations=False), today=lambda: TODAY
        )
        assert await dispatcher.handle(message(SINGLE)) == []
        assert await expense_store.count() == 1

    @pytest.mark.asyncio
    async def test_storage_failure_gives_generic_error(self, category_store):
        dispatcher = create_dispatcher(
            FailingExpenseStorage(), category_store, bot_settings(), today=lambda: TODAY
        )
        replies = await dispatcher.handle(message(SINGLE))
        assert "Something went wrong" in replies[0]


class TestAccessControl:
    @pytest.mark.asyncio
    async def test_disallowed_chat_is_ignored(self, expense_store, category_store):
        dispatcher = create_dispatcher(
            expense_store, category_store, bot_settings(allowed_chat_ids="5, 6"), today=lambda: TODAY
        )
        assert await dispatcher.handle(message(SINGLE, chat_id=100)) == []
        assert await dispatcher.handle(message(SINGLE, chat_id=5)) != []
        assert await expense_store.count() == 1

    @pytest.mark.asyncio
    async def test_topic_filter(self, expense_store, category_store):
        dispatcher = create_dispatcher(
            expense_store, category_store, bot_settings(allowed_topic_ids="9"), today=lambda: TODAY
        )
        assert await dispatcher.handle(message(SINGLE, topic_id=8)) == []
        assert await dispatcher.handle(message(SINGLE, topic_id=9)) != []
        # Messages outside forum topics are always allowed
        assert await dispatcher.handle(message(SINGLE)) != []


class TestReportCommands:
    """Tests for /summary, /range, /stats and /categories."""

    @pytest.mark.asyncio
    async def test_summary_today(self, dispatcher):
        await dispatcher.handle(message(MULTIPLE))
        [reply] = await dispatcher.handle(message("/summary"))

        assert "Daily Expense Summary" in reply
        assert "Thursday, August 15, 2024" in reply
        assert "$175.50" in reply
        assert "Groceries: $150.00 (85.5%)" in reply

    @pytest.mark.asyncio
    async def test_summary_for_date(self, dispatcher, expense_store):
        await expense_store.add(make_expense("9", "Books", day=date(2024, 8, 2)))
        [reply] = await dispatcher.handle(message("/summary@ExpenseBot 2024-08-02"))
        assert "$9.00" in reply

    @pytest.mark.asyncio
    async def test_summary_empty_day(self, dispatcher):
        [reply] = await dispatcher.handle(message("/summary 2024-01-01"))
        assert "No expenses recorded for this day." in reply

    @pytest.mark.asyncio
    async def test_summary_invalid_date(self, dispatcher):
        [reply] = await dispatcher.handle(message("/summary 02-08-2024"))
        assert '"02-08-2024" is not a valid date' in reply

    @pytest.mark.asyncio
    async def test_range(self, dispatcher, expense_store):
        await expense_store.add(make_expense("1", "A", day=date(2024, 8, 1)))
        await expense_store.add(make_expense("2", "B", day=date(2024, 8, 3)))

        [reply] = await dispatcher.handle(message("/range 2024-08-01 2024-08-03"))
        assert "$3.00" in reply
        assert "Entries:* 2" in reply

    @pytest.mark.asyncio
    async def test_range_reversed(self, dispatcher):
        [reply] = await dispatcher.handle(message("/range 2024-08-03 2024-08-01"))
        assert "is after the end date" in reply

    @pytest.mark.asyncio
    async def test_range_usage(self, dispatcher):
        [reply] = await dispatcher.handle(message("/range 2024-08-03"))
        assert "Usage: /range" in reply

    @pytest.mark.asyncio
    async def test_stats(self, dispatcher, expense_store):
        await expense_store.add(make_expense("100", "Rent", day=date(2024, 7, 1)))
        await dispatcher.handle(message(SINGLE))

        [reply] = await dispatcher.handle(message("/stats"))
        assert "Total spent: $125.50" in reply
        assert "This month: $25.50" in reply
        assert "Entries: 2" in reply

    @pytest.mark.asyncio
    async def test_categories(self, dispatcher):
        await dispatcher.handle(message(SINGLE))
        listing, usage = await dispatcher.handle(message("/categories"))

        assert "Coffee (custom)" in listing
        assert "Coffee: $25.50 (1 entries)" in usage


class TestClearCommand:
    """Tests for /clear and its confirmation."""

    @pytest.mark.asyncio
    async def test_clear_date_confirmed(self, dispatcher, expense_store):
        await dispatcher.handle(message(SINGLE))
        await expense_store.add(make_expense("5", day=date(2024, 8, 14)))

        [prompt] = await dispatcher.handle(message("/clear 2024-08-15"))
        assert "Confirm Clear Action" in prompt
        assert await expense_store.count() == 2

        [result] = await dispatcher.handle(message("yes"))
        assert "Cleared 1 expenses" in result
        assert [e.date for e in await expense_store.all()] == [date(2024, 8, 14)]

    @pytest.mark.asyncio
    async def test_clear_range_confirmed(self, dispatcher, expense_store):
        for day in (1, 2, 3):
            await expense_store.add(make_expense("1", day=date(2024, 8, day)))

        await dispatcher.handle(message("/clear 2024-08-01 2024-08-02"))
        [result] = await dispatcher.handle(message("Y"))

        assert "Cleared 2 expenses" in result
        assert await expense_store.count() == 1

    @pytest.mark.asyncio
    async def test_clear_all_cancelled(self, dispatcher, expense_store):
        await dispatcher.handle(message(SINGLE))

        await dispatcher.handle(message("/clear"))
        [reply] = await dispatcher.handle(message("no thanks"))

        assert "Clear cancelled" in reply
        assert await expense_store.count() == 1

    @pytest.mark.asyncio
    async def test_confirmation_is_per_user(self, dispatcher, expense_store, assistant):
        await dispatcher.handle(message(SINGLE))
        await dispatcher.handle(message("/clear", user_id=1))

        # Another user's "yes" is just chat
        assert await dispatcher.handle(message("yes", user_id=2)) == ["advice for 2"]
        assert await expense_store.count() == 1

        [result] = await dispatcher.handle(message("yes", user_id=1))
        assert "Cleared all expenses" in result
        assert await expense_store.count() == 0

    @pytest.mark.asyncio
    async def test_command_abandons_pending_clear(self, dispatcher, expense_store):
        await dispatcher.handle(message(SINGLE))
        await dispatcher.handle(message("/clear"))

        replies = await dispatcher.handle(message("/stats"))

        assert "Clear cancelled" in replies[0]
        assert "Overall Statistics" in replies[1]
        assert await expense_store.count() == 1

    @pytest.mark.asyncio
    async def test_clear_bad_date_requests_nothing(self, dispatcher, expense_store):
        await dispatcher.handle(message(SINGLE))

        [reply] = await dispatcher.handle(message("/clear tomorrow"))
        assert "not a valid date" in reply

        # "yes" is not treated as a confirmation
        assert await dispatcher.handle(message("yes")) == ["advice for 1"]
        assert await expense_store.count() == 1


class TestOtherCommands:
    @pytest.mark.asyncio
    async def test_start_and_help(self, dispatcher):
        [welcome] = await dispatcher.handle(message("/start"))
        [help_text] = await dispatcher.handle(message("/HELP"))

        assert "Welcome" in welcome
        assert "/range YYYY-MM-DD YYYY-MM-DD" in help_text

    @pytest.mark.asyncio
    async def test_settings(self, expense_store, category_store):
        dispatcher = create_dispatcher(
            expense_store, category_store, bot_settings(allowed_chat_ids="100,junk,200")
        )
        [reply] = await dispatcher.handle(message("/settings"))

        assert "Allowed chats: 100, 200" in reply
        assert "Allowed topics: All topics" in reply

    @pytest.mark.asyncio
    async def test_unknown_command(self, dispatcher):
        [reply] = await dispatcher.handle(message("/frobnicate"))
        assert "Unknown command /frobnicate" in reply

    @pytest.mark.asyncio
    async def test_plain_text_goes_to_assistant(self, dispatcher, assistant):
        assert await dispatcher.handle(message("how am I doing?", user_id=4)) == ["advice for 4"]
        assert assistant.questions == [("how am I doing?", 4)]

    @pytest.mark.asyncio
    async def test_ask(self, dispatcher, assistant):
        assert await dispatcher.handle(message("/ask where does my money go")) == ["advice for 1"]
        assert assistant.questions == [("where does my money go", 1)]

    @pytest.mark.asyncio
    async def test_without_assistant(self, expense_store, category_store):
        dispatcher = create_dispatcher(expense_store, category_store, bot_settings())

        assert await dispatcher.handle(message("hello")) == []
        assert await dispatcher.handle(message("/ask anything")) == [FALLBACK_MESSAGE]

    @pytest.mark.asyncio
    async def test_blank_message(self, dispatcher):
        assert await dispatcher.handle(message("   ")) == []


def test_money_formatting_uses_currency_symbol():
    from expense_tracker.formatting import MessageFormatter

    assert MessageFormatter("₹").money(Decimal("1234.5")) == "₹1,234.50"
