"""
Main Orchestrator for Expense Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Recording (message → parse → resolve category → store)
2. Reporting (command → fetch → aggregate → format)
3. Clearing (command → confirm → delete)

DESIGN DECISION: The dispatcher knows nothing about Telegram.
It takes a ChatMessage and returns the replies to send, so the same
code runs behind any chat transport and in tests.

The orchestrator enforces the boundaries:
- Nothing is cleared without an explicit "yes"
- Reports come from stored data only, never from the AI assistant
- Every step is audited
"""

from datetime import date
from typing import Callable, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncEngine

from expense_tracker.agents import FALLBACK_MESSAGE, ExpenseAssistant
from expense_tracker.audit import AuditLogger, create_correlation_id
from expense_tracker.categories import CategoryResolver
from expense_tracker.config import BotSettings, Settings, get_settings
from expense_tracker.formatting import MessageFormatter
from expense_tracker.models.expense import (
    Category,
    CategoryStats,
    DailySummary,
    Expense,
    OverallStats,
    ParseReport,
    RangeSummary,
)
from expense_tracker.parsing import ExpenseParser, InvalidDateError, parse_command_date
from expense_tracker.queries import Aggregator, InvalidRangeError
from expense_tracker.services.storage import (
    CategoryStorageInterface,
    ExpenseStorageInterface,
    InMemoryCategoryStorage,
    InMemoryExpenseStorage,
    SqlCategoryStorage,
    SqlExpenseStorage,
    StorageError,
    create_engine_from_settings,
    create_session_factory,
    init_db,
)
from expense_tracker.sessions import ConfirmationTracker, PendingAction, PendingConfirmation

logger = structlog.get_logger(__name__)

STORAGE_ERROR_REPLY = (
    "Something went wrong while reading or saving your expenses. "
    "Please try again in a moment."
)


class ChatMessage(BaseModel):
    """
    One inbound chat message.

    The ids are opaque values from the transport.
    """

    text: str
    user_id: int
    chat_id: int
    message_id: int
    topic_id: Optional[int] = None


class ExpenseFlow:
    """
    Orchestrates recording and clearing expenses.

    Flow:
    1. Parse → every blank-line separated block becomes a draft or a failure
    2. Resolve → each draft's label is mapped to a canonical category
    3. Store → the expense keeps the label as typed plus the category id
    """

    def __init__(
        self,
        parser: ExpenseParser,
        resolver: CategoryResolver,
        store: ExpenseStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._parser = parser
        self._resolver = resolver
        self._store = store
        self._audit_logger = audit_logger

    async def record(
        self,
        message: ChatMessage,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[list[Expense], ParseReport]:
        """
        Parse a message and store every expense in it.

        Returns:
            (stored_expenses, parse_report)
        """
        correlation_id = correlation_id or create_correlation_id()

        report = self._parser.parse_many_with_report(message.text)

        if self._audit_logger:
            if report.drafts:
                await self._audit_logger.log_expenses_parsed(
                    parsed=len(report.drafts),
                    failed=report.failed_count,
                    correlation_id=correlation_id,
                    user_id=message.user_id,
                    chat_id=message.chat_id,
                )
            else:
                await self._audit_logger.log_parse_failed(
                    block_count=report.failed_count,
                    correlation_id=correlation_id,
                    user_id=message.user_id,
                    chat_id=message.chat_id,
                )

        stored: list[Expense] = []
        for draft in report.drafts:
            category = await self._resolver.find_or_create(
                draft.category_label,
                correlation_id=correlation_id,
            )
            expense = Expense.from_draft(
                draft,
                user_id=message.user_id,
                chat_id=message.chat_id,
                message_id=message.message_id,
                topic_id=message.topic_id,
                category_id=category.id,
            )
            saved = await self._store.add(expense)
            stored.append(saved)

            if self._audit_logger:
                await self._audit_logger.log_expense_saved(
                    expense_id=saved.id,
                    category=saved.category_label,
                    amount=str(saved.amount),
                    correlation_id=correlation_id,
                    user_id=message.user_id,
                    chat_id=message.chat_id,
                )

        return stored, report

    async def clear(
        self,
        action: PendingAction,
        start: Optional[date] = None,
        end: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
        user_id: Optional[int] = None,
        chat_id: Optional[int] = None,
    ) -> int:
        """
        Delete expenses. Returns the number removed.

        CRITICAL: Called only after the user confirmed.
        """
        correlation_id = correlation_id or create_correlation_id()

        if action == PendingAction.CLEAR_RANGE:
            if start is None or end is None:
                raise ValueError("A range clear needs both start and end")
            if start > end:
                raise InvalidRangeError(start, end)
            removed = await self._store.clear_for_date_range(start, end)
        elif action == PendingAction.CLEAR_DATE:
            if start is None:
                raise ValueError("A date clear needs a date")
            removed = await self._store.clear_for_date(start)
        else:
            removed = await self._store.clear_all()

        if self._audit_logger:
            details = {}
            if start:
                details["start"] = start.isoformat()
            if end:
                details["end"] = end.isoformat()
            await self._audit_logger.log_expenses_cleared(
                scope=action.value,
                count=removed,
                correlation_id=correlation_id,
                user_id=user_id,
                chat_id=chat_id,
                details=details,
            )

        return removed


class QueryFlow:
    """
    Orchestrates reports.

    Every number comes from the aggregator over stored expenses.
    """

    def __init__(
        self,
        aggregator: Aggregator,
        resolver: CategoryResolver,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._aggregator = aggregator
        self._resolver = resolver
        self._audit_logger = audit_logger

    async def daily_summary(
        self,
        day: date,
        correlation_id: Optional[UUID] = None,
        chat_id: Optional[int] = None,
    ) -> DailySummary:
        correlation_id = correlation_id or create_correlation_id()
        summary = await self._aggregator.daily_summary(day)

        if self._audit_logger:
            await self._audit_logger.log_summary_generated(
                scope=day.isoformat(),
                expense_count=len(summary.expenses),
                total=str(summary.total_amount),
                correlation_id=correlation_id,
                chat_id=chat_id,
            )
        return summary

    async def range_summary(
        self,
        start: date,
        end: date,
        correlation_id: Optional[UUID] = None,
        chat_id: Optional[int] = None,
    ) -> RangeSummary:
        correlation_id = correlation_id or create_correlation_id()
        summary = await self._aggregator.range_summary(start, end)

        if self._audit_logger:
            await self._audit_logger.log_summary_generated(
                scope=f"{start.isoformat()}..{end.isoformat()}",
                expense_count=len(summary.expenses),
                total=str(summary.total_amount),
                correlation_id=correlation_id,
                chat_id=chat_id,
            )
        return summary

    async def overall_stats(
        self,
        correlation_id: Optional[UUID] = None,
        chat_id: Optional[int] = None,
    ) -> OverallStats:
        correlation_id = correlation_id or create_correlation_id()
        stats = await self._aggregator.overall_stats()

        if self._audit_logger:
            await self._audit_logger.log_stats_generated(
                entry_count=stats.entry_count,
                correlation_id=correlation_id,
                chat_id=chat_id,
            )
        return stats

    async def categories(self) -> tuple[list[Category], dict[str, CategoryStats]]:
        """All categories and their usage."""
        categories = await self._resolver.list_all()
        usage = await self._resolver.usage_stats()
        return categories, usage


class ChatDispatcher:
    """
    Routes one inbound message to the right flow and renders the replies.

    Commands start with "/". Other text is recorded as expenses when it
    looks like one, and otherwise goes to the AI assistant (if configured).
    """

    def __init__(
        self,
        expense_flow: ExpenseFlow,
        query_flow: QueryFlow,
        bot_settings: BotSettings,
        confirmations: Optional[ConfirmationTracker] = None,
        formatter: Optional[MessageFormatter] = None,
        assistant: Optional[ExpenseAssistant] = None,
        audit_logger: Optional[AuditLogger] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self._expense_flow = expense_flow
        self._query_flow = query_flow
        self._settings = bot_settings
        self._confirmations = confirmations or ConfirmationTracker(
            ttl_seconds=bot_settings.confirmation_ttl_seconds
        )
        self._formatter = formatter or MessageFormatter(bot_settings.currency_symbol)
        self._assistant = assistant
        self._audit_logger = audit_logger
        self._today = today or date.today

        self._commands = {
            "/start": self._cmd_start,
            "/help": self._cmd_help,
            "/summary": self._cmd_summary,
            "/range": self._cmd_range,
            "/stats": self._cmd_stats,
            "/categories": self._cmd_categories,
            "/clear": self._cmd_clear,
            "/settings": self._cmd_settings,
            "/ask": self._cmd_ask,
        }

    def is_allowed(self, message: ChatMessage) -> bool:
        return (
            self._settings.is_chat_allowed(message.chat_id)
            and self._settings.is_topic_allowed(message.topic_id)
        )

    async def handle(self, message: ChatMessage) -> list[str]:
        """
        Handle one message. Returns the replies to send, possibly none.

        Storage failures become a generic error reply; bad command
        dates become a targeted one.
        """
        if not self.is_allowed(message):
            logger.debug("message_ignored", chat_id=message.chat_id, topic_id=message.topic_id)
            return []

        text = message.text.strip()
        if not text:
            return []

        correlation_id = create_correlation_id()
        is_command = text.startswith("/")

        try:
            replies: list[str] = []

            pending = self._confirmations.take(message.user_id)
            if pending is not None:
                if not is_command:
                    return await self._resolve_confirmation(pending, text, message, correlation_id)
                # A new command abandons the pending confirmation
                await self._audit_confirmation(pending, False, correlation_id)
                replies.append(self._formatter.clear_cancelled())

            if is_command:
                replies.extend(await self._handle_command(text, message, correlation_id))
            elif ExpenseParser.looks_like_expense(text):
                replies.extend(await self._handle_expenses(message, correlation_id))
            elif self._assistant is not None:
                replies.append(
                    await self._assistant.respond(text, message.user_id, correlation_id)
                )
            return replies

        except InvalidDateError as e:
            return [self._formatter.invalid_date(e.value)]
        except InvalidRangeError as e:
            return [self._formatter.invalid_range(e.start, e.end)]
        except StorageError as e:
            logger.error("storage_failure", error=str(e), chat_id=message.chat_id)
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"chat_id": message.chat_id, "user_id": message.user_id},
                    correlation_id=correlation_id,
                )
            return [self._formatter.error(STORAGE_ERROR_REPLY)]

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def _handle_expenses(self, message: ChatMessage, correlation_id: UUID) -> list[str]:
        stored, report = await self._expense_flow.record(message, correlation_id)

        if not stored:
            return [self._formatter.parse_failed()]
        if not self._settings.send_confirmations:
            return []
        if len(stored) == 1 and not report.failed_count:
            return [self._formatter.expense_added(stored[0])]
        return [self._formatter.multiple_expenses_added(stored, failed=report.failed_count)]

    # -------------------------------------------------------------------------
    # Confirmations
    # -------------------------------------------------------------------------

    async def _audit_confirmation(
        self,
        pending: PendingConfirmation,
        confirmed: bool,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_confirmation_resolved(
                action=pending.action.value,
                user_id=pending.user_id,
                confirmed=confirmed,
                correlation_id=correlation_id,
            )

    async def _resolve_confirmation(
        self,
        pending: PendingConfirmation,
        reply: str,
        message: ChatMessage,
        correlation_id: UUID,
    ) -> list[str]:
        confirmed = self._confirmations.is_affirmative(reply)
        await self._audit_confirmation(pending, confirmed, correlation_id)
        if not confirmed:
            return [self._formatter.clear_cancelled()]

        start = _payload_date(pending, "start")
        end = _payload_date(pending, "end")
        removed = await self._expense_flow.clear(
            pending.action,
            start=start,
            end=end,
            correlation_id=correlation_id,
            user_id=message.user_id,
            chat_id=message.chat_id,
        )
        return [self._formatter.clear_result(removed, start, end)]

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def _handle_command(
        self,
        text: str,
        message: ChatMessage,
        correlation_id: UUID,
    ) -> list[str]:
        parts = text.split()
        # "/summary@MyBot" in group chats
        command = parts[0].split("@", 1)[0].lower()
        args = parts[1:]

        handler = self._commands.get(command)
        if handler is None:
            return [self._formatter.error(f"Unknown command {command}.")]
        return await handler(args, message, correlation_id)

    async def _cmd_start(self, args, message, correlation_id) -> list[str]:
        return [self._formatter.welcome()]

    async def _cmd_help(self, args, message, correlation_id) -> list[str]:
        return [self._formatter.help()]

    async def _cmd_summary(self, args, message, correlation_id) -> list[str]:
        day = parse_command_date(args[0]) if args else self._today()
        summary = await self._query_flow.daily_summary(day, correlation_id, message.chat_id)
        return [self._formatter.daily_summary(summary)]

    async def _cmd_range(self, args, message, correlation_id) -> list[str]:
        if len(args) != 2:
            return [self._formatter.error("Usage: /range YYYY-MM-DD YYYY-MM-DD")]
        start, end = parse_command_date(args[0]), parse_command_date(args[1])
        summary = await self._query_flow.range_summary(start, end, correlation_id, message.chat_id)
        return [self._formatter.range_summary(summary)]

    async def _cmd_stats(self, args, message, correlation_id) -> list[str]:
        stats = await self._query_flow.overall_stats(correlation_id, message.chat_id)
        return [self._formatter.overall_stats(stats)]

    async def _cmd_categories(self, args, message, correlation_id) -> list[str]:
        categories, usage = await self._query_flow.categories()
        return [
            self._formatter.category_list(categories),
            self._formatter.usage_stats(usage),
        ]

    async def _cmd_clear(self, args, message, correlation_id) -> list[str]:
        if len(args) > 2:
            return [self._formatter.error("Usage: /clear [YYYY-MM-DD [YYYY-MM-DD]]")]

        start = parse_command_date(args[0]) if args else None
        end = parse_command_date(args[1]) if len(args) == 2 else None
        payload = {}
        if end is not None:
            if start > end:
                raise InvalidRangeError(start, end)
            action = PendingAction.CLEAR_RANGE
            payload = {"start": start.isoformat(), "end": end.isoformat()}
        elif start is not None:
            action = PendingAction.CLEAR_DATE
            payload = {"start": start.isoformat()}
        else:
            action = PendingAction.CLEAR_ALL

        self._confirmations.request(message.user_id, action, payload)
        if self._audit_logger:
            await self._audit_logger.log_confirmation_requested(
                action=action.value,
                user_id=message.user_id,
                correlation_id=correlation_id,
                payload=payload,
            )
        return [self._formatter.clear_prompt(start, end)]

    async def _cmd_settings(self, args, message, correlation_id) -> list[str]:
        return [
            self._formatter.settings(
                send_confirmations=self._settings.send_confirmations,
                allowed_chat_ids=self._settings.allowed_chat_id_list,
                allowed_topic_ids=self._settings.allowed_topic_id_list,
            )
        ]

    async def _cmd_ask(self, args, message, correlation_id) -> list[str]:
        if not args:
            return [self._formatter.error("Usage: /ask <question>")]
        if self._assistant is None:
            return [FALLBACK_MESSAGE]
        question = " ".join(args)
        return [await self._assistant.respond(question, message.user_id, correlation_id)]


def _payload_date(pending: PendingConfirmation, key: str) -> Optional[date]:
    value = pending.payload.get(key)
    return date.fromisoformat(value) if value else None


def create_dispatcher(
    expense_store: ExpenseStorageInterface,
    category_store: CategoryStorageInterface,
    bot_settings: BotSettings,
    assistant: Optional[ExpenseAssistant] = None,
    audit_logger: Optional[AuditLogger] = None,
    today: Optional[Callable[[], date]] = None,
) -> ChatDispatcher:
    """Wire flows and the dispatcher around the given stores."""
    audit_logger = audit_logger or AuditLogger()
    resolver = CategoryResolver(category_store, audit_logger)

    expense_flow = ExpenseFlow(
        parser=ExpenseParser(today=today),
        resolver=resolver,
        store=expense_store,
        audit_logger=audit_logger,
    )
    query_flow = QueryFlow(
        aggregator=Aggregator(expense_store, today=today),
        resolver=resolver,
        audit_logger=audit_logger,
    )
    return ChatDispatcher(
        expense_flow=expense_flow,
        query_flow=query_flow,
        bot_settings=bot_settings,
        assistant=assistant,
        audit_logger=audit_logger,
        today=today,
    )


async def create_app_components(
    settings: Optional[Settings] = None,
    use_database: bool = True,
) -> tuple[ChatDispatcher, Optional[AsyncEngine]]:
    """
    Factory function to create all application components.

    Args:
        settings: Root settings (defaults to the cached ones)
        use_database: Set to False to keep everything in memory

    Returns:
        (dispatcher, engine) where engine is None without a database.
        Dispose of the engine on shutdown.
    """
    settings = settings or get_settings()
    bot_settings = settings.bot
    audit_logger = AuditLogger()

    engine: Optional[AsyncEngine] = None
    if use_database:
        engine = create_engine_from_settings(settings.database)
        await init_db(engine)
        session_factory = create_session_factory(engine)
        expense_store: ExpenseStorageInterface = SqlExpenseStorage(engine, session_factory)
        category_store: CategoryStorageInterface = SqlCategoryStorage(engine, session_factory)
    else:
        expense_store = InMemoryExpenseStorage()
        category_store = InMemoryCategoryStorage(expense_store)

    await CategoryResolver(category_store, audit_logger).ensure_defaults()

    assistant: Optional[ExpenseAssistant] = None
    try:
        assistant = ExpenseAssistant(
            expense_store,
            settings=settings.gemini,
            audit_logger=audit_logger,
            currency_symbol=bot_settings.currency_symbol,
        )
    except ValidationError as e:
        # No Gemini key: the bot works, the assistant replies with the fallback
        logger.warning("assistant_disabled", reason=str(e))

    dispatcher = create_dispatcher(
        expense_store,
        category_store,
        bot_settings,
        assistant=assistant,
        audit_logger=audit_logger,
    )
    return dispatcher, engine
