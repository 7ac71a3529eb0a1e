"""
AI Assistant for Expense Tracker

DESIGN DECISION: The assistant is advisory only.
It answers free-text questions using a summary of the user's last
30 days of expenses, but it never writes, edits or deletes anything,
and none of the bot's numbers come from it.

BOUNDARIES:
- CAN: Read a 30-day summary of one user's expenses
- CAN: Give budgeting and saving suggestions
- CANNOT: Persist or modify data
- MUST: Fall back to a fixed local message when Gemini is unavailable

Calls to Gemini are retried with bounded exponential backoff
(tenacity). Nothing else in the bot retries.
"""

import re
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Callable, Optional
from uuid import UUID

import google.generativeai as genai
import structlog
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from expense_tracker.audit import AuditLogger, create_correlation_id
from expense_tracker.config import GeminiSettings, get_settings
from expense_tracker.models.expense import Expense
from expense_tracker.services.storage import ExpenseStorageInterface, StorageError

logger = structlog.get_logger(__name__)


CONTEXT_DAYS = 30
TOP_CATEGORIES = 5
RECENT_EXPENSES = 10
MAX_REPLY_LENGTH = 4000

NO_DATA_CONTEXT = "The user has no recent expense data."
CONTEXT_UNAVAILABLE = "Unable to retrieve user's expense data."

FALLBACK_MESSAGE = (
    "🤖 *AI Assistant*\n\n"
    "I'm having trouble connecting to my AI brain right now, but I'm here to help!\n\n"
    "💡 *How I can help you:*\n"
    "• Analyze your spending patterns\n"
    "• Provide savings advice\n"
    "• Help with budgeting\n"
    "• Answer financial questions\n\n"
    "Try asking me about:\n"
    "• \"How can I save more money?\"\n"
    "• \"What's my biggest expense?\"\n"
    "• \"Give me budget tips\"\n"
    "• \"How am I doing financially?\"\n\n"
    "I'll be back to full AI power soon! 💰"
)

_CODE_BLOCK = re.compile(r"```[\s\S]*?```")
_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_INLINE_CODE = re.compile(r"`([^`]+)`")
_STRIKETHROUGH = re.compile(r"~~([^~]+)~~")
_UNDERLINE = re.compile(r"__([^_]+)__")
_HEADER = re.compile(r"^#{1,6}\s+(.+)$", re.MULTILINE)
_DOUBLE_BOLD = re.compile(r"\*\*\*\*([^*]+)\*\*\*\*")
_EXTRA_NEWLINES = re.compile(r"\n{3,}")
_RESIDUAL_MARKUP = re.compile(r"[*_\[\]`~]")


def sanitize_markdown(text: str) -> str:
    """
    Reduce model output to text the chat client renders safely.

    Code blocks are dropped, links become their text, headers become
    bold, and the result is capped at MAX_REPLY_LENGTH characters. If
    any markup characters survive, all of them are stripped.
    """
    sanitized = _CODE_BLOCK.sub("", text)
    sanitized = _LINK.sub(r"\1", sanitized)
    sanitized = _INLINE_CODE.sub(r"\1", sanitized)
    sanitized = _STRIKETHROUGH.sub(r"\1", sanitized)
    sanitized = _UNDERLINE.sub(r"\1", sanitized)
    sanitized = _HEADER.sub(r"**\1**", sanitized)
    sanitized = _DOUBLE_BOLD.sub(r"**\1**", sanitized)
    sanitized = _EXTRA_NEWLINES.sub("\n\n", sanitized)
    sanitized = sanitized[:MAX_REPLY_LENGTH]

    if any(ch in sanitized for ch in "*_["):
        sanitized = _RESIDUAL_MARKUP.sub("", sanitized)

    return sanitized.strip()


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    logger.warning(
        "gemini_attempt_failed",
        attempt=retry_state.attempt_number,
        error=str(outcome.exception()) if outcome else None,
        sleep_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
    )


class ExpenseAssistant:
    """
    Gemini-backed conversational helper.

    The model is injectable so tests never touch the network.
    """

    def __init__(
        self,
        store: ExpenseStorageInterface,
        settings: Optional[GeminiSettings] = None,
        model: Optional[Any] = None,
        audit_logger: Optional[AuditLogger] = None,
        currency_symbol: str = "$",
        wait: Optional[wait_base] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._currency = currency_symbol
        self._today = today or date.today

        if model is None:
            settings = settings or get_settings().gemini
            model = self._configure_genai(settings)
        self._model = model

        self._max_attempts = settings.max_attempts if settings else 3
        # 1s, 2s, 4s ... capped at 5s between attempts
        self._wait = wait or wait_exponential(multiplier=1, min=1, max=5)

    @staticmethod
    def _configure_genai(settings: GeminiSettings):
        """Configure Google Generative AI."""
        genai.configure(api_key=settings.api_key)
        return genai.GenerativeModel(
            model_name=settings.model_name,
            generation_config={
                "temperature": settings.temperature,
                "max_output_tokens": settings.max_tokens,
            },
        )

    def _money(self, amount: Decimal) -> str:
        return f"{self._currency}{amount:.2f}"

    async def build_context(self, user_id: int) -> str:
        """
        Summarize the user's last 30 days of expenses for the prompt.

        Storage failures degrade to a short notice instead of raising;
        the assistant is best-effort.
        """
        today = self._today()
        try:
            expenses = await self._store.by_date_range(
                today - timedelta(days=CONTEXT_DAYS),
                today,
                user_id=user_id,
            )
        except StorageError as e:
            logger.warning("assistant_context_failed", user_id=user_id, error=str(e))
            return CONTEXT_UNAVAILABLE

        if not expenses:
            return NO_DATA_CONTEXT

        return self._render_context(expenses)

    def _render_context(self, expenses: list[Expense]) -> str:
        total = sum((e.amount for e in expenses), Decimal("0"))
        daily_average = total / CONTEXT_DAYS

        totals: dict[str, Decimal] = {}
        for expense in expenses:
            totals[expense.category_label] = (
                totals.get(expense.category_label, Decimal("0")) + expense.amount
            )
        top = sorted(totals.items(), key=lambda item: item[1], reverse=True)[:TOP_CATEGORIES]

        lines = [
            f"User's Financial Data (Last {CONTEXT_DAYS} Days):",
            f"- Total spent: {self._money(total)}",
            f"- Daily average: {self._money(daily_average)}",
            f"- Number of transactions: {len(expenses)}",
            "",
            "Top Spending Categories:",
        ]
        for index, (label, amount) in enumerate(top, start=1):
            percentage = amount / total * 100 if total else Decimal("0")
            lines.append(f"{index}. {label}: {self._money(amount)} ({percentage:.1f}%)")

        lines.append("")
        lines.append("Recent Expenses:")
        recent = sorted(expenses, key=lambda e: (e.date, e.id or 0), reverse=True)
        for expense in recent[:RECENT_EXPENSES]:
            note = f" ({expense.description})" if expense.description else ""
            lines.append(
                f"- {self._money(expense.amount)} on {expense.category_label}{note}"
                f" - {expense.date.isoformat()}"
            )

        return "\n".join(lines)

    @staticmethod
    def build_prompt(message: str, context: str) -> str:
        return f"""You are a helpful and friendly AI financial assistant for a Telegram expense tracking bot.

Your role is to:
1. Provide personalized financial advice based on the user's spending data
2. Help users understand their spending patterns
3. Suggest ways to save money and improve financial health
4. Answer questions about budgeting, saving, and financial planning

User's Expense Context:
{context}

User's Message: "{message}"

Instructions:
- Respond in a friendly, conversational tone
- Reference the user's actual spending data when relevant
- Never invent expenses that are not in the context above
- Keep responses concise (max 500 words)
- Avoid tables and code blocks

Please respond to the user's message:"""

    async def _generate(self, prompt: str) -> str:
        """Call Gemini, retrying transient failures."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=self._wait,
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                response = await self._model.generate_content_async(prompt)
                return response.text
        raise RuntimeError("Retry loop exited without a result")  # pragma: no cover

    async def respond(
        self,
        message: str,
        user_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> str:
        """
        Answer a free-text message.

        Always returns something to send; the fallback message when
        Gemini fails every attempt or returns nothing usable.
        """
        correlation_id = correlation_id or create_correlation_id()

        context = await self.build_context(user_id)
        prompt = self.build_prompt(message, context)

        used_fallback = False
        try:
            reply = sanitize_markdown(await self._generate(prompt))
        except Exception as e:
            logger.error("gemini_unavailable", user_id=user_id, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="gemini",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            reply = ""

        if not reply:
            used_fallback = True
            reply = FALLBACK_MESSAGE

        if self._audit_logger:
            await self._audit_logger.log_ai_response(
                user_id=user_id,
                used_fallback=used_fallback,
                correlation_id=correlation_id,
            )
        return reply

    async def test_connection(self) -> bool:
        """One unretried round trip to Gemini."""
        try:
            response = await self._model.generate_content_async("Hello, can you hear me?")
            return bool(response.text)
        except Exception as e:
            logger.warning("gemini_connection_test_failed", error=str(e))
            return False
